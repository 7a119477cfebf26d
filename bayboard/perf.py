"""
Lightweight operation timing.

Records how long probes and preload waves take, and warns when something is
slower than a second.
"""
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, TypeVar

logger = logging.getLogger("perf")

T = TypeVar("T")

SLOW_OPERATION_MS = 1000.0
MAX_METRICS = 500


@dataclass
class PerformanceMetric:
    """A single timed operation."""
    name: str
    started_at: float
    ended_at: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> Optional[float]:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at) * 1000


class PerformanceMonitor:
    """
    Named timings with a bounded history.

    Usage:
        perf = PerformanceMonitor()
        perf_id = perf.start("health_check")
        ...
        perf.end(perf_id, {"healthy": True})
    """

    def __init__(
        self,
        enabled: bool = True,
        clock: Callable[[], float] = time.perf_counter,
        max_metrics: int = MAX_METRICS,
    ):
        self.enabled = enabled
        self._clock = clock
        self._ids = itertools.count(1)
        self._open: Dict[str, PerformanceMetric] = {}
        self._completed: Deque[PerformanceMetric] = deque(maxlen=max_metrics)

    def start(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Start timing ``name``; returns an id to pass to ``end``."""
        perf_id = f"{name}_{next(self._ids)}"
        if self.enabled:
            self._open[perf_id] = PerformanceMetric(
                name=name,
                started_at=self._clock(),
                metadata=dict(metadata or {}),
            )
        return perf_id

    def end(
        self, perf_id: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[PerformanceMetric]:
        """Finish a timing started with ``start``."""
        metric = self._open.pop(perf_id, None)
        if metric is None:
            return None

        metric.ended_at = self._clock()
        if metadata:
            metric.metadata.update(metadata)
        self._completed.append(metric)

        duration = metric.duration_ms
        if duration > SLOW_OPERATION_MS:
            logger.warning(f"SLOW OPERATION: {metric.name} took {duration:.2f}ms {metric.metadata}")
        else:
            logger.debug(f"{metric.name} completed in {duration:.2f}ms {metric.metadata}")
        return metric

    async def time(
        self,
        name: str,
        fn: Callable[[], Awaitable[T]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> T:
        """Await ``fn()`` and record how long it took, success or not."""
        perf_id = self.start(name, metadata)
        try:
            result = await fn()
        except Exception as e:
            self.end(perf_id, {"error": str(e)})
            raise
        self.end(perf_id)
        return result

    def get_metrics(self) -> List[PerformanceMetric]:
        return list(self._completed)

    def clear(self) -> None:
        self._open.clear()
        self._completed.clear()

    def report(self) -> str:
        """Completed timings, slowest first."""
        if not self.enabled:
            return "Performance monitoring is disabled"
        if not self._completed:
            return "No performance metrics recorded"

        lines = [
            f"{m.name}: {m.duration_ms:.2f}ms"
            for m in sorted(self._completed, key=lambda m: m.duration_ms, reverse=True)
        ]
        return "Performance Report:\n" + "\n".join(lines)
