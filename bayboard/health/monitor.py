"""
Connection health monitoring for the remote backend.

Probes the backend on its own schedule, independently of regular traffic,
and keeps a ConnectionState that the request executor consults to size its
timeouts. "Degraded" is not stored anywhere: it is an online link whose
``is_healthy()`` reading is False because of latency or failures.
"""
import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Set

from config.settings import Settings
from bayboard.errors import RemoteAccessError
from bayboard.events import EventChannel
from bayboard.perf import PerformanceMonitor
from bayboard.transport import RemoteTransport

from .models import ConnectionState, ConnectionStatus, HealthCheckResult

logger = logging.getLogger("health.monitor")


class HealthMonitor:
    """
    Owns the connection state machine.

    Lifecycle:
    - ``start()`` waits a warm-up delay (longer after a restart), probes once,
      then probes every 30s and sends heartbeats every 60s
    - ``stop()`` cancels the timers; state is kept

    Failures seen within the grace period after the last heartbeat are logged
    but not counted, and successes in that window do not clear the failure
    count either.
    """

    def __init__(
        self,
        settings: Settings,
        transport: RemoteTransport,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        perf: Optional[PerformanceMonitor] = None,
    ):
        self._settings = settings
        self._transport = transport
        self._clock = clock
        self._sleep = sleep
        self._perf = perf or PerformanceMonitor()

        self._state = ConnectionState(last_heartbeat_at=clock())
        self._events: EventChannel[ConnectionState] = EventChannel("connection_state")

        self._timers: List[asyncio.Task] = []
        self._out_of_band: Set[asyncio.Task] = set()
        self._started_before = False
        self._started_at: Optional[float] = None

    # =========================================================
    # LIFECYCLE
    # =========================================================

    @property
    def is_running(self) -> bool:
        return bool(self._timers)

    def start(self, reloaded: Optional[bool] = None) -> None:
        """
        Begin monitoring. Must be called from a running event loop.

        Args:
            reloaded: Treat this start as a reload (longer warm-up). Defaults
                to True when this monitor has been started before.
        """
        if self._timers:
            return

        if reloaded is None:
            reloaded = self._started_before
        warmup = (
            self._settings.warmup_reload_seconds
            if reloaded
            else self._settings.warmup_fresh_seconds
        )
        self._started_before = True
        self._started_at = self._clock()

        logger.info(
            f"Starting health monitoring with {warmup:g}s warm-up "
            f"({'reload' if reloaded else 'fresh start'})"
        )

        loop = asyncio.get_running_loop()
        self._timers = [
            loop.create_task(
                self._every(warmup, self._settings.probe_interval_seconds, self.probe, "probe")
            ),
            loop.create_task(
                self._every(
                    warmup + self._settings.heartbeat_interval_seconds,
                    self._settings.heartbeat_interval_seconds,
                    self.heartbeat,
                    "heartbeat",
                )
            ),
        ]

    def stop(self) -> None:
        """Cancel probe and heartbeat timers. Safe to call repeatedly."""
        if not self._timers and not self._out_of_band:
            return
        for task in self._timers + list(self._out_of_band):
            task.cancel()
        self._timers = []
        self._out_of_band.clear()
        logger.info("Connection health monitoring stopped")

    async def _every(
        self,
        first_delay: float,
        interval: float,
        fn: Callable[[], Awaitable[object]],
        name: str,
    ) -> None:
        await self._sleep(first_delay)
        while True:
            try:
                await fn()
            except Exception:
                logger.exception(f"Scheduled {name} failed unexpectedly")
            await self._sleep(interval)

    # =========================================================
    # PROBES
    # =========================================================

    def _in_grace_period(self) -> bool:
        elapsed = self._clock() - self._state.last_heartbeat_at
        return elapsed < self._settings.startup_grace_seconds

    async def probe(self) -> HealthCheckResult:
        """Run one health check and fold the result into the state."""
        in_grace = self._in_grace_period()
        timeout = (
            self._settings.probe_timeout_grace_seconds
            if in_grace
            else self._settings.probe_timeout_seconds
        )
        perf_id = self._perf.start("health_check")
        logger.debug(
            f"Performing health check ({'grace' if in_grace else 'normal'} mode, "
            f"{timeout:g}s timeout)"
        )

        started = self._clock()
        try:
            await self._transport.call(
                self._settings.probe_action,
                timeout=timeout,
                request_id=f"probe-{uuid.uuid4().hex[:12]}",
            )
            result = HealthCheckResult(
                is_healthy=True,
                latency_ms=(self._clock() - started) * 1000,
                at=datetime.now(timezone.utc),
            )
        except RemoteAccessError as e:
            logger.warning(f"Health check failed: {e}")
            result = HealthCheckResult(
                is_healthy=False,
                latency_ms=self._state.average_latency_ms,
                at=datetime.now(timezone.utc),
                error=str(e),
            )

        self._apply_probe(result, in_grace)
        self._perf.end(perf_id, {"latency_ms": result.latency_ms, "healthy": result.is_healthy})
        self._notify()
        return result

    def _apply_probe(self, result: HealthCheckResult, in_grace: bool) -> None:
        state = self._state
        state.total_probes += 1

        if result.is_healthy:
            state.is_online = True
            if not in_grace:
                state.consecutive_failures = 0
            state.successful_probes += 1

            alpha = self._settings.latency_smoothing
            if state.average_latency_ms == 0:
                state.average_latency_ms = result.latency_ms
            else:
                state.average_latency_ms = (
                    alpha * result.latency_ms + (1 - alpha) * state.average_latency_ms
                )
        elif in_grace:
            logger.info("Grace period - not counting this failure")
        else:
            self._record_failure()

        state.last_heartbeat_at = self._clock()

    async def heartbeat(self) -> bool:
        """
        Keep-alive call. Skipped while offline.

        Returns:
            True if the heartbeat got through
        """
        if not self._state.is_online:
            return False

        in_grace = self._in_grace_period()
        try:
            await self._transport.call(
                self._settings.probe_action,
                timeout=self._settings.heartbeat_timeout_seconds,
                request_id=f"heartbeat-{uuid.uuid4().hex[:12]}",
            )
        except RemoteAccessError as e:
            logger.warning(f"Heartbeat failed: {e}")
            self._state.total_probes += 1
            if in_grace:
                logger.info("Grace period - not counting this failure")
            else:
                self._record_failure()
            self._notify()
            return False

        self._state.last_heartbeat_at = self._clock()
        self._notify()
        return True

    def _record_failure(self) -> None:
        state = self._state
        state.consecutive_failures += 1
        if state.consecutive_failures >= self._settings.max_consecutive_failures and state.is_online:
            state.is_online = False
            logger.warning("Connection marked as offline due to consecutive failures")

    # =========================================================
    # PLATFORM CONNECTIVITY NOTIFICATIONS
    # =========================================================

    def handle_online(self) -> Optional[asyncio.Task]:
        """Platform says the network is back: trust it, then verify with a probe."""
        logger.info("Connection restored")
        self._state.is_online = True
        self._state.consecutive_failures = 0
        self._notify()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, skipping out-of-band probe")
            return None
        task = loop.create_task(self.probe())
        self._out_of_band.add(task)
        task.add_done_callback(self._out_of_band.discard)
        return task

    def handle_offline(self) -> None:
        """Platform says the network is gone: go offline without waiting for probes."""
        logger.warning("Connection lost")
        self._state.is_online = False
        self._state.consecutive_failures = self._settings.max_consecutive_failures
        self._notify()

    # =========================================================
    # READINGS
    # =========================================================

    def is_healthy(self) -> bool:
        state = self._state
        return (
            state.is_online
            and state.consecutive_failures < self._settings.max_consecutive_failures
            and state.average_latency_ms < self._settings.max_latency_ms
        )

    def get_state(self) -> ConnectionState:
        """Snapshot of the current state."""
        return self._state.copy()

    def get_success_rate(self) -> int:
        """Percentage of probes that succeeded; 100 before any probe."""
        if self._state.total_probes == 0:
            return 100
        return round(self._state.successful_probes / self._state.total_probes * 100)

    def connection_status(self) -> ConnectionStatus:
        """
        Reading for status banners.

        Shortly after ``start()`` the link is reported healthy unless there is
        clear evidence otherwise, so a slow warm-up does not flash an outage.
        """
        state = self._state
        in_startup = (
            self._started_at is not None
            and self._clock() - self._started_at < self._settings.status_startup_seconds
        )

        if in_startup:
            if not state.is_online:
                return ConnectionStatus(is_healthy=True, is_online=False, reason="Starting up...")
            if 0 < state.consecutive_failures < 2:
                return ConnectionStatus(is_healthy=True, is_online=True)

        if not state.is_online:
            return ConnectionStatus(
                is_healthy=False, is_online=False, reason="No internet connection"
            )
        if state.consecutive_failures > 0:
            return ConnectionStatus(
                is_healthy=False,
                is_online=True,
                reason=(
                    f"Connection issues detected "
                    f"({state.consecutive_failures} consecutive failures)"
                ),
            )
        return ConnectionStatus(is_healthy=True, is_online=True)

    def reset(self) -> None:
        """Forget all metrics and start over as online."""
        self._state = ConnectionState(last_heartbeat_at=self._clock())
        self._notify()

    # =========================================================
    # SUBSCRIBERS
    # =========================================================

    @property
    def events(self) -> EventChannel[ConnectionState]:
        return self._events

    def subscribe(self, callback: Callable[[ConnectionState], None]) -> Callable[[], None]:
        """Call ``callback`` with a state snapshot after every state change."""
        return self._events.subscribe(callback)

    def unsubscribe(self, callback: Callable[[ConnectionState], None]) -> bool:
        return self._events.unsubscribe(callback)

    def _notify(self) -> None:
        self._events.publish(self._state.copy())
