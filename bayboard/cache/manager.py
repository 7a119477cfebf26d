"""
Cache orchestration for dashboard data with stale-on-error fallback.
"""
import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Union

from config.settings import Settings
from bayboard.api_client import RequestExecutor
from bayboard.errors import RemoteAccessError
from bayboard.events import ConnectionChanged, EventChannel, PreloadCompleted
from bayboard.health import ConnectionState, HealthMonitor
from bayboard.perf import PerformanceMonitor

from .categories import extract_category_data, get_action_for_category
from .coalescer import RequestCoalescer
from .core import CacheEntry, CacheStatus, DataCategory

logger = logging.getLogger("cache.manager")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheManager:
    """
    Serves dashboard data from a time-bounded cache.

    - Fresh entries (younger than the TTL) are returned without a network call
    - Misses and stale entries go through the request executor; concurrent
      misses for one category share a single call
    - When a fetch fails, the last good value is returned if there is one,
      otherwise the error propagates unchanged
    - While the health monitor reports the link offline, entries within the
      offline stale window are served without trying the network
    - ``preload_all()`` fetches every category concurrently, at most one wave
      at a time
    """

    def __init__(
        self,
        executor: RequestExecutor,
        settings: Settings,
        health: Optional[HealthMonitor] = None,
        now: Callable[[], datetime] = _utcnow,
        coalescer: Optional[RequestCoalescer] = None,
        perf: Optional[PerformanceMonitor] = None,
    ):
        self._executor = executor
        self._settings = settings
        self._health = health
        self._now = now
        self._coalescer = coalescer or RequestCoalescer()
        self._perf = perf or PerformanceMonitor()

        self._cache: Dict[DataCategory, CacheEntry] = {}
        self.is_preloading = False
        self.preloaded = False

        self.preload_events: EventChannel[PreloadCompleted] = EventChannel("preload")
        self.connection_events: EventChannel[ConnectionChanged] = EventChannel("connection")

        self._stats = {
            "hits_fresh": 0,
            "hits_offline": 0,
            "fallbacks": 0,
            "misses": 0,
        }

        self._background: Set[asyncio.Task] = set()
        self._connection_online = True
        self._unsubscribe_health: Optional[Callable[[], None]] = None
        if health is not None:
            self._connection_online = health.get_state().is_online
            self._unsubscribe_health = health.subscribe(self._on_connection_state)

    # =========================================================
    # READS
    # =========================================================

    async def get_cached(self, category: Union[DataCategory, str]) -> Any:
        """
        Get data for ``category`` from cache or the backend.

        Raises:
            ValueError: Unknown category
            RemoteAccessError: Fetch failed and nothing was cached
        """
        category = DataCategory.parse(category)
        now = self._now()
        entry = self._cache.get(category)

        if entry is not None and entry.is_fresh(now, self._settings.cache_ttl_seconds):
            logger.debug(f"CACHE HIT (fresh): {category.value} [age={entry.age_seconds(now):.1f}s]")
            self._stats["hits_fresh"] += 1
            return entry.data

        if (
            entry is not None
            and self._is_offline()
            and entry.age_seconds(now) < self._settings.offline_stale_seconds
        ):
            logger.warning(f"Using stale {category.value} data while offline")
            self._stats["hits_offline"] += 1
            return entry.data

        logger.info(f"CACHE MISS: {category.value}")
        self._stats["misses"] += 1
        try:
            return await self._coalescer.get_or_fetch(
                category.value, lambda: self._fetch(category)
            )
        except RemoteAccessError as e:
            # Re-read: another caller may have stored something meanwhile
            entry = self._cache.get(category)
            if entry is None:
                raise
            logger.warning(f"Using stale {category.value} data due to fetch error: {e}")
            self._stats["fallbacks"] += 1
            return entry.data

    async def get_branches_cached(self) -> Any:
        return await self.get_cached(DataCategory.BRANCHES)

    async def get_pickers_cached(self) -> Any:
        return await self.get_cached(DataCategory.PICKERS)

    async def get_bay_assignments_cached(self) -> Any:
        return await self.get_cached(DataCategory.BAY_ASSIGNMENTS)

    async def get_version_cached(self) -> Any:
        return await self.get_cached(DataCategory.BUILD_VERSION)

    async def get_staging_area_cached(self) -> Any:
        return await self.get_cached(DataCategory.STAGING_AREA)

    async def get_trucks_cached(self) -> Any:
        return await self.get_cached(DataCategory.TRUCKS)

    async def _fetch(self, category: DataCategory) -> Any:
        body = await self._executor.execute(get_action_for_category(category))
        data = extract_category_data(category, body)
        self._store(category, data)
        return data

    def _store(self, category: DataCategory, data: Any) -> None:
        """Store data in cache. Last write wins."""
        self._cache[category] = CacheEntry(
            category=category,
            data=data,
            fetched_at=self._now(),
        )

    def _is_offline(self) -> bool:
        return self._health is not None and not self._health.get_state().is_online

    # =========================================================
    # PRELOAD / REFRESH
    # =========================================================

    async def preload_all(self) -> Optional[PreloadCompleted]:
        """
        Fetch every category concurrently and cache whatever succeeds.

        Does nothing if a preload is running or has already completed.

        Returns:
            The completion event, or None if nothing ran
        """
        if self.is_preloading or self.preloaded:
            logger.debug("Preload already running or done, skipping")
            return None

        self.is_preloading = True
        logger.info("Starting background data preloading...")
        perf_id = self._perf.start("data_preload_all")
        started = time.perf_counter()

        try:
            categories = list(DataCategory)
            results = await asyncio.gather(
                *(
                    self._coalescer.get_or_fetch(c.value, lambda c=c: self._fetch(c))
                    for c in categories
                ),
                return_exceptions=True,
            )

            succeeded: List[str] = []
            failed: List[str] = []
            for category, result in zip(categories, results):
                if isinstance(result, BaseException):
                    logger.warning(f"Preload of {category.value} failed: {result}")
                    failed.append(category.value)
                else:
                    succeeded.append(category.value)

            duration_ms = (time.perf_counter() - started) * 1000
            self.preloaded = True
            logger.info(
                f"Data preloading completed in {duration_ms:.0f}ms "
                f"({len(succeeded)}/{len(categories)} categories)"
            )
        finally:
            self.is_preloading = False

        self._perf.end(perf_id, {"succeeded": len(succeeded), "failed": len(failed)})
        event = PreloadCompleted(
            at=self._now(),
            duration_ms=duration_ms,
            succeeded=succeeded,
            failed=failed,
        )
        self.preload_events.publish(event)
        return event

    async def refresh(self, force: bool = False) -> Optional[PreloadCompleted]:
        """
        Re-run the preload.

        Every refresh clears the ``preloaded`` flag so it actually runs.

        Args:
            force: Also drop every cached entry first
        """
        if force:
            count = len(self._cache)
            self._cache.clear()
            logger.info(f"Forced refresh: cleared {count} cache entries")
        self.preloaded = False
        return await self.preload_all()

    def clear_cache(self) -> int:
        """
        Clear all cache entries.

        Returns:
            Number of entries cleared
        """
        count = len(self._cache)
        self._cache.clear()
        self.preloaded = False
        logger.info(f"Cleared {count} cache entries")
        return count

    # =========================================================
    # CONNECTION CHANGES
    # =========================================================

    def _on_connection_state(self, state: ConnectionState) -> None:
        was_online = self._connection_online
        self._connection_online = state.is_online

        if was_online and not state.is_online:
            logger.warning("Connection lost - serving stale cache where available")
            self.connection_events.publish(ConnectionChanged(online=False, at=self._now()))
        elif not was_online and state.is_online:
            logger.info("Connection restored - refreshing data")
            self.connection_events.publish(ConnectionChanged(online=True, at=self._now()))
            self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, skipping refresh after reconnect")
            return
        task = loop.create_task(self.refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def close(self) -> None:
        """Detach from the health monitor and cancel background refreshes."""
        if self._unsubscribe_health is not None:
            self._unsubscribe_health()
            self._unsubscribe_health = None
        for task in list(self._background):
            task.cancel()
        self._background.clear()

    # =========================================================
    # INTROSPECTION
    # =========================================================

    def get_cache_status(self) -> Dict[str, CacheStatus]:
        """Per category: cached or not, age in seconds, and JSON size estimate."""
        now = self._now()
        status: Dict[str, CacheStatus] = {}
        for category in DataCategory:
            entry = self._cache.get(category)
            if entry is None:
                status[category.value] = CacheStatus(cached=False)
                continue
            status[category.value] = CacheStatus(
                cached=True,
                age_seconds=entry.age_seconds(now),
                size=len(json.dumps(entry.data, default=str)),
            )
        return status

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        hits = self._stats["hits_fresh"] + self._stats["hits_offline"]
        total_requests = hits + self._stats["misses"]
        hit_rate = (hits / total_requests * 100) if total_requests > 0 else 0

        return {
            "entries": len(self._cache),
            **self._stats,
            "hit_rate_percent": round(hit_rate, 1),
            "is_preloading": self.is_preloading,
            "preloaded": self.preloaded,
            "coalescer": self._coalescer.get_stats(),
        }
