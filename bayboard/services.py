"""
Builds the data access layer once and hands out explicit references.
"""
from dataclasses import dataclass
from typing import Optional

import httpx

from config.settings import Settings
from bayboard.actions import WarehouseApi
from bayboard.api_client import RequestExecutor
from bayboard.cache import CacheManager
from bayboard.health import HealthMonitor
from bayboard.perf import PerformanceMonitor
from bayboard.transport import RemoteTransport


@dataclass
class Services:
    """Everything the dashboard needs to talk to the backend."""
    settings: Settings
    transport: RemoteTransport
    perf: PerformanceMonitor
    health: HealthMonitor
    executor: RequestExecutor
    cache: CacheManager
    api: WarehouseApi

    async def aclose(self) -> None:
        """Stop timers and release the HTTP client."""
        self.cache.close()
        self.health.stop()
        await self.transport.aclose()


def build_services(
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> Services:
    """
    Wire transport -> health monitor / executor -> cache manager.

    Args:
        settings: Application settings
        client: Optional pre-built httpx client (tests inject a mock transport)
    """
    transport = RemoteTransport(settings.backend_url, client=client)
    perf = PerformanceMonitor()
    health = HealthMonitor(settings, transport, perf=perf)
    executor = RequestExecutor(settings, transport, health=health)
    cache = CacheManager(executor, settings, health=health, perf=perf)
    return Services(
        settings=settings,
        transport=transport,
        perf=perf,
        health=health,
        executor=executor,
        cache=cache,
        api=WarehouseApi(executor),
    )
