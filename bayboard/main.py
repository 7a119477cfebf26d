"""
Bay Board - FastAPI application

Exposes the resilient backend access layer to the dashboard: cached data by
category, connection health, cache controls, record actions, and an action proxy.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from config.settings import Settings, settings as default_settings
from bayboard.cache import DataCategory
from bayboard.errors import RemoteAccessError
from bayboard.schemas import PinVerifyRequest, StageRecordCreate, StageRecordFieldUpdate
from bayboard.services import Services, build_services

logging.basicConfig(level=default_settings.log_level)
logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v0.1.0"
APP_NAME = "Bay Board"

# Error kind -> HTTP status returned to the dashboard
ERROR_STATUS = {
    "config": 500,
    "timeout": 504,
    "network": 502,
    "http": 502,
    "application": 422,
    "retry_exhausted": 502,
}

router = APIRouter()


def _services(request: Request) -> Services:
    return request.app.state.services


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    status = _services(request).health.connection_status()
    return {"status": "ok", "backend": status.to_dict()}


@router.get("/version")
async def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "full": f"{APP_NAME} {APP_VERSION}",
    }


# ===== CONNECTION =====

@router.get("/api/connection")
async def connection_info(request: Request):
    """Connection state, UI status reading, and probe success rate."""
    health = _services(request).health
    return {
        "healthy": health.is_healthy(),
        "state": health.get_state().to_dict(),
        "status": health.connection_status().to_dict(),
        "successRate": health.get_success_rate(),
    }


@router.post("/api/connection/{event}")
async def connection_event(event: str, request: Request):
    """Deliver a platform connectivity notification ("online" or "offline")."""
    health = _services(request).health
    if event == "online":
        health.handle_online()
    elif event == "offline":
        health.handle_offline()
    else:
        raise HTTPException(status_code=404, detail=f"Unknown connectivity event: {event}")
    return health.get_state().to_dict()


# ===== CACHE =====

@router.get("/api/cache/status")
async def cache_status(request: Request):
    """Per-category cache status."""
    status = _services(request).cache.get_cache_status()
    return {key: value.to_dict() for key, value in status.items()}


@router.get("/api/cache/stats")
async def cache_stats(request: Request):
    """Cache and executor statistics."""
    services = _services(request)
    return {
        "cache": services.cache.get_stats(),
        "executor": services.executor.get_stats(),
    }


@router.post("/api/cache/refresh")
async def cache_refresh(
    request: Request,
    force: bool = Query(default=False, description="Drop cached entries before refetching"),
):
    """Re-run the preload of every category."""
    event = await _services(request).cache.refresh(force=force)
    if event is None:
        return {"refreshed": False, "reason": "preload already running"}
    return {
        "refreshed": True,
        "durationMs": round(event.duration_ms, 1),
        "succeeded": event.succeeded,
        "failed": event.failed,
    }


@router.delete("/api/cache")
async def cache_clear(request: Request):
    """Clear every cached entry."""
    return {"cleared": _services(request).cache.clear_cache()}


@router.get("/api/data/{category}")
async def category_data(category: str, request: Request):
    """Cached data for one category, falling back to stale data on failure."""
    try:
        parsed = DataCategory.parse(category)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown category: {category}")
    data = await _services(request).cache.get_cached(parsed)
    return {"category": parsed.value, "data": data}


# ===== STAGE RECORDS =====

@router.get("/api/stage-records")
async def stage_records(
    request: Request,
    day: Optional[date] = Query(default=None, alias="date", description="YYYY-MM-DD"),
):
    """Stage records, optionally for one day."""
    return {"data": await _services(request).api.get_stage_records(day)}


@router.post("/api/stage-records")
async def create_stage_record(record: StageRecordCreate, request: Request):
    """Create a stage record."""
    return await _services(request).api.add_stage_record(record.model_dump(exclude_none=True))


@router.patch("/api/stage-records/{row_index}")
async def update_stage_record(row_index: int, update: StageRecordFieldUpdate, request: Request):
    """Change one field of a stage record."""
    return await _services(request).api.update_stage_record_field(
        row_index, update.field, update.value
    )


@router.delete("/api/stage-records/{row_index}")
async def delete_stage_record(row_index: int, request: Request):
    """Delete a stage record."""
    return await _services(request).api.delete_stage_record(row_index)


@router.get("/api/summary")
async def daily_summary(
    request: Request,
    day: Optional[date] = Query(default=None, alias="date", description="Defaults to today (Eastern)"),
):
    """Daily summary for one business day."""
    return await _services(request).api.get_daily_summary(day)


@router.post("/api/pin/verify")
async def verify_pin(body: PinVerifyRequest, request: Request):
    """Check the admin PIN with the backend."""
    return {"valid": await _services(request).api.verify_pin(body.pin)}


# ===== ACTION PROXY =====

@router.get("/api/proxy")
async def proxy_get(request: Request):
    """Forward ``?action=...&param=...`` to the backend through the executor."""
    params: Dict[str, Any] = dict(request.query_params)
    action = params.pop("action", None)
    if not action:
        return JSONResponse({"error": "Action parameter required"}, status_code=400)
    return await _services(request).executor.execute(action, params)


@router.post("/api/proxy")
async def proxy_post(request: Request):
    """Forward a JSON body ``{"action": ..., ...params}`` to the backend."""
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Request body must be JSON"}, status_code=400)
    if not isinstance(body, dict) or not body.get("action"):
        return JSONResponse({"error": "Action parameter required"}, status_code=400)
    action = body.pop("action")
    return await _services(request).executor.execute(action, body)


async def remote_error_handler(request: Request, exc: RemoteAccessError):
    """Map typed backend failures to HTTP responses."""
    status_code = ERROR_STATUS.get(exc.kind, 502)
    logger.warning(f"{request.method} {request.url.path} failed: {exc.kind}: {exc}")
    return JSONResponse(exc.to_dict(), status_code=status_code)


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
    start_background: bool = True,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (defaults to the environment)
        client: Optional httpx client for the backend transport
        start_background: Start health monitoring and the initial preload
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = build_services(settings, client=client)
        app.state.services = services
        preload: Optional[asyncio.Task] = None
        if start_background:
            services.health.start()
            preload = asyncio.create_task(services.cache.preload_all())
        try:
            yield
        finally:
            if preload is not None and not preload.done():
                preload.cancel()
                await asyncio.gather(preload, return_exceptions=True)
            await services.aclose()

    app = FastAPI(
        title=APP_NAME,
        description="Resilient access to the warehouse coordination backend",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.include_router(router)
    app.add_exception_handler(RemoteAccessError, remote_error_handler)
    return app


app = create_app()
