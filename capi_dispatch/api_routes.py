"""FastAPI routers for the dispatch trigger and diagnostic endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from capi_dispatch.constants import DEFAULT_EXPERIMENT_LABEL
from capi_dispatch.debug import fire_debug_event
from capi_dispatch.runtime import DispatchServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/capi", tags=["capi"])
redis_router = APIRouter(prefix="/api/redis", tags=["redis"])

# Set by the app lifespan during startup
_services: DispatchServices | None = None


def set_services(services: DispatchServices | None) -> None:
    """Called on startup to inject the shared dispatch services."""
    global _services
    _services = services


def _get_services() -> DispatchServices:
    if _services is None:
        raise HTTPException(status_code=503, detail="Dispatch services not available")
    return _services


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.api_route("/chat-threshold-cron", methods=["GET", "POST"], response_model=None)
async def chat_threshold_cron() -> dict[str, Any] | JSONResponse:
    """Run one dispatch pass (invoked by the external scheduler)."""
    services = _get_services()
    try:
        report = await services.orchestrator().run()
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Dispatch run failed: %s", exc, exc_info=True)
        return _error(500, str(exc) or "cron failure")
    return report.to_response()


@router.get("/debug-fire", response_model=None)
async def debug_fire(
    e164: str | None = None,
    session_id: str | None = None,
    experiment_label: str = DEFAULT_EXPERIMENT_LABEL,
    source_url: str | None = None,
) -> dict[str, Any] | JSONResponse:
    """Fire one synthetic event, bypassing the ledger and eligibility filter."""
    if not e164 or not session_id:
        return _error(400, "e164 and session_id are required")
    services = _get_services()
    try:
        result = await fire_debug_event(
            services.delivery,
            identity=e164,
            session_id=session_id,
            experiment_label=experiment_label,
            source_url=source_url,
            action_source=services.action_source,
        )
    except ValueError as exc:
        return _error(400, str(exc))
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Debug fire failed: %s", exc, exc_info=True)
        return _error(500, str(exc) or "debug-fire failed")
    return result.model_dump()


@router.get("/fetch-metabase", response_model=None)
async def fetch_metabase() -> dict[str, Any] | JSONResponse:
    """Return the raw rows of the analytics question."""
    services = _get_services()
    fetch_raw = getattr(services.source, "fetch_raw", None)
    try:
        if fetch_raw is not None:
            rows = await fetch_raw()
        else:
            rows = [row.model_dump(by_alias=True) for row in await services.source.fetch_rows()]
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Metabase fetch failed: %s", exc, exc_info=True)
        return _error(500, str(exc) or "Metabase fetch error")
    return {"rows": rows}


@redis_router.get("", response_model=None)
async def redis_status() -> dict[str, Any] | JSONResponse:
    """Report whether the dedup ledger store is reachable."""
    services = _get_services()
    if services.redis is None:
        return {"connected": True, "backend": type(services.ledger).__name__}
    if await services.redis.ping():
        return {"connected": True, "backend": "redis"}
    return JSONResponse(status_code=503, content={"connected": False, "backend": "redis"})
