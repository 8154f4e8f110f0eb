"""HTTP server exposing the dispatch trigger surface."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI

from capi_dispatch import api_routes
from capi_dispatch.config import get_config
from capi_dispatch.runtime import DispatchServices, build_services

logger = logging.getLogger(__name__)


def create_app(services: DispatchServices | None = None) -> FastAPI:
    """Build the FastAPI app.

    When ``services`` is given it is used as-is (and left open on shutdown);
    otherwise services are built from the process config at startup, which
    fails fast on missing settings or credentials.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        owned: DispatchServices | None = None
        if services is None:
            owned = build_services(get_config())
            api_routes.set_services(owned)
        logger.info("capi_dispatch API started")
        try:
            yield
        finally:
            if owned is not None:
                await owned.close()
                api_routes.set_services(None)
            logger.info("capi_dispatch API stopped")

    app = FastAPI(title="capi_dispatch", lifespan=lifespan)
    app.include_router(api_routes.router)
    app.include_router(api_routes.redis_router)

    if services is not None:
        api_routes.set_services(services)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def serve(host: str | None = None, port: int | None = None) -> None:
    """Run the API with uvicorn until interrupted."""
    config = get_config()
    uvicorn.run(
        create_app(),
        host=host or config.api.host,
        port=port or config.api.port,
        log_config=None,
    )
