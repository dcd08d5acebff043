"""
Flag engine service entry point.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from prometheus_client import make_asgi_app

from flagengine import __version__
from flagengine.api import api_router
from flagengine.core.config import get_settings
from flagengine.core.flags.manager import FlagManager, get_flag_manager
from flagengine.core.logging.structured import (
    bind_request_id,
    clear_log_context,
    setup_structured_logging,
)

logger = logging.getLogger(__name__)


def create_app(manager: Optional[FlagManager] = None) -> FastAPI:
    """Build the application around ``manager`` (the process-wide one by default)."""
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_structured_logging(
            service_name=settings.SERVICE_NAME,
            environment=settings.ENVIRONMENT,
            level=settings.LOG_LEVEL,
            json_output=settings.LOG_JSON,
        )
        flag_manager = app.state.flag_manager
        logger.info("Starting flag engine...")
        await flag_manager.start()
        logger.info(f"Flag registry loaded: {len(flag_manager.registry)} flags")
        try:
            yield
        finally:
            await flag_manager.stop()
            logger.info("Flag engine stopped")

    app = FastAPI(
        title="Flag Engine",
        description="Feature flag evaluation service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.flag_manager = manager or get_flag_manager()
    app.include_router(api_router, prefix="/api")
    app.mount("/metrics", make_asgi_app())

    # Tag log records with a request id for the duration of each request
    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = bind_request_id(request.headers.get("X-Request-ID"))
        try:
            response = await call_next(request)
        finally:
            clear_log_context()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health")
    async def health() -> dict:
        registry = app.state.flag_manager.registry
        return {
            "status": "healthy",
            "flags": len(registry),
            "registry_version": registry.snapshot.version,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(), host=settings.HOST, port=settings.PORT)
