"""
FleetFusion Access Control API Server

Entry point for the FastAPI application.
"""

import asyncio
import contextlib

import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

from app.api.v1 import router as api_v1_router
from app.core.cache import AuthCache, run_periodic_purge
from app.core.config import get_settings
from app.core.database import get_session, ping
from app.core.errors import AuthorizationError, authorization_error_handler
from app.core.logs import configure_logging
from app.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="FleetFusion Access Control",
        description="Role and permission resolution for FleetFusion tenants.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.auth_cache = AuthCache(
        user_ttl=settings.user_cache_ttl_seconds,
        organization_ttl=settings.organization_cache_ttl_seconds,
    )
    app.state.purge_task = None

    app.add_exception_handler(AuthorizationError, authorization_error_handler)

    # Middleware (last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check(session: AsyncSession = Depends(get_session)):
        """Readiness check: the mirror is reachable. Includes auth cache stats."""
        if not await ping(session):
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ready", "cache": app.state.auth_cache.stats()}

    @app.on_event("startup")
    async def on_startup():
        log.info("fleetfusion.starting", environment=settings.environment)
        app.state.purge_task = asyncio.create_task(
            run_periodic_purge(app.state.auth_cache, settings.cache_purge_interval_seconds)
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("fleetfusion.shutting_down")
        task = app.state.purge_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        app.state.auth_cache.clear()

    return app


app = create_app()
