"""
LeadFlow API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import engine, get_session, ping
from app.core.errors import register_error_handlers
from app.core.logging import configure_logging
from app.core.middleware import (
    CSRF_HEADER,
    REQUEST_ID_HEADER,
    CSRFMiddleware,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
)
from app.api.v1 import router as api_v1_router
from app.api.v1.auth import router as auth_router
from leadflow_shared.schemas.permissions import PermissionTable, build_permission_table

settings = get_settings()
log = structlog.get_logger()


def create_app(permissions: PermissionTable | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="LeadFlow",
        description="Multi-tenant lead management: organizations, pipeline, leads and invitations.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Declared once, read by every authorization check.
    app.state.permissions = permissions or build_permission_table()

    register_error_handlers(app)

    # Middleware: each add wraps the previous ones, so the last added runs first
    app.add_middleware(SecurityHeadersMiddleware, hsts=not settings.debug)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", CSRF_HEADER, REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestContextMiddleware)

    # Auth routes (not org-scoped)
    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness: the process is up and serving."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check(session: AsyncSession = Depends(get_session)):
        """Readiness check endpoint: the database must answer."""
        try:
            await ping(session)
        except SQLAlchemyError as exc:
            log.warning("readiness.database_unavailable", error=type(exc).__name__)
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("LeadFlow starting", roles=list(app.state.permissions.roles))

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("LeadFlow shutting down")
        await engine.dispose()

    return app


app = create_app()
