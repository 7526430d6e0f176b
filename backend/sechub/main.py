"""
SecHub ingestion service FastAPI application entry point.

Creates and configures the FastAPI app with:
- CORS middleware
- Security headers middleware
- API v1 router (ingestion control endpoints)
- Health check endpoint reporting the pipeline status
- Startup / shutdown hooks that own the database engine and the pipeline
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from sechub.api.v1.router import router as v1_router
from sechub.config import get_settings
from sechub.core.database import (
    dispose_engine,
    get_engine,
    get_session_factory,
    init_models,
)
from sechub.core.logging import configure_logging, get_logger
from sechub.ingestion.base import IngestionStatus
from sechub.ingestion.pipeline import IngestionPipeline

# ── Constants ────────────────────────────────────────────────────────────────

_HEALTH_CHECK_PATH: str = "/health"

_SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


# ── Security Headers Middleware ──────────────────────────────────────────────

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Append the headers in ``_SECURITY_HEADERS`` to every response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response: Response = await call_next(request)
        for header_name, header_value in _SECURITY_HEADERS.items():
            response.headers[header_name] = header_value
        return response


# ── Application Factory ─────────────────────────────────────────────────────

def create_app() -> FastAPI:
    """Build and return the configured FastAPI application instance.

    The ingestion pipeline is created during startup and stored on
    ``app.state.pipeline``; tests may assign their own pipeline there
    instead of running the startup hooks.

    Returns:
        A fully configured ``FastAPI`` app ready to serve requests.
    """
    settings = get_settings()

    application = FastAPI(
        title=settings.APP_NAME,
        description=(
            "CVE and exploit ingestion service -- pulls the NVD feed, "
            "normalizes records and links ExploitDB exploits."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json",
    )

    # ── Middleware (order matters: outermost first) ───────────────────────

    application.add_middleware(SecurityHeadersMiddleware)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=600,
    )

    # ── Routers ──────────────────────────────────────────────────────────

    application.include_router(v1_router, prefix=settings.API_V1_PREFIX)

    # ── Health Check ─────────────────────────────────────────────────────

    @application.get(
        _HEALTH_CHECK_PATH,
        tags=["health"],
        summary="Application health check",
        response_class=JSONResponse,
    )
    async def health_check(request: Request) -> dict[str, Any]:
        """Return the application status and the ingestion pipeline state."""
        pipeline: IngestionPipeline | None = getattr(
            request.app.state, "pipeline", None
        )
        ingestion_status = (
            pipeline.get_progress().status if pipeline is not None else IngestionStatus.IDLE
        )
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": "1.0.0",
            "ingestion": ingestion_status.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # ── Lifecycle Events ─────────────────────────────────────────────────

    @application.on_event("startup")
    async def on_startup() -> None:
        """Configure logging, create missing tables and build the pipeline."""
        configure_logging()
        logger = get_logger(__name__)
        logger.info(
            "Application starting",
            extra={"action": "startup", "target": settings.APP_NAME},
        )

        await init_models(get_engine())
        logger.info(
            "Database schema ready",
            extra={"action": "db_check", "target": settings.DATABASE_URL.split("@")[-1]},
        )

        application.state.pipeline = IngestionPipeline.from_settings(
            get_session_factory()
        )

    @application.on_event("shutdown")
    async def on_shutdown() -> None:
        """Stop a running ingestion and dispose of the database engine."""
        logger = get_logger(__name__)
        logger.info(
            "Application shutting down",
            extra={"action": "shutdown", "target": settings.APP_NAME},
        )
        pipeline: IngestionPipeline | None = getattr(
            application.state, "pipeline", None
        )
        if pipeline is not None and pipeline.is_running:
            await pipeline.stop()
        await dispose_engine()

    return application


# ── Module-Level App Instance ────────────────────────────────────────────────

app: FastAPI = create_app()
