"""goaltrack ASGI app: `uvicorn goaltrack.main:app`.

Startup configures logging before anything else logs, then opens the
database; shutdown disposes the engine.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from goaltrack.api.router import api_v1_router, public_router
from goaltrack.config import get_settings
from goaltrack.database import close_db, create_all, init_db
from goaltrack.telemetry.logging import RequestIdMiddleware, configure_logging

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the database for the life of the process."""
    settings = get_settings()

    configure_logging(
        json_logs=settings.is_prod,
        log_level="DEBUG" if settings.debug else settings.log_level,
    )

    log.info("app.starting", environment=settings.environment)

    init_db(settings)
    if settings.database_url.startswith("sqlite"):
        # Local SQLite runs skip Alembic
        await create_all()

    try:
        yield
    finally:
        await close_db()
        log.info("app.stopped")


def create_app() -> FastAPI:
    """Build the app; tests call this directly with overridden dependencies."""
    settings = get_settings()

    app = FastAPI(
        title="Goal Tracker",
        description="Goal tracking with activity logging and progress analytics.",
        version="0.1.0",
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
        openapi_url="/openapi.json" if settings.is_dev else None,
        lifespan=lifespan,
    )

    # Starlette runs the last-added middleware outermost
    cors_origins = ["*"] if settings.is_dev else settings.cors_allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.is_prod,
        allow_methods=["*"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.add_middleware(RequestIdMiddleware)

    app.include_router(public_router)
    app.include_router(api_v1_router)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "app.unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()
