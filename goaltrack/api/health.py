"""Unauthenticated liveness and readiness checks.

``/health/live`` answers while the process runs; ``/health/ready`` also
runs ``SELECT 1`` and answers 503 when the database is unreachable.
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from goaltrack.database import get_engine

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict:
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}


@router.get("/ready")
async def readiness() -> JSONResponse:
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "ok"
    except (SQLAlchemyError, RuntimeError, OSError) as exc:
        log.warning("health.database_unreachable", error=str(exc))
        db_status = f"error: {exc}"

    is_ready = db_status == "ok"
    return JSONResponse(
        status_code=200 if is_ready else 503,
        content={
            "status": "ready" if is_ready else "not_ready",
            "database": db_status,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )
