"""Request authentication.

get_current_user turns the ``Authorization: Bearer`` header into a User row.
A valid token for an unknown ``sub`` creates the user on the spot, so a new
account needs no separate sign-up call.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goaltrack.auth.oidc import TokenValidationError, validate_token
from goaltrack.config import Settings, get_settings
from goaltrack.database import get_db_session
from goaltrack.models.user import User
from goaltrack.telemetry.logging import bind_user_context

log = structlog.get_logger(__name__)

_BEARER_PREFIX = "Bearer "


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _token_claims(request: Request, settings: Settings) -> dict[str, Any]:
    header = request.headers.get("Authorization", "")
    if not header.startswith(_BEARER_PREFIX):
        raise _unauthorized("Bearer token required")

    try:
        return await validate_token(header[len(_BEARER_PREFIX):].strip(), settings)
    except TokenValidationError as exc:
        log.info("auth.token_rejected", reason=str(exc))
        raise _unauthorized("Invalid or expired token") from exc


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> User:
    """Authenticated caller; 401 for a bad token, 403 for a disabled account."""
    claims = await _token_claims(request, settings)
    external_id = claims["sub"]

    result = await db.execute(select(User).where(User.external_id == external_id))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(
            external_id=external_id,
            email=claims.get("email") or f"{external_id}@unknown",
            display_name=claims.get("name"),
            is_active=True,
        )
        db.add(user)
        await db.flush()
        log.info("auth.user_provisioned", user_id=str(user.id))
    elif not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account disabled",
        )

    user.last_login_at = datetime.now(UTC)
    bind_user_context(user.id)
    return user
