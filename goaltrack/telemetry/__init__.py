"""Logging setup and request-scoped log context."""

from __future__ import annotations

from goaltrack.telemetry.logging import (
    RequestIdMiddleware,
    bind_user_context,
    clear_context,
    configure_logging,
)

__all__ = [
    "RequestIdMiddleware",
    "bind_user_context",
    "clear_context",
    "configure_logging",
]
