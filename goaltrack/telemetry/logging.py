"""structlog setup and per-request log context.

Every record carries an ISO timestamp, level, logger name and whatever is
bound in contextvars for the current request (``request_id`` from
RequestIdMiddleware, ``user_id`` once the caller is authenticated).  Prod
renders one JSON object per line; dev renders colored console output with
Rich tracebacks.
"""

from __future__ import annotations

import logging
import sys
import uuid
from typing import Any

import structlog
from structlog.types import Processor

REQUEST_ID_HEADER = b"x-request-id"


def configure_logging(*, json_logs: bool = False, log_level: str = "INFO") -> None:
    """Route stdlib logging to stdout and install the structlog pipeline."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    renderer: Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.RichTracebackFormatter(),
        )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class RequestIdMiddleware:
    """ASGI middleware giving each HTTP request a fresh log context.

    The generated id is bound as ``request_id`` and returned to the client in
    the ``x-request-id`` response header.
    """

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = f"req_{uuid.uuid4().hex[:16]}"
        clear_context()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        async def send_wrapper(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = [
                    *message.get("headers", []),
                    (REQUEST_ID_HEADER, request_id.encode()),
                ]
            await send(message)

        await self.app(scope, receive, send_wrapper)


def bind_user_context(user_id: str | uuid.UUID) -> None:
    structlog.contextvars.bind_contextvars(user_id=str(user_id))


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
