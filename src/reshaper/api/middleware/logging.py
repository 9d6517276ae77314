"""Request logging for the webhook surface.

Every request produces one ``http_request`` log line. Transform calls also
carry the category from the path and the caller's idempotency key, so a
delivery can be followed from the edge into the pipeline's own log lines
(which share the bound ``request_id``).
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.reshaper.config import Environment, Settings, get_settings

REQUEST_ID_HEADER = "X-Request-ID"

logger = structlog.get_logger(__name__)


def _renderer(settings: Settings) -> Any:
    if settings.ENVIRONMENT == Environment.production:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def configure_structlog(settings: Settings | None = None) -> None:
    """Route structlog through stdlib logging at ``LOG_LEVEL``.

    Production renders JSON lines; every other environment renders
    key=value console output.
    """
    settings = settings or get_settings()
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _renderer(settings),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _delivery_fields(request: Request) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    category = request.path_params.get("category")
    if category:
        fields["category"] = category
    key = request.headers.get(get_settings().IDEMPOTENCY_HEADER)
    if key:
        fields["idempotency_key"] = key
    length = request.headers.get("content-length")
    if length and length.isdigit():
        fields["body_bytes"] = int(length)
    return fields


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class LoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, tagged with a fresh request id.

    The id is bound into structlog contextvars while the request runs and
    returned to the caller in ``X-Request-ID``.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = uuid.uuid4().hex
        started = time.monotonic()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            logger.log(
                _level_for(status_code),
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                elapsed_ms=round((time.monotonic() - started) * 1000, 2),
                **_delivery_fields(request),
            )
            structlog.contextvars.unbind_contextvars("request_id")
