"""
Request/response logging middleware.

Logs all API requests with timing and status codes. Binds a
``request_id`` to structlog's contextvars so every logger (and every
audit entry) written during the request carries it. An incoming
``X-Request-ID`` header is reused as the correlation id.
"""

import logging
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("marketsync.api")

_MAX_REQUEST_ID_LENGTH = 64


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every HTTP request and returns X-Request-ID / X-Response-Time headers."""

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get("x-request-id", "").strip()
        request_id = incoming[:_MAX_REQUEST_ID_LENGTH] or uuid.uuid4().hex[:8]

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.monotonic()
        try:
            response = await call_next(request)
        finally:
            duration_ms = round((time.monotonic() - start_time) * 1000, 1)

        if request.url.path != "/health":
            logger.info(
                f"{request.method} {request.url.path} "
                f"→ {response.status_code} "
                f"({duration_ms}ms) "
                f"[{request.client.host if request.client else 'unknown'}]"
            )

        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        response.headers["X-Request-ID"] = request_id

        structlog.contextvars.clear_contextvars()
        return response
