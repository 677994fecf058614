"""
Global exception handlers for the FastAPI application.

Catches:
1. MarketSyncError subclasses, mapped to HTTP status codes. Remote
   marketplace errors include their structured error list.
2. Unhandled Exception: 500 with a unique ``error_id`` for log
   correlation.

HTTPException is left to FastAPI's built-in handler.
"""

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketsync.core.exceptions import (
    AuthError,
    ConfigurationError,
    InvalidTransitionError,
    ListingDataError,
    MarketplaceError,
    MarketSyncError,
    NotFoundError,
    ReconnectRequired,
    RecordNotFoundError,
    RemoteTimeoutError,
    RemoteValidationError,
)

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers on the FastAPI app.

    Called from ``create_app()`` after all middleware and routers
    are registered.
    """

    @app.exception_handler(MarketSyncError)
    async def handle_marketsync_error(request: Request, exc: MarketSyncError) -> JSONResponse:
        """Map MarketSyncError subclasses to HTTP status codes."""
        status_code = _get_status_code(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            f"{type(exc).__name__}: {exc.message}",
            extra={"error_type": type(exc).__name__, "path": request.url.path},
        )
        content = {"detail": exc.message, "error_type": type(exc).__name__}
        if isinstance(exc, MarketplaceError) and exc.errors:
            content["errors"] = [err.to_dict() for err in exc.errors]
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        return JSONResponse(status_code=status_code, content=content, headers=headers)

    @app.exception_handler(Exception)
    async def handle_unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: log, return 500 with error_id."""
        error_id = uuid.uuid4().hex[:8]
        logger.exception(
            f"Unhandled exception (error_id={error_id})",
            extra={"error_id": error_id, "path": request.url.path},
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error_id": error_id,
            },
        )


def _get_status_code(exc: MarketSyncError) -> int:
    """Map exception type to HTTP status code."""
    if isinstance(exc, AuthError):
        return 401
    if isinstance(exc, ConfigurationError):
        return 400
    if isinstance(exc, ReconnectRequired):
        return 409
    if isinstance(exc, RecordNotFoundError):
        return 404
    if isinstance(exc, InvalidTransitionError):
        return 409
    if isinstance(exc, ListingDataError):
        return 422
    if isinstance(exc, RemoteValidationError):
        return 422
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, RemoteTimeoutError):
        return 504
    if isinstance(exc, MarketplaceError):
        return 502
    # Base MarketSyncError fallback
    return 500
