"""Tests for marketsync.middleware.exception_handler: global exception handlers."""

from unittest.mock import patch

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from marketsync.core.exceptions import (
    AuthError,
    ConfigurationError,
    InvalidTransitionError,
    ListingDataError,
    MarketplaceError,
    MarketplaceErrorDetail,
    MarketSyncError,
    NotFoundError,
    ReconnectRequired,
    RecordNotFoundError,
    RemoteTimeoutError,
    RemoteValidationError,
)
from marketsync.middleware.exception_handler import register_exception_handlers


def _make_app_with_handler(exc_to_raise: Exception) -> FastAPI:
    """Create a minimal FastAPI app that raises the given exception."""
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/test")
    async def test_route():
        raise exc_to_raise

    return app


def _get(exc: Exception):
    client = TestClient(_make_app_with_handler(exc), raise_server_exceptions=False)
    return client.get("/test")


class TestMarketSyncErrorMapping:
    """Verify MarketSyncError subclasses map to correct HTTP status codes."""

    def test_auth_error_returns_401_with_challenge(self):
        resp = _get(AuthError("Missing bearer token"))
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"
        assert resp.json()["error_type"] == "AuthError"

    def test_configuration_error_returns_400(self):
        resp = _get(ConfigurationError("Marketplace account is missing: return policy"))
        assert resp.status_code == 400
        assert "return policy" in resp.json()["detail"]

    def test_reconnect_required_returns_409(self):
        resp = _get(ReconnectRequired("reconnect"))
        assert resp.status_code == 409
        assert resp.json()["error_type"] == "ReconnectRequired"

    def test_record_not_found_returns_404(self):
        resp = _get(RecordNotFoundError("Product SKU-1 not found"))
        assert resp.status_code == 404

    def test_invalid_transition_returns_409(self):
        resp = _get(InvalidTransitionError(current="unlisted", action="withdraw"))
        assert resp.status_code == 409
        assert "unlisted" in resp.json()["detail"]

    def test_listing_data_error_returns_422(self):
        resp = _get(ListingDataError("Product SKU-1 has no price"))
        assert resp.status_code == 422

    def test_remote_validation_error_returns_422_with_errors(self):
        detail = MarketplaceErrorDetail(error_id=25002, message="Invalid category")
        resp = _get(RemoteValidationError("rejected", status_code=400, errors=[detail]))
        assert resp.status_code == 422
        body = resp.json()
        assert body["errors"][0]["error_id"] == 25002
        assert body["errors"][0]["message"] == "Invalid category"

    def test_remote_not_found_returns_404(self):
        resp = _get(NotFoundError("offer missing", status_code=404))
        assert resp.status_code == 404

    def test_remote_timeout_returns_504(self):
        resp = _get(RemoteTimeoutError("GET /sell/inventory/v1/offer timed out"))
        assert resp.status_code == 504

    def test_marketplace_error_returns_502(self):
        resp = _get(MarketplaceError("eBay API down", status_code=503))
        assert resp.status_code == 502
        assert resp.json()["error_type"] == "MarketplaceError"
        assert "errors" not in resp.json()

    def test_base_error_returns_500(self):
        resp = _get(MarketSyncError("unknown"))
        assert resp.status_code == 500
        assert resp.json()["error_type"] == "MarketSyncError"


class TestUnhandledException:
    """Verify catch-all handler for unexpected errors."""

    def test_returns_500_with_error_id(self):
        resp = _get(RuntimeError("kaboom"))
        assert resp.status_code == 500
        body = resp.json()
        assert body["detail"] == "Internal server error"
        assert len(body["error_id"]) == 8

    @patch("marketsync.middleware.exception_handler.logger")
    def test_logs_unhandled_exception(self, mock_logger):
        _get(RuntimeError("kaboom"))
        mock_logger.exception.assert_called_once()
        log_msg = mock_logger.exception.call_args[0][0]
        assert "Unhandled exception" in log_msg
        assert "error_id=" in log_msg

    @patch("marketsync.middleware.exception_handler.logger")
    def test_server_side_error_logged_as_error(self, mock_logger):
        _get(MarketplaceError("eBay API down"))
        mock_logger.error.assert_called_once()
        assert "MarketplaceError" in mock_logger.error.call_args[0][0]

    @patch("marketsync.middleware.exception_handler.logger")
    def test_client_side_error_logged_as_warning(self, mock_logger):
        _get(ConfigurationError("not connected"))
        mock_logger.warning.assert_called_once()
        mock_logger.error.assert_not_called()


class TestHTTPExceptionPassthrough:
    """Verify HTTPException is handled by FastAPI, not our handler."""

    def test_http_exception_passthrough(self):
        resp = _get(HTTPException(status_code=404, detail="not found"))
        assert resp.status_code == 404
        assert resp.json()["detail"] == "not found"
        assert "error_id" not in resp.json()
