"""Tests for marketsync.core.sentry_config: Sentry initialization and event filtering."""

from unittest.mock import MagicMock, patch

from fastapi import HTTPException

from marketsync.config import AppEnv
from marketsync.core.exceptions import (
    AuthError,
    ConfigurationError,
    MarketplaceError,
    MarketSyncError,
    ReconnectRequired,
)
from marketsync.core.sentry_config import _filter_events, init_sentry


class TestInitSentry:
    """Verify Sentry SDK initialization behavior."""

    @patch("marketsync.core.sentry_config.sentry_sdk.init")
    def test_skips_init_when_dsn_empty(self, mock_init: MagicMock):
        init_sentry(dsn="", app_env=AppEnv.PRODUCTION, app_version="0.4.0")
        mock_init.assert_not_called()

    @patch("marketsync.core.sentry_config.sentry_sdk.init")
    def test_initializes_with_valid_dsn(self, mock_init: MagicMock):
        init_sentry(
            dsn="https://key@sentry.io/123",
            app_env=AppEnv.PRODUCTION,
            app_version="0.4.0",
            traces_sample_rate=0.2,
            profiles_sample_rate=0.05,
        )
        mock_init.assert_called_once()
        call_kwargs = mock_init.call_args[1]
        assert call_kwargs["dsn"] == "https://key@sentry.io/123"
        assert call_kwargs["environment"] == "production"
        assert call_kwargs["release"] == "marketsync@0.4.0"
        assert call_kwargs["traces_sample_rate"] == 0.2
        assert call_kwargs["send_default_pii"] is False
        assert call_kwargs["before_send"] is _filter_events


class TestFilterEvents:
    """Verify Sentry event filtering logic."""

    def test_drops_4xx_http_exception(self):
        hint = {"exc_info": (HTTPException, HTTPException(status_code=404), None)}
        assert _filter_events({"exception": {}}, hint) is None

    def test_keeps_500_http_exception(self):
        event = {"exception": {}}
        hint = {"exc_info": (HTTPException, HTTPException(status_code=500), None)}
        assert _filter_events(event, hint) is event

    def test_drops_expected_setup_errors(self):
        for exc in (AuthError("no token"), ConfigurationError("no policy"), ReconnectRequired("x")):
            hint = {"exc_info": (type(exc), exc, None)}
            assert _filter_events({}, hint) is None

    def test_tags_marketplace_error(self):
        exc = MarketplaceError("eBay down", status_code=503)
        result = _filter_events({}, {"exc_info": (MarketplaceError, exc, None)})
        assert result["tags"]["error_type"] == "MarketplaceError"
        assert result["extra"]["status_code"] == 503

    def test_tags_base_error_without_details(self):
        exc = MarketSyncError("generic")
        result = _filter_events({}, {"exc_info": (MarketSyncError, exc, None)})
        assert result["tags"]["error_type"] == "MarketSyncError"
        assert "extra" not in result

    def test_strips_authorization_header(self):
        event = {"request": {"headers": {"Authorization": "Bearer secret", "Accept": "*/*"}}}
        result = _filter_events(event, {})
        assert result["request"]["headers"]["Authorization"] == "[Filtered]"
        assert result["request"]["headers"]["Accept"] == "*/*"

    def test_passes_event_without_exc_info(self):
        event = {"message": "something happened"}
        assert _filter_events(event, {}) is event
