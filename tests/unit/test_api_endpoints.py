"""
Tests for the v1 API endpoints.

Uses FastAPI's TestClient with dependency overrides: the tenant, the
settings and the service bundle are replaced so no database, Redis or
eBay connection is needed.
"""

import uuid
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from marketsync.api.dependencies import get_services
from marketsync.api.v1.auth import decode_state, encode_state
from marketsync.config import Settings, get_settings
from marketsync.core.exceptions import (
    AuthError,
    ConfigurationError,
    MarketplaceError,
    MarketplaceErrorDetail,
    ReconnectRequired,
)
from marketsync.core.models import BatchOperation, BatchResult, PollSummary
from marketsync.main import create_app
from marketsync.middleware.auth_middleware import (
    TenantContext,
    create_access_token,
    get_current_tenant,
)
from tests.fakes import make_credential

TENANT_ID = str(uuid.uuid4())
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _settings(**overrides) -> Settings:
    values = {
        "secret_key": "test-secret-key-for-state-signing-0123456789",
        "ebay_app_id": "MarketSy-test-SBX-1234",
        "ebay_ru_name": "MarketSync-RuName",
        "ebay_verification_token": "verify-token-abcdefghijklmnopqrstuvwxyz",
        "ebay_webhook_endpoint": "https://sync.example.com/api/v1/webhooks/ebay",
        "cors_allowed_origins": "https://app.example.com",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return _settings()


@pytest.fixture
def services():
    return SimpleNamespace(
        tokens=AsyncMock(),
        batch=AsyncMock(),
        poller=AsyncMock(),
        reconciler=AsyncMock(),
        webhooks=AsyncMock(),
    )


@pytest.fixture
def app(settings, services):
    application = create_app()
    application.dependency_overrides[get_current_tenant] = lambda: TenantContext(
        tenant_id=TENANT_ID, claims={}
    )
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_services] = lambda: services
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


# ─── OAuth State ─────────────────────────────────────────────


class TestOAuthState:
    def test_round_trip(self, settings):
        assert decode_state(encode_state(TENANT_ID, settings), settings) == TENANT_ID

    def test_tampered_state_rejected(self, settings):
        state = encode_state(TENANT_ID, settings)
        with pytest.raises(AuthError):
            decode_state(state + "x", settings)

    def test_foreign_key_rejected(self, settings):
        state = encode_state(TENANT_ID, _settings(secret_key="another-secret-key-entirely-0123456789"))
        with pytest.raises(AuthError):
            decode_state(state, settings)

    def test_access_token_is_not_a_state(self, settings):
        with pytest.raises(AuthError):
            decode_state(create_access_token(TENANT_ID, settings), settings)

    def test_expired_state_rejected(self, settings):
        payload = {
            "tenant_id": TENANT_ID,
            "type": "ebay_oauth_state",
            "exp": int((datetime.now(UTC) - timedelta(minutes=1)).timestamp()),
        }
        state = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
        with pytest.raises(AuthError):
            decode_state(state, settings)


# ─── Auth Endpoints ──────────────────────────────────────────


class TestAuthEndpoints:
    def test_connect_returns_consent_url(self, client, settings):
        response = client.post("/api/v1/auth/ebay/connect")

        assert response.status_code == 200
        body = response.json()
        assert "response_type=code" in body["authorization_url"]
        assert "client_id=MarketSy-test-SBX-1234" in body["authorization_url"]
        assert decode_state(body["state"], settings) == TENANT_ID

    def test_callback_stores_tokens_and_redirects(self, client, services, settings):
        state = encode_state(TENANT_ID, settings)

        response = client.get(
            "/api/v1/auth/ebay/callback",
            params={"code": "v^1.1#auth", "state": state},
            follow_redirects=False,
        )

        assert response.status_code == 307
        assert response.headers["location"] == "https://app.example.com/settings?ebay=connected"
        services.tokens.connect.assert_awaited_once_with(TENANT_ID, "v^1.1#auth")

    def test_callback_invalid_state(self, client, services):
        response = client.get(
            "/api/v1/auth/ebay/callback",
            params={"code": "abc", "state": "garbage"},
            follow_redirects=False,
        )
        assert response.headers["location"].endswith("reason=invalid_state")
        services.tokens.connect.assert_not_awaited()

    def test_callback_exchange_failure(self, client, services, settings):
        services.tokens.connect.side_effect = ReconnectRequired("no refresh token")
        response = client.get(
            "/api/v1/auth/ebay/callback",
            params={"code": "abc", "state": encode_state(TENANT_ID, settings)},
            follow_redirects=False,
        )
        assert response.headers["location"].endswith("reason=token_exchange_failed")

    def test_status_connected(self, client, services):
        services.tokens.get_credential.return_value = make_credential(TENANT_ID, NOW)

        body = client.get("/api/v1/auth/ebay/status").json()

        assert body["connected"] is True
        assert body["sandbox_mode"] is True
        assert "access_token" not in body

    def test_status_not_connected(self, client, services):
        services.tokens.get_credential.return_value = None
        assert client.get("/api/v1/auth/ebay/status").json() == {
            "connected": False,
            "sandbox_mode": None,
            "access_token_expires_at": None,
            "refresh_token_expires_at": None,
        }

    def test_disconnect(self, client, services):
        services.tokens.disconnect.return_value = True
        assert client.delete("/api/v1/auth/ebay").json() == {"disconnected": True}


# ─── Batch ───────────────────────────────────────────────────


class TestBatchEndpoint:
    def test_runs_batch_for_caller(self, client, services):
        result = BatchResult()
        result.record_success()
        result.record_failure("SKU-2: Product SKU-2 has no price")
        services.batch.run.return_value = result

        response = client.post(
            "/api/v1/batch", json={"operation": "publish", "product_ids": ["SKU-1", "SKU-2"]}
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": 1,
            "failed": 1,
            "errors": ["SKU-2: Product SKU-2 has no price"],
        }
        services.batch.run.assert_awaited_once_with(
            TENANT_ID, BatchOperation.PUBLISH, ["SKU-1", "SKU-2"]
        )

    def test_setup_failure_is_400(self, client, services):
        services.batch.run.side_effect = ConfigurationError("No return policy configured")
        response = client.post("/api/v1/batch", json={"operation": "update", "product_ids": ["SKU-1"]})
        assert response.status_code == 400
        assert response.json()["error_type"] == "ConfigurationError"

    def test_reconnect_required_is_409(self, client, services):
        services.batch.run.side_effect = ReconnectRequired("Refresh token expired")
        response = client.post("/api/v1/batch", json={"operation": "end", "product_ids": ["SKU-1"]})
        assert response.status_code == 409

    def test_unknown_operation_rejected(self, client):
        response = client.post("/api/v1/batch", json={"operation": "relist", "product_ids": ["SKU-1"]})
        assert response.status_code == 422

    def test_empty_product_list_rejected(self, client):
        response = client.post("/api/v1/batch", json={"operation": "publish", "product_ids": []})
        assert response.status_code == 422

    def test_requires_bearer_token(self, app, client):
        app.dependency_overrides.pop(get_current_tenant)
        response = client.post("/api/v1/batch", json={"operation": "publish", "product_ids": ["SKU-1"]})
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"


# ─── Sync ────────────────────────────────────────────────────


class TestSyncEndpoints:
    def test_poll_orders(self, client, services):
        services.poller.poll.return_value = PollSummary(orders_seen=3, line_items_seen=4, applied=2)

        body = client.post("/api/v1/sync/orders").json()

        assert body["orders_seen"] == 3
        assert body["applied"] == 2
        services.poller.poll.assert_awaited_once_with(TENANT_ID)

    def test_poll_remote_failure_is_502(self, client, services):
        services.poller.poll.side_effect = MarketplaceError(
            "eBay API error", status_code=500, errors=[MarketplaceErrorDetail(error_id=10001, message="System error")]
        )
        response = client.post("/api/v1/sync/orders")
        assert response.status_code == 502
        assert response.json()["errors"][0]["error_id"] == 10001

    def test_reconcile(self, client, services):
        services.reconciler.reconcile.return_value = BatchResult(success=2)
        assert client.post("/api/v1/sync/reconcile").json() == {"success": 2, "failed": 0, "errors": []}


# ─── Webhooks ────────────────────────────────────────────────


class TestWebhookEndpoints:
    def test_challenge(self, client, settings):
        from marketsync.services.webhook_ingester import compute_challenge_response

        response = client.get("/api/v1/webhooks/ebay", params={"challenge_code": "abc123"})

        assert response.status_code == 200
        assert response.json() == {
            "challengeResponse": compute_challenge_response(
                "abc123", settings.ebay_verification_token, settings.ebay_webhook_endpoint
            )
        }

    def test_challenge_unconfigured(self, app, client):
        app.dependency_overrides[get_settings] = lambda: _settings(ebay_verification_token="")
        response = client.get("/api/v1/webhooks/ebay", params={"challenge_code": "abc123"})
        assert response.status_code == 400

    def test_challenge_requires_code(self, client):
        assert client.get("/api/v1/webhooks/ebay").status_code == 422

    def test_notification_passes_raw_body(self, client, services):
        services.webhooks.handle.return_value = {"status": "ok", "processed": 1}

        response = client.post(
            "/api/v1/webhooks/ebay",
            content=b"<soapenv:Envelope/>",
            headers={"Content-Type": "text/xml"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "processed": 1}
        services.webhooks.handle.assert_awaited_once_with(b"<soapenv:Envelope/>")

    def test_notification_needs_no_bearer_token(self, app, client, services):
        app.dependency_overrides.pop(get_current_tenant)
        services.webhooks.handle.return_value = {"status": "ok", "ignored": True}
        response = client.post("/api/v1/webhooks/ebay", content=b"{}")
        assert response.status_code == 200
