"""
eBay account connection endpoints.

Provides:
- POST   /api/v1/auth/ebay/connect: start the eBay OAuth flow
- GET    /api/v1/auth/ebay/callback: eBay redirect with the auth code
- GET    /api/v1/auth/ebay/status: connection status for the tenant
- DELETE /api/v1/auth/ebay: disconnect (drop stored tokens)
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from jose import JWTError, jwt
from pydantic import BaseModel

from marketsync.api.dependencies import get_services
from marketsync.config import Settings, get_settings
from marketsync.core.exceptions import AuthError, MarketSyncError
from marketsync.marketplace.ebay_auth import EbayAuth
from marketsync.middleware.auth_middleware import TenantContext, get_current_tenant
from marketsync.services.factory import SyncServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

STATE_TTL = timedelta(minutes=10)
_STATE_TYPE = "ebay_oauth_state"


# ─── Request / Response Schemas ──────────────────────────────


class EbayConnectResponse(BaseModel):
    """eBay OAuth connect response: authorization URL."""
    authorization_url: str
    state: str


class EbayStatusResponse(BaseModel):
    """eBay connection status."""
    connected: bool
    sandbox_mode: bool | None = None
    access_token_expires_at: datetime | None = None
    refresh_token_expires_at: datetime | None = None


# ─── OAuth State ─────────────────────────────────────────────


def encode_state(tenant_id: str, settings: Settings) -> str:
    """
    Signed, short-lived OAuth ``state`` naming the tenant.

    eBay redirects the browser straight to the callback with no
    Authorization header, so the tenant travels in the state.
    """
    now = datetime.now(UTC)
    payload = {
        "tenant_id": tenant_id,
        "nonce": uuid.uuid4().hex,
        "type": _STATE_TYPE,
        "exp": int((now + STATE_TTL).timestamp()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_state(state: str, settings: Settings) -> str:
    """
    Return the tenant id carried by ``state``.

    Raises:
        AuthError: Tampered, expired or foreign state.
    """
    try:
        payload = jwt.decode(state, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthError("Invalid OAuth state") from e
    if payload.get("type") != _STATE_TYPE or not payload.get("tenant_id"):
        raise AuthError("Invalid OAuth state")
    return str(payload["tenant_id"])


def _frontend_url(settings: Settings) -> str:
    origins = settings.cors_allowed_origins
    url = origins.split(",")[0].strip() if origins else "http://localhost:5173"
    if url and not url.startswith("http"):
        url = f"https://{url}"
    return url


# ─── Endpoints ───────────────────────────────────────────────


@router.post(
    "/ebay/connect",
    response_model=EbayConnectResponse,
    summary="Start eBay OAuth connection",
)
async def ebay_connect(
    tenant: TenantContext = Depends(get_current_tenant),
    settings: Settings = Depends(get_settings),
):
    """Generate the eBay consent URL for the current tenant."""
    state = encode_state(tenant.tenant_id, settings)
    authorization_url = EbayAuth(settings).get_authorization_url(state=state)
    return EbayConnectResponse(authorization_url=authorization_url, state=state)


@router.get("/ebay/callback", summary="eBay OAuth callback")
async def ebay_callback(
    code: str,
    state: str = "",
    settings: Settings = Depends(get_settings),
    services: SyncServices = Depends(get_services),
):
    """
    Exchange the auth code and store the tenant's tokens.

    Redirects to the frontend settings page with a success or error
    query parameter.
    """
    frontend_url = _frontend_url(settings)

    try:
        tenant_id = decode_state(state, settings)
    except AuthError:
        logger.error("Invalid state parameter in eBay callback")
        return RedirectResponse(f"{frontend_url}/settings?ebay=error&reason=invalid_state")

    try:
        await services.tokens.connect(tenant_id, code)
    except MarketSyncError as e:
        logger.error(f"eBay token exchange failed for tenant {tenant_id}: {e}")
        return RedirectResponse(f"{frontend_url}/settings?ebay=error&reason=token_exchange_failed")

    logger.info(f"eBay credentials saved for tenant {tenant_id}")
    return RedirectResponse(f"{frontend_url}/settings?ebay=connected")


@router.get(
    "/ebay/status",
    response_model=EbayStatusResponse,
    summary="Check eBay connection status",
)
async def ebay_status(
    tenant: TenantContext = Depends(get_current_tenant),
    services: SyncServices = Depends(get_services),
):
    credential = await services.tokens.get_credential(tenant.tenant_id)
    if credential is None:
        return EbayStatusResponse(connected=False)
    return EbayStatusResponse(
        connected=True,
        sandbox_mode=credential.sandbox_mode,
        access_token_expires_at=credential.access_token_expires_at,
        refresh_token_expires_at=credential.refresh_token_expires_at,
    )


@router.delete("/ebay", summary="Disconnect eBay")
async def ebay_disconnect(
    tenant: TenantContext = Depends(get_current_tenant),
    services: SyncServices = Depends(get_services),
) -> dict:
    removed = await services.tokens.disconnect(tenant.tenant_id)
    return {"disconnected": removed}
