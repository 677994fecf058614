"""
JWT authentication dependencies.

Every API call runs on behalf of exactly one tenant. The tenant comes
from the ``tenant_id`` claim of a Bearer access token (``sub`` is
accepted as a fallback); requests without a verifiable tenant are
rejected with 401 before any service is built.

Usage in endpoints:
    @router.post("/batch")
    async def run_batch(tenant: TenantContext = Depends(get_current_tenant)):
        ...
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from marketsync.config import Settings, get_settings
from marketsync.core.exceptions import AuthError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class TenantContext:
    """The authenticated caller."""

    tenant_id: str
    claims: dict


# ─── Token Helpers ───────────────────────────────────────────


def create_access_token(
    tenant_id: str, settings: Settings, expires_minutes: int | None = None
) -> str:
    """Issue a signed access token for ``tenant_id``."""
    now = datetime.now(UTC)
    minutes = expires_minutes or settings.jwt_access_token_expire_minutes
    payload = {
        "sub": tenant_id,
        "tenant_id": tenant_id,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def _decode_token(token: str, settings: Settings) -> dict:
    """
    Decode and verify a JWT token.

    Raises:
        AuthError: Token is invalid or expired.
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise AuthError("Invalid or expired token") from e


def tenant_from_claims(payload: dict) -> TenantContext:
    """
    Extract the tenant from verified claims.

    Raises:
        AuthError: Wrong token type, or no usable tenant id.
    """
    if payload.get("type", "access") != "access":
        raise AuthError("Invalid token type: access token required")

    tenant_id = payload.get("tenant_id") or payload.get("sub")
    if not tenant_id:
        raise AuthError("Token carries no tenant")
    try:
        uuid.UUID(str(tenant_id))
    except ValueError as e:
        raise AuthError("Token carries an invalid tenant id") from e
    return TenantContext(tenant_id=str(tenant_id), claims=payload)


# ─── FastAPI Dependencies ────────────────────────────────────


async def get_current_tenant(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> TenantContext:
    """
    FastAPI dependency: verify the Bearer token and return its tenant.

    Raises:
        AuthError: Missing, invalid or expired token, or no tenant claim.
    """
    if credentials is None:
        raise AuthError("Missing bearer token")
    return tenant_from_claims(_decode_token(credentials.credentials, settings))
