"""
Per-tenant marketplace token lifecycle.

``TokenManager`` owns the ``Credential`` aggregate for every tenant:

- ``get_valid_token`` returns an access token valid for at least the
  refresh window, refreshing proactively when it is about to expire.
- ``force_refresh_and_retry`` wraps exactly one downstream call; on a
  401 it refreshes once and retries once. A second 401, or a failed
  refresh, raises ``ReconnectRequired``.
- ``connect`` exchanges an OAuth authorization code for the tenant's
  first credential.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import TypeVar

from marketsync.core.exceptions import (
    ConfigurationError,
    MarketplaceAuthError,
    ReconnectRequired,
)
from marketsync.core.interfaces import ICredentialStore
from marketsync.core.models import Credential, Marketplace, TokenGrant, utc_now
from marketsync.marketplace.ebay_auth import EbayAuth

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REFRESH_WINDOW = timedelta(minutes=5)


class TokenManager:
    """Guarantees callers a non-expired marketplace access token."""

    def __init__(
        self,
        store: ICredentialStore,
        auth: EbayAuth,
        marketplace: Marketplace = Marketplace.EBAY,
        refresh_window: timedelta = DEFAULT_REFRESH_WINDOW,
        sandbox_mode: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._auth = auth
        self._marketplace = marketplace
        self._refresh_window = refresh_window
        self._sandbox_mode = sandbox_mode
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = self._locks[tenant_id] = asyncio.Lock()
        return lock

    async def _load(self, tenant_id: str) -> Credential:
        credential = await self._store.get(tenant_id, self._marketplace)
        if credential is None:
            raise ConfigurationError(
                f"Tenant is not connected to {self._marketplace}",
                details={"tenant_id": tenant_id},
            )
        return credential

    # ─── Public API ───────────────────────────────────────────

    async def get_credential(self, tenant_id: str) -> Credential | None:
        return await self._store.get(tenant_id, self._marketplace)

    async def get_valid_token(self, tenant_id: str) -> str:
        """
        Return an access token valid for at least the refresh window.

        Raises:
            ConfigurationError: The tenant never connected.
            ReconnectRequired: A refresh was needed and could not be performed.
        """
        credential = await self._load(tenant_id)
        if not credential.expires_within(self._refresh_window, self._clock()):
            return credential.access_token

        async with self._lock_for(tenant_id):
            # Another task may have refreshed while this one waited.
            credential = await self._load(tenant_id)
            if not credential.expires_within(self._refresh_window, self._clock()):
                return credential.access_token
            logger.info("Access token expires within refresh window; refreshing")
            refreshed = await self._refresh(credential)
        return refreshed.access_token

    async def force_refresh(self, tenant_id: str, rejected_token: str | None = None) -> str:
        """
        Refresh regardless of the stored expiry.

        If ``rejected_token`` is given and another task has already replaced
        it, the newer stored token is returned without a second refresh.
        """
        async with self._lock_for(tenant_id):
            credential = await self._load(tenant_id)
            if rejected_token is not None and credential.access_token != rejected_token:
                return credential.access_token
            refreshed = await self._refresh(credential)
        return refreshed.access_token

    async def force_refresh_and_retry(
        self, tenant_id: str, call: Callable[[str], Awaitable[T]]
    ) -> T:
        """
        Run ``call(token)`` with one refresh-and-retry on authorization failure.

        Args:
            tenant_id: Tenant whose credential authorizes the call.
            call: The single downstream call, given the access token.

        Returns:
            Whatever ``call`` returns.

        Raises:
            ReconnectRequired: The refresh failed, or the retried call was
                rejected again. Never loops.
        """
        token = await self.get_valid_token(tenant_id)
        try:
            return await call(token)
        except MarketplaceAuthError:
            logger.warning("Marketplace rejected access token; refreshing once and retrying")

        token = await self.force_refresh(tenant_id, rejected_token=token)
        try:
            return await call(token)
        except MarketplaceAuthError as e:
            logger.error("Marketplace rejected freshly refreshed token; reconnect required")
            raise ReconnectRequired(
                "Marketplace rejected the refreshed access token; reconnect the account",
                details={"tenant_id": tenant_id},
            ) from e

    async def connect(self, tenant_id: str, auth_code: str) -> Credential:
        """Exchange an OAuth authorization code and persist the new credential."""
        grant = await self._auth.exchange_code(auth_code)
        if not grant.refresh_token:
            raise ReconnectRequired("Authorization did not return a refresh token")
        credential = self._apply_grant(
            Credential(
                tenant_id=tenant_id,
                marketplace=self._marketplace,
                access_token=grant.access_token,
                sandbox_mode=self._sandbox_mode,
            ),
            grant,
        )
        await self._store.save(credential)
        logger.info("Tenant connected to marketplace")
        return credential

    async def disconnect(self, tenant_id: str) -> bool:
        return await self._store.delete(tenant_id, self._marketplace)

    # ─── Internals ────────────────────────────────────────────

    async def _refresh(self, credential: Credential) -> Credential:
        now = self._clock()
        if not credential.can_refresh(now):
            logger.error("No usable refresh token; reconnect required")
            raise ReconnectRequired(
                "Refresh token is missing or expired; reconnect the account",
                details={"tenant_id": credential.tenant_id},
            )
        try:
            grant = await self._auth.refresh_token(credential.refresh_token)
        except MarketplaceAuthError as e:
            logger.error(f"Token refresh rejected: {e.summary()}")
            raise ReconnectRequired(
                "Token refresh was rejected; reconnect the account",
                details={"tenant_id": credential.tenant_id, **e.details},
            ) from e

        refreshed = self._apply_grant(credential, grant)
        await self._store.save(refreshed)
        logger.info(
            f"Access token refreshed; expires at {refreshed.access_token_expires_at.isoformat()}"
        )
        return refreshed

    def _apply_grant(self, credential: Credential, grant: TokenGrant) -> Credential:
        """New access token, new refresh token (or the old one), recomputed expiries."""
        now = self._clock()
        refresh_expires_at = credential.refresh_token_expires_at
        if grant.refresh_token_expires_in:
            refresh_expires_at = now + timedelta(seconds=grant.refresh_token_expires_in)
        return credential.model_copy(
            update={
                "access_token": grant.access_token,
                "refresh_token": grant.refresh_token or credential.refresh_token,
                "access_token_expires_at": now + timedelta(seconds=grant.expires_in),
                "refresh_token_expires_at": refresh_expires_at,
            }
        )
