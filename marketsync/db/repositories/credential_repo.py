"""
Marketplace credential repository.

Tokens are Fernet-encrypted at rest; this repository is the only place
that encrypts or decrypts them. A save writes the access token, refresh
token and both expiries in one flush.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.encryption import decrypt, encrypt
from marketsync.core.interfaces import ICredentialStore
from marketsync.core.models import Credential, Marketplace
from marketsync.db.mappers import credential_from_row, tenant_uuid
from marketsync.db.models import MarketplaceCredential
from marketsync.db.repositories.base_repo import BaseRepository


class SqlCredentialStore(BaseRepository[MarketplaceCredential], ICredentialStore):
    """Repository for per-tenant OAuth credentials."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, MarketplaceCredential)

    async def _find(self, tenant_id: str, marketplace: Marketplace) -> MarketplaceCredential | None:
        stmt = select(MarketplaceCredential).where(
            MarketplaceCredential.tenant_id == tenant_uuid(tenant_id),
            MarketplaceCredential.marketplace == str(marketplace),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, tenant_id: str, marketplace: Marketplace) -> Credential | None:
        """
        Load and decrypt the tenant's active credential.

        Raises:
            ReconnectRequired: The stored tokens cannot be decrypted.
        """
        row = await self._find(tenant_id, marketplace)
        if row is None or not row.is_active:
            return None
        return credential_from_row(
            row,
            access_token=decrypt(row.access_token),
            refresh_token=decrypt(row.refresh_token or ""),
        )

    async def save(self, credential: Credential) -> None:
        row = await self._find(credential.tenant_id, credential.marketplace)
        if row is None:
            row = MarketplaceCredential(
                tenant_id=tenant_uuid(credential.tenant_id),
                marketplace=str(credential.marketplace),
            )
            self.session.add(row)

        row.access_token = encrypt(credential.access_token)
        row.refresh_token = encrypt(credential.refresh_token) if credential.refresh_token else None
        row.access_token_expires_at = credential.access_token_expires_at
        row.refresh_token_expires_at = credential.refresh_token_expires_at
        row.sandbox_mode = credential.sandbox_mode
        row.is_active = True
        await self.session.flush()

    async def delete(self, tenant_id: str, marketplace: Marketplace) -> bool:
        """Delete the credential. Returns True if deleted, False if not found."""
        row = await self._find(tenant_id, marketplace)
        if row is None:
            return False
        await self.delete_instance(row)
        return True

    async def list_connected(self, marketplace: Marketplace) -> list[str]:
        stmt = (
            select(MarketplaceCredential.tenant_id)
            .where(
                MarketplaceCredential.marketplace == str(marketplace),
                MarketplaceCredential.is_active.is_(True),
            )
            .order_by(MarketplaceCredential.created_at)
        )
        result = await self.session.execute(stmt)
        return [str(tenant_id) for tenant_id in result.scalars().all()]
