"""
Tenant repository: listing preferences stored on the ``tenants`` row.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.exceptions import RecordNotFoundError
from marketsync.core.interfaces import ITenantSettingsProvider
from marketsync.core.models import TenantSettings
from marketsync.db.mappers import tenant_settings_from_row, tenant_uuid
from marketsync.db.models import Tenant
from marketsync.db.repositories.base_repo import BaseRepository


class SqlTenantSettingsProvider(BaseRepository[Tenant], ITenantSettingsProvider):
    """Reads and writes the JSON ``settings`` column of a tenant."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Tenant)

    async def get_settings(self, tenant_id: str) -> TenantSettings:
        """Settings for the tenant; defaults when the tenant has none stored."""
        row = await self.get_by_id(tenant_uuid(tenant_id))
        return tenant_settings_from_row(row)

    async def update_settings(self, tenant_id: str, **values) -> TenantSettings:
        """
        Merge ``values`` into the stored settings.

        Raises:
            RecordNotFoundError: Unknown tenant.
        """
        row = await self.get_by_id(tenant_uuid(tenant_id))
        if row is None:
            raise RecordNotFoundError(f"Tenant {tenant_id} not found")
        merged = tenant_settings_from_row(row).model_copy(update=values)
        row.settings = merged.model_dump()
        await self.session.flush()
        return merged
