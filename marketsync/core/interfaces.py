"""
Abstract base classes defining the collaborator contracts for MarketSync.

The sync engine never touches the database directly. Catalog storage,
credential storage, tenant settings, and the audit/alert sinks are
consumed through these interfaces; SQL implementations live in
``marketsync.db.repositories``.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager

from marketsync.core.models import (
    Alert,
    Credential,
    LogEntry,
    Marketplace,
    Product,
    SaleMarker,
    TenantSettings,
)


class ICatalogStore(ABC):
    """Interface for the tenant-scoped product catalog."""

    @abstractmethod
    async def get(self, tenant_id: str, product_id: str) -> Product | None:
        """
        Load one product by id within a tenant.

        Args:
            tenant_id: Owning tenant.
            product_id: Product id (also the marketplace SKU).

        Returns:
            The product, or None if it does not exist in this tenant.
        """
        ...

    @abstractmethod
    async def find_by_platform_id(
        self, tenant_id: str, marketplace: Marketplace, remote_item_id: str
    ) -> Product | None:
        """Find the product whose ``platform_ids[marketplace]`` equals ``remote_item_id``."""
        ...

    @abstractmethod
    async def find_by_sale_marker(self, tenant_id: str, marker: SaleMarker) -> Product | None:
        """Find the product (original or split-off) already carrying ``marker``."""
        ...

    @abstractmethod
    async def list_listed(self, tenant_id: str, marketplace: Marketplace) -> list[Product]:
        """Return every product currently listed on ``marketplace``."""
        ...

    @abstractmethod
    async def locate(
        self,
        marketplace: Marketplace,
        sku: str | None = None,
        remote_item_id: str | None = None,
    ) -> Product | None:
        """
        Resolve a product across tenants for inbound webhooks.

        Tries ``sku`` first, then ``remote_item_id``. The tenant is taken
        from the product that is found.
        """
        ...

    @abstractmethod
    async def create(self, product: Product) -> Product:
        """Insert a new product record and return it."""
        ...

    @abstractmethod
    async def save(self, product: Product) -> Product:
        """Persist every field of an existing product and return it."""
        ...

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """
        Unit of work spanning several writes.

        Every write made inside the block persists together, or none does
        if the block raises.
        """
        ...


class ICredentialStore(ABC):
    """Interface for per-tenant OAuth credential persistence."""

    @abstractmethod
    async def get(self, tenant_id: str, marketplace: Marketplace) -> Credential | None:
        ...

    @abstractmethod
    async def save(self, credential: Credential) -> None:
        """Upsert all token fields of ``credential`` in one write."""
        ...

    @abstractmethod
    async def delete(self, tenant_id: str, marketplace: Marketplace) -> bool:
        ...

    @abstractmethod
    async def list_connected(self, marketplace: Marketplace) -> list[str]:
        """Tenant ids holding an active credential for ``marketplace``."""
        ...


class ITenantSettingsProvider(ABC):
    """Interface for tenant listing preferences (footer, policy ids, location)."""

    @abstractmethod
    async def get_settings(self, tenant_id: str) -> TenantSettings:
        ...


class IAuditSink(ABC):
    """Append-only, tenant-scoped audit log."""

    @abstractmethod
    async def append(self, entry: LogEntry) -> None:
        ...

    async def commit(self) -> None:
        """Make appended entries durable now. Write-through sinks need nothing."""
        return None


class IAlertSink(ABC):
    """Append-only, tenant-scoped user notifications."""

    @abstractmethod
    async def append(self, alert: Alert) -> None:
        ...
