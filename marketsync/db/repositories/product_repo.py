"""
Product catalog repository: the SQL implementation of ICatalogStore.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.exceptions import RecordNotFoundError
from marketsync.core.interfaces import ICatalogStore
from marketsync.core.models import Marketplace, Product, SaleMarker
from marketsync.db import models as orm
from marketsync.db.mappers import (
    apply_product_to_row,
    product_from_row,
    product_row_from_domain,
    tenant_uuid,
)
from marketsync.db.repositories.base_repo import BaseRepository


class SqlCatalogStore(BaseRepository[orm.Product], ICatalogStore):
    """Tenant-scoped product storage backed by the ``products`` table."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, orm.Product)

    @staticmethod
    def _remote_id_column(marketplace: Marketplace):
        return orm.Product.platform_ids[str(marketplace)].as_string()

    async def _first(self, stmt) -> Product | None:
        result = await self.session.execute(stmt.limit(1))
        row = result.scalars().first()
        return product_from_row(row) if row is not None else None

    async def get(self, tenant_id: str, product_id: str) -> Product | None:
        stmt = select(orm.Product).where(
            orm.Product.tenant_id == tenant_uuid(tenant_id),
            orm.Product.id == product_id,
        )
        return await self._first(stmt)

    async def find_by_platform_id(
        self, tenant_id: str, marketplace: Marketplace, remote_item_id: str
    ) -> Product | None:
        stmt = select(orm.Product).where(
            orm.Product.tenant_id == tenant_uuid(tenant_id),
            self._remote_id_column(marketplace) == remote_item_id,
        )
        return await self._first(stmt)

    async def find_by_sale_marker(self, tenant_id: str, marker: SaleMarker) -> Product | None:
        """
        Dedupe lookup for order line items.

        Searches every product of the tenant, so a marker stored on a
        split-off record is found as well as one on the original.
        """
        stmt = select(orm.Product).where(
            orm.Product.tenant_id == tenant_uuid(tenant_id),
            orm.Product.sale_order_id == marker.order_id,
            orm.Product.sale_line_item_id == marker.line_item_id,
        )
        return await self._first(stmt)

    async def list_listed(self, tenant_id: str, marketplace: Marketplace) -> list[Product]:
        remote_id = self._remote_id_column(marketplace)
        stmt = (
            select(orm.Product)
            .where(
                orm.Product.tenant_id == tenant_uuid(tenant_id),
                remote_id.is_not(None),
                remote_id != "",
            )
            .order_by(orm.Product.created_at)
        )
        result = await self.session.execute(stmt)
        return [product_from_row(row) for row in result.scalars().all()]

    async def locate(
        self,
        marketplace: Marketplace,
        sku: str | None = None,
        remote_item_id: str | None = None,
    ) -> Product | None:
        if sku:
            product = await self._first(select(orm.Product).where(orm.Product.id == sku))
            if product is not None:
                return product
        if remote_item_id:
            stmt = select(orm.Product).where(
                self._remote_id_column(marketplace) == remote_item_id
            )
            return await self._first(stmt)
        return None

    async def create(self, product: Product) -> Product:
        row = await self.add(product_row_from_domain(product))
        return product_from_row(row)

    async def save(self, product: Product) -> Product:
        """
        Persist every field of an existing product.

        Raises:
            RecordNotFoundError: No such product in the product's tenant.
        """
        row = await self.get_by_id(product.id)
        if row is None or row.tenant_id != tenant_uuid(product.tenant_id):
            raise RecordNotFoundError(f"Product {product.id} not found")
        apply_product_to_row(product, row)
        await self.session.flush()
        return product_from_row(row)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """SAVEPOINT around the block; the request transaction stays open."""
        async with self.session.begin_nested():
            yield
