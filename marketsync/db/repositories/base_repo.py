"""
Generic async repository base class.

Provides the data access helpers every entity-specific repository
shares. All queries that return tenant-owned data must be scoped by
tenant_id.
"""

import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.db.models import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with common persistence operations.

    Subclasses specify the model class and add entity-specific queries.
    """

    def __init__(self, session: AsyncSession, model: type[ModelType]):
        self.session = session
        self.model = model

    async def get_by_id(self, record_id: Any) -> ModelType | None:
        """Get a single record by primary key."""
        return await self.session.get(self.model, record_id)

    async def get_all(
        self,
        tenant_id: uuid.UUID | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ModelType]:
        """
        Get all records, optionally filtered by tenant_id for tenant isolation.

        Args:
            tenant_id: If provided, only return records owned by this tenant.
            limit: Maximum number of records to return.
            offset: Number of records to skip.
        """
        stmt = select(self.model)
        if tenant_id is not None and hasattr(self.model, "tenant_id"):
            stmt = stmt.where(self.model.tenant_id == tenant_id)
        stmt = stmt.limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add(self, instance: ModelType) -> ModelType:
        """Stage a new record and flush it so defaults are populated."""
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def delete_instance(self, instance: ModelType) -> None:
        await self.session.delete(instance)
        await self.session.flush()

    async def count(self, tenant_id: uuid.UUID | None = None) -> int:
        """Count records, optionally filtered by tenant_id."""
        stmt = select(func.count()).select_from(self.model)
        if tenant_id is not None and hasattr(self.model, "tenant_id"):
            stmt = stmt.where(self.model.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()
