"""
Append-only audit log and alert sinks.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.interfaces import IAlertSink, IAuditSink
from marketsync.core.models import Alert, LogEntry
from marketsync.db.mappers import alert_row_from_alert, audit_row_from_entry, tenant_uuid
from marketsync.db.models import AlertRecord, AuditLog
from marketsync.db.repositories.base_repo import BaseRepository


class SqlAuditSink(BaseRepository[AuditLog], IAuditSink):
    """Writes LogEntry records to ``audit_logs``."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, AuditLog)

    async def append(self, entry: LogEntry) -> None:
        await self.add(audit_row_from_entry(entry))

    async def commit(self) -> None:
        await self.session.commit()

    async def recent(self, tenant_id: str, limit: int = 50) -> list[AuditLog]:
        """Newest entries first."""
        stmt = (
            select(AuditLog)
            .where(AuditLog.tenant_id == tenant_uuid(tenant_id))
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class SqlAlertSink(BaseRepository[AlertRecord], IAlertSink):
    """Writes Alert records to ``alerts``."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, AlertRecord)

    async def append(self, alert: Alert) -> None:
        await self.add(alert_row_from_alert(alert))
