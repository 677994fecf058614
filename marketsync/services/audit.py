"""
Tenant-scoped audit trail and user alerts.

``AuditLogger`` writes each decision both to the stdlib logger (so it
reaches structlog output with the bound request id) and to the
append-only ``IAuditSink``. ``AlertEmitter`` records user-facing
notifications through ``IAlertSink``.
"""

import logging
from typing import Any

from marketsync.core.interfaces import IAlertSink, IAuditSink
from marketsync.core.logging_config import current_correlation_id
from marketsync.core.models import Alert, AlertLevel, LogEntry

logger = logging.getLogger("marketsync.audit")

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class AuditLogger:
    """Append-only audit log for one deployment, keyed by tenant."""

    def __init__(self, sink: IAuditSink):
        self._sink = sink

    async def record(self, tenant_id: str, level: str, message: str, **details: Any) -> LogEntry:
        entry = LogEntry(
            tenant_id=tenant_id,
            level=level,
            message=message,
            details=details,
            correlation_id=current_correlation_id(),
        )
        logger.log(_LEVELS.get(level, logging.INFO), message, extra={"audit": details})
        await self._sink.append(entry)
        return entry

    async def info(self, tenant_id: str, message: str, **details: Any) -> LogEntry:
        return await self.record(tenant_id, "info", message, **details)

    async def warning(self, tenant_id: str, message: str, **details: Any) -> LogEntry:
        return await self.record(tenant_id, "warning", message, **details)

    async def error(self, tenant_id: str, message: str, **details: Any) -> LogEntry:
        return await self.record(tenant_id, "error", message, **details)

    async def fatal(self, tenant_id: str, message: str, **details: Any) -> LogEntry:
        """
        Record an error that aborts the whole operation.

        The sink is committed straight away so the entry outlives the
        rollback the caller performs when the error reaches it. Only call
        this before any item of the operation has been written.
        """
        entry = await self.record(tenant_id, "error", message, **details)
        await self._sink.commit()
        return entry


class AlertEmitter:
    """Emits user-facing alerts (sales, offers, reconnect prompts)."""

    def __init__(self, sink: IAlertSink):
        self._sink = sink

    async def emit(
        self,
        tenant_id: str,
        level: AlertLevel,
        title: str,
        message: str,
        product_id: str | None = None,
    ) -> Alert:
        alert = Alert(
            tenant_id=tenant_id,
            level=level,
            title=title,
            message=message,
            product_id=product_id,
        )
        await self._sink.append(alert)
        return alert
