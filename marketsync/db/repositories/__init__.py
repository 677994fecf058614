from marketsync.db.repositories.audit_repo import SqlAlertSink, SqlAuditSink
from marketsync.db.repositories.credential_repo import SqlCredentialStore
from marketsync.db.repositories.product_repo import SqlCatalogStore
from marketsync.db.repositories.tenant_repo import SqlTenantSettingsProvider

__all__ = [
    "SqlAlertSink",
    "SqlAuditSink",
    "SqlCatalogStore",
    "SqlCredentialStore",
    "SqlTenantSettingsProvider",
]
