"""
Wiring of the sync services for one unit of work.

The API builds one ``SyncServices`` per request and the worker builds
one per tenant run, both on top of a single database session. The
marketplace rate limiter is process-wide so that concurrent requests
share the same budget.
"""

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.config import Settings
from marketsync.core.models import Marketplace
from marketsync.core.resilience import TokenBucket
from marketsync.db.repositories import (
    SqlAlertSink,
    SqlAuditSink,
    SqlCatalogStore,
    SqlCredentialStore,
    SqlTenantSettingsProvider,
)
from marketsync.marketplace.ebay_auth import EbayAuth
from marketsync.marketplace.ebay_client import EbayClient
from marketsync.services.audit import AlertEmitter, AuditLogger
from marketsync.services.batch_service import BatchService
from marketsync.services.order_sync_poller import OrderSyncPoller
from marketsync.services.outbound_reconciler import OutboundReconciler
from marketsync.services.policy_resolver import PolicyResolver
from marketsync.services.publish_coordinator import PublishCoordinator
from marketsync.services.token_manager import TokenManager
from marketsync.services.webhook_ingester import WebhookIngester

_rate_limiter: TokenBucket | None = None


def get_rate_limiter(settings: Settings) -> TokenBucket:
    """Process-wide token bucket for marketplace calls."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = TokenBucket(
            rate=settings.rate_limit_per_second, capacity=settings.rate_limit_burst
        )
    return _rate_limiter


@dataclass
class SyncServices:
    tokens: TokenManager
    client: EbayClient
    catalog: SqlCatalogStore
    tenant_settings: SqlTenantSettingsProvider
    audit: AuditLogger
    alerts: AlertEmitter
    resolver: PolicyResolver
    coordinator: PublishCoordinator
    batch: BatchService
    poller: OrderSyncPoller
    reconciler: OutboundReconciler
    webhooks: WebhookIngester


def build_services(session: AsyncSession, settings: Settings) -> SyncServices:
    marketplace = Marketplace.EBAY
    client = EbayClient.from_settings(settings, rate_limiter=get_rate_limiter(settings))
    tokens = TokenManager(
        store=SqlCredentialStore(session),
        auth=EbayAuth(settings),
        marketplace=marketplace,
        refresh_window=timedelta(seconds=settings.token_refresh_window_seconds),
        sandbox_mode=settings.ebay_sandbox,
    )
    catalog = SqlCatalogStore(session)
    tenant_settings = SqlTenantSettingsProvider(session)
    audit = AuditLogger(SqlAuditSink(session))
    alerts = AlertEmitter(SqlAlertSink(session))

    resolver = PolicyResolver(
        client,
        tokens,
        tenant_settings,
        currency=settings.ebay_currency,
        image_limit=settings.listing_image_limit,
    )
    coordinator = PublishCoordinator(client, tokens, catalog, audit, marketplace=marketplace)

    return SyncServices(
        tokens=tokens,
        client=client,
        catalog=catalog,
        tenant_settings=tenant_settings,
        audit=audit,
        alerts=alerts,
        resolver=resolver,
        coordinator=coordinator,
        batch=BatchService(
            coordinator, resolver, tokens, catalog, audit, concurrency=settings.batch_concurrency
        ),
        poller=OrderSyncPoller(
            client,
            tokens,
            catalog,
            audit,
            alerts,
            marketplace=marketplace,
            window=timedelta(days=settings.order_poll_window_days),
            page_size=settings.order_poll_page_size,
        ),
        reconciler=OutboundReconciler(
            client,
            tokens,
            catalog,
            coordinator,
            audit,
            marketplace=marketplace,
            concurrency=settings.batch_concurrency,
        ),
        webhooks=WebhookIngester(catalog, audit, alerts, marketplace=marketplace),
    )
