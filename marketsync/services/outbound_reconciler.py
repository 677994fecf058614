"""
Push local sold / quantity state back to eBay.

For every listed product of a tenant:
- quantity 0: withdraw the listing and clear its local listing ids
- quantity > 0: push the current quantity to the inventory item and offers

Each product is independent; one failure is recorded and the rest continue.
"""

import logging

from marketsync.core.exceptions import MarketSyncError
from marketsync.core.interfaces import ICatalogStore
from marketsync.core.logging_config import tenant_scope
from marketsync.core.models import BatchResult, Marketplace, Product
from marketsync.core.resilience import run_bounded
from marketsync.marketplace.ebay_client import EbayClient
from marketsync.services.audit import AuditLogger
from marketsync.services.batch_service import describe_error
from marketsync.services.publish_coordinator import PublishCoordinator
from marketsync.services.token_manager import TokenManager

logger = logging.getLogger(__name__)


class OutboundReconciler:
    """Reconciles marketplace listings with local quantities."""

    def __init__(
        self,
        client: EbayClient,
        tokens: TokenManager,
        catalog: ICatalogStore,
        coordinator: PublishCoordinator,
        audit: AuditLogger,
        marketplace: Marketplace = Marketplace.EBAY,
        concurrency: int = 1,
    ):
        self._client = client
        self._tokens = tokens
        self._catalog = catalog
        self._coordinator = coordinator
        self._audit = audit
        self._marketplace = marketplace
        self._concurrency = concurrency

    async def reconcile(self, tenant_id: str) -> BatchResult:
        """
        Reconcile every listed product of ``tenant_id``.

        Raises:
            ConfigurationError: Tenant is not connected.
            ReconnectRequired: The credential cannot be refreshed.
        """
        with tenant_scope(tenant_id, operation="reconcile"):
            try:
                await self._tokens.get_valid_token(tenant_id)
            except MarketSyncError as e:
                await self._audit.fatal(
                    tenant_id,
                    f"Reconcile aborted: {describe_error(e)}",
                    error_type=type(e).__name__,
                )
                raise
            products = await self._catalog.list_listed(tenant_id, self._marketplace)
            logger.info(f"Reconciling {len(products)} listed products")

            async def _worker(product: Product) -> str | None:
                return await self._reconcile_one(tenant_id, product)

            result = BatchResult()
            for error in await run_bounded(products, _worker, concurrency=self._concurrency):
                if error is None:
                    result.record_success()
                else:
                    result.record_failure(error)

            await self._audit.info(
                tenant_id, "Reconcile finished", success=result.success, failed=result.failed
            )
            return result

    async def _reconcile_one(self, tenant_id: str, product: Product) -> str | None:
        try:
            if product.quantity == 0:
                await self._coordinator.withdraw(tenant_id, product)
            else:
                await self._push_quantity(tenant_id, product)
            return None
        except Exception as e:
            if not isinstance(e, MarketSyncError):
                logger.exception(f"Unexpected error reconciling {product.id}")
            message = f"{product.id}: {describe_error(e)}"
            await self._audit.error(
                tenant_id,
                "Reconcile item failed",
                product_id=product.id,
                error_type=type(e).__name__,
                error=message,
            )
            return message

    async def _push_quantity(self, tenant_id: str, product: Product) -> None:
        call = self._tokens.force_refresh_and_retry
        offers = await call(tenant_id, lambda token: self._client.get_offers(token, product.sku))
        offer_ids = [o["offerId"] for o in offers if o.get("status") == "PUBLISHED"]
        await call(
            tenant_id,
            lambda token: self._client.update_quantity(token, product.sku, product.quantity, offer_ids),
        )
        await self._audit.info(
            tenant_id, "Quantity pushed", product_id=product.id, quantity=product.quantity
        )
