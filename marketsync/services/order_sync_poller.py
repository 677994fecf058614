"""
Scheduled pull of recent eBay orders into local sale transitions.

For every line item of every order created inside the trailing window:

1. Skip it if any product in the tenant already carries its
   ``(order_id, line_item_id)`` sale marker.
2. Resolve the product by SKU, falling back to the remote item id.
3. Single-unit product: mark it sold in place and store the marker.
4. Multi-unit product: split off a sold record holding the units sold
   and the marker, and decrement the original (sold only at zero).

Each line item is one catalog transaction, so a split record and the
decrement of its original persist together or not at all. Replaying the
same orders any number of times applies each line item once.
"""

import logging
import uuid
from datetime import timedelta
from enum import StrEnum

from marketsync.core.exceptions import MarketplaceError, MarketSyncError
from marketsync.core.interfaces import ICatalogStore
from marketsync.core.logging_config import tenant_scope
from marketsync.core.models import (
    AlertLevel,
    Marketplace,
    PollSummary,
    Product,
    RemoteLineItem,
    RemoteOrder,
    SaleMarker,
    utc_now,
)
from marketsync.marketplace.ebay_client import EbayClient
from marketsync.services.audit import AlertEmitter, AuditLogger
from marketsync.services.token_manager import TokenManager

logger = logging.getLogger(__name__)


class SaleOutcome(StrEnum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    ALREADY_SOLD = "already_sold"
    UNRESOLVED = "unresolved"


class OrderSyncPoller:
    """Applies remote orders to the local catalog idempotently."""

    def __init__(
        self,
        client: EbayClient,
        tokens: TokenManager,
        catalog: ICatalogStore,
        audit: AuditLogger,
        alerts: AlertEmitter,
        marketplace: Marketplace = Marketplace.EBAY,
        window: timedelta = timedelta(days=60),
        page_size: int = 50,
        clock=utc_now,
    ):
        self._client = client
        self._tokens = tokens
        self._catalog = catalog
        self._audit = audit
        self._alerts = alerts
        self._marketplace = marketplace
        self._window = window
        self._page_size = page_size
        self._clock = clock

    async def poll(self, tenant_id: str) -> PollSummary:
        """
        Run one poll cycle for a tenant.

        Fetching the order list is setup: if it fails the cycle aborts.
        Failures applying a single line item are recorded and the cycle
        continues.
        """
        with tenant_scope(tenant_id, operation="order_poll"):
            since = self._clock() - self._window
            try:
                orders = await self._tokens.force_refresh_and_retry(
                    tenant_id,
                    lambda token: self._client.get_orders_since(token, since, self._page_size),
                )
            except MarketSyncError as e:
                await self._audit.fatal(
                    tenant_id, f"Order poll aborted: {e}", error_type=type(e).__name__
                )
                raise
            logger.info(f"Fetched {len(orders)} orders created since {since.isoformat()}")
            summary = await self.apply_orders(tenant_id, orders)
            await self._audit.info(tenant_id, "Order poll finished", **summary.to_dict())
            return summary

    async def apply_orders(self, tenant_id: str, orders: list[RemoteOrder]) -> PollSummary:
        summary = PollSummary(orders_seen=len(orders))
        for order in orders:
            applied_any = False
            for item in order.line_items:
                summary.line_items_seen += 1
                try:
                    async with self._catalog.transaction():
                        outcome = await self.apply_line_item(tenant_id, order, item)
                except Exception as e:
                    message = f"order {order.order_id} line {item.line_item_id}: {e}"
                    if not isinstance(e, MarketplaceError):
                        logger.exception(f"Failed to apply {message}")
                    summary.errors.append(message)
                    await self._audit.error(
                        tenant_id,
                        "Failed to apply order line item",
                        order_id=order.order_id,
                        line_item_id=item.line_item_id,
                        error=str(e),
                    )
                    continue

                if outcome == SaleOutcome.APPLIED:
                    summary.applied += 1
                    applied_any = True
                elif outcome == SaleOutcome.UNRESOLVED:
                    summary.unresolved += 1
                else:
                    summary.duplicates += 1

            if applied_any and order.fulfillment_hrefs:
                await self._record_fulfillments(tenant_id, order)
        return summary

    async def apply_line_item(
        self, tenant_id: str, order: RemoteOrder, item: RemoteLineItem
    ) -> SaleOutcome:
        """Apply one line item. Idempotent by sale marker."""
        marker = SaleMarker(order_id=order.order_id, line_item_id=item.line_item_id)
        if await self._catalog.find_by_sale_marker(tenant_id, marker) is not None:
            logger.debug(f"Line item {item.line_item_id} of order {order.order_id} already applied")
            return SaleOutcome.DUPLICATE

        product = await self._resolve(tenant_id, item)
        if product is None:
            await self._audit.warning(
                tenant_id,
                "Order line item does not match any product",
                order_id=order.order_id,
                line_item_id=item.line_item_id,
                sku=item.sku,
                remote_item_id=item.remote_item_id,
            )
            return SaleOutcome.UNRESOLVED

        if product.sold or product.quantity == 0:
            await self._audit.info(
                tenant_id,
                "Product already sold; order line item skipped",
                product_id=product.id,
                order_id=order.order_id,
                line_item_id=item.line_item_id,
            )
            return SaleOutcome.ALREADY_SOLD

        sale = {
            "sold": True,
            "sold_price": item.total,
            "sold_date": order.creation_date.date(),
            "sold_platform": str(self._marketplace),
            "sale_marker": marker,
        }

        if product.quantity == 1:
            await self._catalog.save(product.model_copy(update={"quantity": 0, **sale}))
            remaining = 0
        else:
            units = max(1, min(item.quantity, product.quantity))
            remaining = product.quantity - units
            await self._catalog.create(
                product.model_copy(
                    update={
                        "id": str(uuid.uuid4()),
                        "quantity": units,
                        "split_from_id": product.id,
                        "platform_ids": {},
                        "exported_to": {},
                        "withdrawn_at": {},
                        **sale,
                    }
                )
            )
            update: dict = {"quantity": remaining}
            if remaining == 0:
                update.update(
                    sold=True,
                    sold_price=item.total,
                    sold_date=order.creation_date.date(),
                    sold_platform=str(self._marketplace),
                )
            await self._catalog.save(product.model_copy(update=update))

        await self._audit.info(
            tenant_id,
            "Order line item applied",
            product_id=product.id,
            order_id=order.order_id,
            line_item_id=item.line_item_id,
            units=item.quantity,
            remaining=remaining,
        )
        await self._alerts.emit(
            tenant_id,
            AlertLevel.SUCCESS,
            "Item sold on eBay",
            f"{product.title or product.sku} sold for ${item.total:.2f} "
            f"(order {order.order_id}). {remaining} remaining.",
            product_id=product.id,
        )
        return SaleOutcome.APPLIED

    async def _resolve(self, tenant_id: str, item: RemoteLineItem) -> Product | None:
        if item.sku:
            product = await self._catalog.get(tenant_id, item.sku)
            if product is not None:
                return product
        if item.remote_item_id:
            return await self._catalog.find_by_platform_id(
                tenant_id, self._marketplace, item.remote_item_id
            )
        return None

    async def _record_fulfillments(self, tenant_id: str, order: RemoteOrder) -> None:
        """Follow the order's fulfillment links and log tracking numbers. Never fatal."""
        tracking: list[str] = []
        for href in order.fulfillment_hrefs:
            try:
                detail = await self._tokens.force_refresh_and_retry(
                    tenant_id, lambda token: self._client.get_fulfillment_detail(token, href)
                )
            except MarketSyncError as e:
                logger.warning(f"Fulfillment lookup failed for order {order.order_id}: {e}")
                continue
            number = detail.get("shipmentTrackingNumber")
            if number:
                tracking.append(number)
        if tracking:
            await self._audit.info(
                tenant_id, "Order fulfillment recorded", order_id=order.order_id, tracking=tracking
            )
