"""
Tests for OrderSyncPoller: idempotent application of remote orders.
"""

from datetime import UTC, date, datetime, timedelta

import pytest

from marketsync.core.exceptions import MarketplaceAuthError, MarketplaceError, ReconnectRequired
from marketsync.core.models import (
    AlertLevel,
    Marketplace,
    RemoteLineItem,
    RemoteOrder,
    SaleMarker,
)
from marketsync.services.order_sync_poller import OrderSyncPoller, SaleOutcome

EBAY = Marketplace.EBAY


@pytest.fixture
def poller(ebay_client, token_manager, catalog, audit, alerts, clock) -> OrderSyncPoller:
    return OrderSyncPoller(
        ebay_client, token_manager, catalog, audit, alerts, window=timedelta(days=60), clock=clock
    )


def _order(order_id: str, *items: RemoteLineItem, days_ago: int = 1, hrefs=None) -> RemoteOrder:
    return RemoteOrder(
        order_id=order_id,
        creation_date=datetime(2026, 3, 1, 12, 0, tzinfo=UTC) - timedelta(days=days_ago),
        line_items=list(items),
        fulfillment_hrefs=hrefs or [],
    )


def _line(line_id: str, sku: str | None = None, item_id: str | None = None, quantity=1, total=100.0):
    return RemoteLineItem(
        line_item_id=line_id, sku=sku, remote_item_id=item_id, quantity=quantity, total=total
    )


class TestSingleUnitSale:
    async def test_marks_sold_in_place(self, poller, catalog, sample_watch, tenant_id):
        await catalog.create(sample_watch)
        order = _order("O-1", _line("L-1", sku="SKU-ROLEX-1", total=12500.0))

        outcome = await poller.apply_line_item(tenant_id, order, order.line_items[0])

        assert outcome == SaleOutcome.APPLIED
        product = catalog.products["SKU-ROLEX-1"]
        assert product.sold is True
        assert product.quantity == 0
        assert product.sold_price == 12500.0
        assert product.sold_date == date(2026, 2, 28)
        assert product.sold_platform == "ebay"
        assert product.sale_marker == SaleMarker(order_id="O-1", line_item_id="L-1")
        assert len(catalog.all(tenant_id)) == 1

    async def test_replay_is_duplicate(self, poller, catalog, sample_watch, tenant_id):
        await catalog.create(sample_watch)
        order = _order("O-1", _line("L-1", sku="SKU-ROLEX-1"))

        await poller.apply_orders(tenant_id, [order])
        summary = await poller.apply_orders(tenant_id, [order, order])

        assert summary.applied == 0
        assert summary.duplicates == 2
        assert catalog.products["SKU-ROLEX-1"].quantity == 0

    async def test_already_sold_skipped(self, poller, catalog, sample_watch, tenant_id):
        await catalog.create(sample_watch.model_copy(update={"sold": True, "quantity": 0}))
        order = _order("O-2", _line("L-1", sku="SKU-ROLEX-1"))

        outcome = await poller.apply_line_item(tenant_id, order, order.line_items[0])

        assert outcome == SaleOutcome.ALREADY_SOLD
        assert catalog.products["SKU-ROLEX-1"].sale_marker is None

    async def test_resolves_by_remote_item_id(self, poller, catalog, sample_watch, tenant_id):
        await catalog.create(sample_watch.model_copy(update={"platform_ids": {"ebay": "110553"}}))
        order = _order("O-3", _line("L-1", sku=None, item_id="110553"))

        assert await poller.apply_line_item(tenant_id, order, order.line_items[0]) == SaleOutcome.APPLIED

    async def test_unresolved_line_item(self, poller, audit_sink, tenant_id):
        order = _order("O-4", _line("L-1", sku="NOPE", item_id="999"))

        summary = await poller.apply_orders(tenant_id, [order])

        assert summary.unresolved == 1
        assert "does not match any product" in audit_sink.messages("warning")[0]

    async def test_alert_emitted(self, poller, catalog, alert_sink, sample_watch, tenant_id):
        await catalog.create(sample_watch)
        order = _order("O-5", _line("L-1", sku="SKU-ROLEX-1", total=12500.0))

        await poller.apply_orders(tenant_id, [order])

        alert = alert_sink.alerts[0]
        assert alert.level == AlertLevel.SUCCESS
        assert alert.title == "Item sold on eBay"
        assert "$12500.00" in alert.message
        assert alert.product_id == "SKU-ROLEX-1"


class TestMultiUnitSplit:
    async def test_split_off_sold_record(self, poller, catalog, sample_stock_item, tenant_id):
        listed = sample_stock_item.model_copy(update={"platform_ids": {"ebay": "item-7"}})
        await catalog.create(listed)
        order = _order("O-10", _line("L-1", sku="SKU-BAG-5", quantity=2, total=590.0))

        outcome = await poller.apply_line_item(tenant_id, order, order.line_items[0])

        assert outcome == SaleOutcome.APPLIED
        original = catalog.products["SKU-BAG-5"]
        assert original.quantity == 3
        assert original.sold is False
        assert original.is_listed(EBAY)

        split = next(p for p in catalog.all(tenant_id) if p.split_from_id == "SKU-BAG-5")
        assert split.quantity == 2
        assert split.sold is True
        assert split.sold_price == 590.0
        assert split.sale_marker == SaleMarker(order_id="O-10", line_item_id="L-1")
        assert split.platform_ids == {}
        assert split.title == original.title

    async def test_split_replay_applies_once(self, poller, catalog, sample_stock_item, tenant_id):
        await catalog.create(sample_stock_item)
        order = _order("O-11", _line("L-1", sku="SKU-BAG-5", quantity=1))

        for _ in range(3):
            await poller.apply_orders(tenant_id, [order])

        assert catalog.products["SKU-BAG-5"].quantity == 4
        assert len(catalog.all(tenant_id)) == 2

    async def test_last_units_mark_original_sold(self, poller, catalog, sample_stock_item, tenant_id):
        await catalog.create(sample_stock_item.model_copy(update={"quantity": 2}))
        order = _order("O-12", _line("L-1", sku="SKU-BAG-5", quantity=2, total=590.0))

        await poller.apply_orders(tenant_id, [order])

        original = catalog.products["SKU-BAG-5"]
        assert original.quantity == 0
        assert original.sold is True

    async def test_units_capped_at_stock(self, poller, catalog, sample_stock_item, tenant_id):
        await catalog.create(sample_stock_item.model_copy(update={"quantity": 2}))
        order = _order("O-13", _line("L-1", sku="SKU-BAG-5", quantity=5))

        await poller.apply_orders(tenant_id, [order])

        split = next(p for p in catalog.all(tenant_id) if p.split_from_id)
        assert split.quantity == 2
        assert catalog.products["SKU-BAG-5"].quantity == 0

    async def test_two_line_items_same_order(self, poller, catalog, sample_stock_item, tenant_id):
        await catalog.create(sample_stock_item)
        order = _order(
            "O-14",
            _line("L-1", sku="SKU-BAG-5", quantity=1),
            _line("L-2", sku="SKU-BAG-5", quantity=1),
        )

        summary = await poller.apply_orders(tenant_id, [order])

        assert summary.applied == 2
        assert catalog.products["SKU-BAG-5"].quantity == 3

    async def test_failed_decrement_discards_split(self, poller, catalog, sample_stock_item, tenant_id, monkeypatch):
        await catalog.create(sample_stock_item)
        original_save = catalog.save

        async def failing_save(product):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(catalog, "save", failing_save)
        order = _order("O-15", _line("L-1", sku="SKU-BAG-5", quantity=2, total=590.0))

        summary = await poller.apply_orders(tenant_id, [order])

        assert summary.applied == 0
        assert len(summary.errors) == 1
        assert len(catalog.all(tenant_id)) == 1
        assert catalog.products["SKU-BAG-5"].quantity == 5
        marker = SaleMarker(order_id="O-15", line_item_id="L-1")
        assert await catalog.find_by_sale_marker(tenant_id, marker) is None

        # The next cycle applies the sale instead of treating it as a duplicate
        monkeypatch.setattr(catalog, "save", original_save)
        retry = await poller.apply_orders(tenant_id, [order])

        assert retry.applied == 1
        assert catalog.products["SKU-BAG-5"].quantity == 3


class TestPoll:
    async def test_poll_fetches_window(self, poller, ebay_client, catalog, sample_watch, tenant_id):
        await catalog.create(sample_watch)
        ebay_client.orders = [
            _order("O-old", _line("L-1", sku="SKU-ROLEX-1"), days_ago=90),
            _order("O-new", _line("L-1", sku="SKU-ROLEX-1"), days_ago=2),
        ]

        summary = await poller.poll(tenant_id)

        assert summary.orders_seen == 1
        assert summary.applied == 1
        assert catalog.products["SKU-ROLEX-1"].sale_marker.order_id == "O-new"

    async def test_poll_retries_once_on_expired_token(self, poller, ebay_client, ebay_auth, tenant_id):
        ebay_client.fail("get_orders_since", MarketplaceAuthError("expired", status_code=401))
        summary = await poller.poll(tenant_id)
        assert summary.orders_seen == 0
        assert ebay_auth.refresh_calls == 1

    async def test_poll_revoked_requires_reconnect(self, poller, ebay_client, tenant_id):
        ebay_client.rejected_tokens = {"access-0", "access-1"}
        with pytest.raises(ReconnectRequired):
            await poller.poll(tenant_id)

    async def test_fetch_failure_aborts(self, poller, ebay_client, audit_sink, tenant_id):
        ebay_client.fail("get_orders_since", MarketplaceError("eBay down", status_code=503))
        with pytest.raises(MarketplaceError):
            await poller.poll(tenant_id)

        assert audit_sink.messages("error")[-1].startswith("Order poll aborted")
        assert audit_sink.commits == 1

    async def test_item_failure_recorded_and_cycle_continues(self, poller, catalog, sample_watch, sample_stock_item, tenant_id, monkeypatch):
        await catalog.create(sample_watch)
        await catalog.create(sample_stock_item)
        original_save = catalog.save

        async def flaky_save(product):
            if product.id == "SKU-ROLEX-1":
                raise RuntimeError("database hiccup")
            return await original_save(product)

        monkeypatch.setattr(catalog, "save", flaky_save)
        orders = [
            _order("O-20", _line("L-1", sku="SKU-ROLEX-1")),
            _order("O-21", _line("L-1", sku="SKU-BAG-5")),
        ]

        summary = await poller.apply_orders(tenant_id, orders)

        assert summary.applied == 1
        assert len(summary.errors) == 1
        assert "O-20" in summary.errors[0]

    async def test_fulfillment_tracking_recorded(self, poller, ebay_client, catalog, audit_sink, sample_watch, tenant_id):
        await catalog.create(sample_watch)
        href = "https://api.ebay.com/sell/fulfillment/v1/order/O-30/shipping_fulfillment/1"
        ebay_client.fulfillment_details[href] = {"shipmentTrackingNumber": "1Z999"}

        await poller.apply_orders(
            tenant_id, [_order("O-30", _line("L-1", sku="SKU-ROLEX-1"), hrefs=[href])]
        )

        entry = next(e for e in audit_sink.entries if e.message == "Order fulfillment recorded")
        assert entry.details["tracking"] == ["1Z999"]

    async def test_fulfillment_lookup_failure_not_fatal(self, poller, ebay_client, catalog, sample_watch, tenant_id):
        await catalog.create(sample_watch)
        ebay_client.fail("get_fulfillment_detail", MarketplaceError("boom", status_code=500))

        summary = await poller.apply_orders(
            tenant_id, [_order("O-31", _line("L-1", sku="SKU-ROLEX-1"), hrefs=["https://x/1"])]
        )

        assert summary.applied == 1
        assert summary.errors == []
