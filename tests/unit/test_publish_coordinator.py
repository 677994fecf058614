"""
Tests for PublishCoordinator: publish, update and withdraw against the
in-memory eBay double.
"""

from datetime import timedelta

import pytest

from marketsync.core.exceptions import (
    InvalidTransitionError,
    ListingDataError,
    MarketplaceAuthError,
    NotFoundError,
    RemoteValidationError,
)
from marketsync.core.listing_state import Published, Withdrawn, state_of
from marketsync.core.models import ListingFormat, Marketplace
from marketsync.services.publish_coordinator import PublishCoordinator

EBAY = Marketplace.EBAY


@pytest.fixture
def coordinator(ebay_client, token_manager, catalog, audit, clock) -> PublishCoordinator:
    return PublishCoordinator(ebay_client, token_manager, catalog, audit, clock=clock)


@pytest.fixture
async def stored_watch(catalog, sample_watch):
    return await catalog.create(sample_watch)


class TestPublish:
    async def test_publish_new_product(self, coordinator, ebay_client, catalog, stored_watch, listing_context, tenant_id, clock):
        saved = await coordinator.publish(tenant_id, stored_watch, listing_context)

        assert state_of(saved, EBAY) == Published(listing_id="item-101", exported_at=clock())
        assert catalog.products[stored_watch.id].platform_ids == {"ebay": "item-101"}
        assert ebay_client.calls == [
            "upsert_inventory_item",
            "get_offers",
            "create_offer",
            "publish_offer",
        ]
        assert ebay_client.inventory["SKU-ROLEX-1"]["condition"] == "USED_EXCELLENT"

    async def test_republish_reuses_offer_and_listing(self, coordinator, ebay_client, stored_watch, listing_context, tenant_id, clock):
        first = await coordinator.publish(tenant_id, stored_watch, listing_context)
        clock.advance(hours=1)
        second = await coordinator.publish(tenant_id, first, listing_context)

        assert second.platform_ids == first.platform_ids
        assert len(ebay_client.offers) == 1
        assert ebay_client.calls.count("create_offer") == 1
        assert ebay_client.calls.count("update_offer") == 1
        assert second.exported_to["ebay"] == first.exported_to["ebay"] + timedelta(hours=1)

    async def test_format_switch_creates_new_offer_and_keeps_old(self, coordinator, ebay_client, stored_watch, listing_context, tenant_id):
        await coordinator.publish(tenant_id, stored_watch, listing_context)
        auction = stored_watch.model_copy(
            update={"listing_format": ListingFormat.AUCTION, "auction_start_price": 9000.0}
        )
        await coordinator.publish(tenant_id, auction, listing_context)

        formats = sorted(o["format"] for o in ebay_client.offers_for("SKU-ROLEX-1"))
        assert formats == ["AUCTION", "FIXED_PRICE"]

    async def test_invalid_product_fails_before_remote_calls(self, coordinator, ebay_client, stored_watch, listing_context, tenant_id):
        with pytest.raises(ListingDataError):
            await coordinator.publish(tenant_id, stored_watch.model_copy(update={"price": None}), listing_context)
        assert ebay_client.calls == []

    async def test_remote_rejection_leaves_local_state_untouched(self, coordinator, ebay_client, catalog, stored_watch, listing_context, tenant_id):
        ebay_client.fail("publish_offer", RemoteValidationError("Item.Country missing", status_code=400))

        with pytest.raises(RemoteValidationError):
            await coordinator.publish(tenant_id, stored_watch, listing_context)

        assert catalog.products[stored_watch.id].platform_ids == {}
        assert catalog.saves == 0

    async def test_expired_token_refreshed_mid_protocol(self, coordinator, ebay_client, ebay_auth, stored_watch, listing_context, tenant_id):
        ebay_client.fail("create_offer", MarketplaceAuthError("expired", status_code=401))
        saved = await coordinator.publish(tenant_id, stored_watch, listing_context)
        assert saved.is_listed(EBAY)
        assert ebay_auth.refresh_calls == 1

    async def test_audit_entry(self, coordinator, audit_sink, stored_watch, listing_context, tenant_id):
        await coordinator.publish(tenant_id, stored_watch, listing_context)
        entry = audit_sink.entries[-1]
        assert entry.message == "Listing published"
        assert entry.details == {"product_id": "SKU-ROLEX-1", "listing_id": "item-101"}


class TestUpdate:
    async def test_update_requires_listing(self, coordinator, ebay_client, stored_watch, listing_context, tenant_id):
        with pytest.raises(InvalidTransitionError):
            await coordinator.update(tenant_id, stored_watch, listing_context)
        assert ebay_client.calls == []

    async def test_update_pushes_new_data(self, coordinator, ebay_client, stored_watch, listing_context, tenant_id):
        listed = await coordinator.publish(tenant_id, stored_watch, listing_context)
        repriced = listed.model_copy(update={"price": 11500.0})

        saved = await coordinator.update(tenant_id, repriced, listing_context)

        offer = ebay_client.offers_for("SKU-ROLEX-1")[0]
        assert offer["pricingSummary"]["price"]["value"] == "11500.00"
        assert saved.platform_ids == listed.platform_ids


class TestWithdraw:
    async def test_withdraw_published(self, coordinator, ebay_client, catalog, stored_watch, listing_context, tenant_id, clock):
        listed = await coordinator.publish(tenant_id, stored_watch, listing_context)

        saved = await coordinator.withdraw(tenant_id, listed)

        assert state_of(saved, EBAY) == Withdrawn(withdrawn_at=clock())
        assert saved.platform_ids == {}
        assert saved.exported_to == {}
        assert ebay_client.offers_for("SKU-ROLEX-1")[0]["status"] == "UNPUBLISHED"

    async def test_withdraw_unlisted_is_invalid(self, coordinator, stored_watch, tenant_id):
        with pytest.raises(InvalidTransitionError):
            await coordinator.withdraw(tenant_id, stored_watch)

    async def test_offer_already_gone_counts_as_ended(self, coordinator, ebay_client, stored_watch, listing_context, tenant_id):
        listed = await coordinator.publish(tenant_id, stored_watch, listing_context)
        ebay_client.fail("withdraw_offer", NotFoundError("gone", status_code=404))

        saved = await coordinator.withdraw(tenant_id, listed)

        assert not saved.is_listed(EBAY)

    async def test_no_published_offer_still_clears_local_state(self, coordinator, ebay_client, stored_watch, listing_context, tenant_id):
        listed = await coordinator.publish(tenant_id, stored_watch, listing_context)
        ebay_client.offers.clear()

        saved = await coordinator.withdraw(tenant_id, listed)

        assert not saved.is_listed(EBAY)
        assert "withdraw_offer" not in ebay_client.calls

    async def test_republish_after_withdraw(self, coordinator, stored_watch, listing_context, tenant_id):
        listed = await coordinator.publish(tenant_id, stored_watch, listing_context)
        withdrawn = await coordinator.withdraw(tenant_id, listed)
        relisted = await coordinator.publish(tenant_id, withdrawn, listing_context)
        assert relisted.is_listed(EBAY)
        assert relisted.withdrawn_at == {}
