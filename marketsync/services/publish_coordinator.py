"""
Publish / update / withdraw protocol for one product on eBay.

Publish and update run the same sequence:

1. Build payloads (pure; bad product data fails before any remote call)
2. Upsert the inventory item by SKU
3. Find the SKU's offer in the desired format
4. Update that offer, or create one if none exists
5. Publish the offer → remote listing id
6. Commit local listing state

Local state is written only after step 5 succeeds, so a product never
looks listed when the marketplace refused it. Every remote step goes
through ``TokenManager.force_refresh_and_retry``.
"""

import logging

from marketsync.converters.category_schema import get_category_schema
from marketsync.converters.listing_builder import ListingBuilder
from marketsync.core import listing_state
from marketsync.core.exceptions import NotFoundError
from marketsync.core.interfaces import ICatalogStore
from marketsync.core.listing_state import Published, apply_state, state_of
from marketsync.core.models import (
    ListingContext,
    ListingPayload,
    Marketplace,
    Product,
    utc_now,
)
from marketsync.marketplace.ebay_client import EbayClient
from marketsync.services.audit import AuditLogger
from marketsync.services.token_manager import TokenManager

logger = logging.getLogger(__name__)


class PublishCoordinator:
    """Drives a product's listing through the marketplace state machine."""

    def __init__(
        self,
        client: EbayClient,
        tokens: TokenManager,
        catalog: ICatalogStore,
        audit: AuditLogger,
        builder: ListingBuilder | None = None,
        marketplace: Marketplace = Marketplace.EBAY,
        clock=utc_now,
    ):
        self._client = client
        self._tokens = tokens
        self._catalog = catalog
        self._audit = audit
        self._builder = builder or ListingBuilder(marketplace=marketplace)
        self._marketplace = marketplace
        self._clock = clock

    # ─── Public API ──────────────────────────────────────────

    async def publish(self, tenant_id: str, product: Product, context: ListingContext) -> Product:
        """
        Publish ``product`` (or re-publish it if already listed).

        Publishing an unchanged product again reuses the same offer and
        yields the same listing id.

        Returns:
            The saved product in the Published state.
        """
        payload = self._build(product, context)
        listing_id = await self._push(tenant_id, payload)
        state = listing_state.publish(state_of(product, self._marketplace), listing_id, self._clock())
        saved = await self._catalog.save(apply_state(product, self._marketplace, state))
        await self._audit.info(
            tenant_id, "Listing published", product_id=product.id, listing_id=listing_id
        )
        return saved

    async def update(self, tenant_id: str, product: Product, context: ListingContext) -> Product:
        """
        Push the current product data to its existing listing.

        Raises:
            InvalidTransitionError: The product is not listed.
        """
        current = state_of(product, self._marketplace)
        # Validate the transition before any remote call.
        listing_state.update(current, "", self._clock())
        payload = self._build(product, context)
        listing_id = await self._push(tenant_id, payload)
        state = listing_state.update(current, listing_id, self._clock())
        saved = await self._catalog.save(apply_state(product, self._marketplace, state))
        await self._audit.info(
            tenant_id, "Listing updated", product_id=product.id, listing_id=listing_id
        )
        return saved

    async def withdraw(self, tenant_id: str, product: Product) -> Product:
        """
        End the product's listing and clear its listing ids.

        An offer that is already gone on the marketplace counts as ended.

        Raises:
            InvalidTransitionError: The product is not listed.
        """
        current = state_of(product, self._marketplace)
        state = listing_state.withdraw(current, self._clock())

        call = self._tokens.force_refresh_and_retry
        offers = await call(tenant_id, lambda token: self._client.get_offers(token, product.sku))
        published = [o for o in offers if o.get("status") == "PUBLISHED"]
        if not published:
            logger.info(f"No published offer for sku={product.sku}; treating as already ended")

        for offer in published:
            offer_id = offer["offerId"]
            try:
                await call(tenant_id, lambda token: self._client.withdraw_offer(token, offer_id))
            except NotFoundError:
                logger.info(f"Offer {offer_id} already gone; treating as ended")

        saved = await self._catalog.save(apply_state(product, self._marketplace, state))
        listing_id = current.listing_id if isinstance(current, Published) else None
        await self._audit.info(
            tenant_id, "Listing withdrawn", product_id=product.id, listing_id=listing_id
        )
        return saved

    # ─── Internals ───────────────────────────────────────────

    def _build(self, product: Product, context: ListingContext) -> ListingPayload:
        schema = get_category_schema(product.category_code)
        return self._builder.build(product, schema, context)

    async def _push(self, tenant_id: str, payload: ListingPayload) -> str:
        """Steps 2–5 of the protocol. Returns the remote listing id."""
        call = self._tokens.force_refresh_and_retry
        client = self._client
        sku = payload.sku

        await call(tenant_id, lambda token: client.upsert_inventory_item(token, sku, payload.inventory_item))

        offers = await call(tenant_id, lambda token: client.get_offers(token, sku))
        matching = [o for o in offers if o.get("format") == payload.listing_format.value]
        other_formats = [o for o in offers if o.get("format") != payload.listing_format.value]
        if other_formats:
            logger.warning(
                f"sku={sku} has {len(other_formats)} offer(s) in another format; "
                f"leaving them in place and using {payload.listing_format}"
            )

        if matching:
            offer_id = matching[0]["offerId"]
            await call(tenant_id, lambda token: client.update_offer(token, offer_id, payload.offer))
        else:
            offer_id = await call(tenant_id, lambda token: client.create_offer(token, payload.offer))

        return await call(tenant_id, lambda token: client.publish_offer(token, offer_id))
