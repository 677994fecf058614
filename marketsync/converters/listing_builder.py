"""
Product → eBay inventory item + offer payloads.

``ListingBuilder.build`` is pure: given the same product, category schema
and listing context it always returns the same payloads, and performs no
I/O. It handles:

- condition normalization and per-category coercion
- attribute → aspect mapping via the category's static table
- pricing summary for fixed-price and auction formats
- listing policy selection, including a deferred-payment policy for
  auctions without buy-it-now
- description (+ footer exactly once), title and image list limits
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from marketsync.converters.category_schema import CategorySchema
from marketsync.converters.condition_map import normalize_condition
from marketsync.converters.description_builder import DescriptionBuilder
from marketsync.core.exceptions import ConfigurationError, ListingDataError
from marketsync.core.models import (
    ListingContext,
    ListingFormat,
    ListingPayload,
    Marketplace,
    MarketplaceCondition,
    Product,
)

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 80
MODEL_ASPECT_MAX_LENGTH = 65
DEFAULT_BRAND = "Unbranded"
AUCTION_DURATION = "DAYS_7"
FIXED_PRICE_DURATION = "GTC"

PACKAGE_WEIGHT_AND_SIZE = {
    "packageType": "PACKAGE_THICK_ENVELOPE",
    "weight": {"value": 0.5, "unit": "POUND"},
}

_DEPARTMENTS = {
    "womens": "Women",
    "women": "Women",
    "mens": "Men",
    "men": "Men",
}

_PHOTO_URL_KEYS = ("full", "original", "url")


def format_amount(value: float) -> str:
    """Render a price with exactly two decimals."""
    return str(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class ListingBuilder:
    """Pure mapping from a catalog product to eBay listing payloads."""

    def __init__(
        self,
        marketplace: Marketplace = Marketplace.EBAY,
        description_builder: DescriptionBuilder | None = None,
    ):
        self._marketplace = marketplace
        self._description_builder = description_builder or DescriptionBuilder()

    # ─── Public API ──────────────────────────────────────────

    def build(
        self,
        product: Product,
        schema: CategorySchema,
        context: ListingContext,
    ) -> ListingPayload:
        """
        Build both payloads for ``product``.

        Args:
            product: Catalog record; its id is the SKU.
            schema: Listing schema of the product's category.
            context: Marketplace id, currency, tenant policies and settings.

        Returns:
            ListingPayload with the inventory item and offer bodies.

        Raises:
            ListingDataError: The product lacks a price or starting bid.
            ConfigurationError: No listing policy or location satisfies the listing.
        """
        return ListingPayload(
            sku=product.sku,
            listing_format=product.listing_format,
            inventory_item=self.build_inventory_item(product, schema, context),
            offer=self.build_offer(product, schema, context),
        )

    def build_inventory_item(
        self, product: Product, schema: CategorySchema, context: ListingContext
    ) -> dict[str, Any]:
        return {
            "availability": {
                "shipToLocationAvailability": {"quantity": self.available_quantity(product)},
            },
            "condition": self.condition(product, schema).value,
            "product": {
                "title": self.title(product),
                "description": self.description(product, context),
                "aspects": self.aspects(product, schema),
                "imageUrls": self.image_urls(product, context.image_limit),
            },
            "packageWeightAndSize": PACKAGE_WEIGHT_AND_SIZE,
        }

    def build_offer(
        self, product: Product, schema: CategorySchema, context: ListingContext
    ) -> dict[str, Any]:
        fulfillment_id, payment_id, return_id = self.select_policies(product, context)
        is_auction = product.listing_format == ListingFormat.AUCTION
        offer: dict[str, Any] = {
            "sku": product.sku,
            "marketplaceId": context.marketplace_id,
            "format": product.listing_format.value,
            "availableQuantity": self.available_quantity(product),
            "categoryId": schema.category_id,
            "listingDescription": self.description(product, context),
            "listingDuration": AUCTION_DURATION if is_auction else FIXED_PRICE_DURATION,
            "pricingSummary": self.pricing_summary(product, context.currency),
            "listingPolicies": {
                "fulfillmentPolicyId": fulfillment_id,
                "paymentPolicyId": payment_id,
                "returnPolicyId": return_id,
            },
            "merchantLocationKey": self.location_key(context),
        }
        return offer

    # ─── Fields ──────────────────────────────────────────────

    def available_quantity(self, product: Product) -> int:
        if product.listing_format == ListingFormat.AUCTION:
            return 1
        return product.quantity

    def condition(self, product: Product, schema: CategorySchema) -> MarketplaceCondition:
        mapped = normalize_condition(product.condition, default=schema.fallback_condition)
        coerced = schema.coerce_condition(mapped)
        if coerced != mapped:
            logger.debug(
                f"Condition {mapped} not accepted in category {schema.code}; using {coerced}"
            )
        return coerced

    def title(self, product: Product) -> str:
        title = product.title.strip() or " ".join(
            part for part in (product.brand, product.model, product.reference_number) if part
        )
        return (title or product.sku)[:TITLE_MAX_LENGTH].strip()

    def description(self, product: Product, context: ListingContext) -> str:
        return self._description_builder.build(
            product, self._marketplace, footer=context.settings.listing_footer
        )

    def aspects(self, product: Product, schema: CategorySchema) -> dict[str, list[str]]:
        """Common aspects plus the category's attribute table; never a condition aspect."""
        aspects: dict[str, list[str]] = {
            "Brand": [product.brand or DEFAULT_BRAND],
            "Department": [_DEPARTMENTS.get(product.gender.strip().lower(), "Unisex")],
            "Type": [schema.item_type],
        }
        if product.model:
            aspects["Model"] = [product.model[:MODEL_ASPECT_MAX_LENGTH]]
        if product.year:
            aspects["Year"] = [str(product.year)]
        if product.serial_number:
            aspects["Item Number"] = [product.serial_number]
        if product.reference_number:
            aspects["Reference Number"] = [product.reference_number]

        for key, aspect_name in schema.aspect_map.items():
            values = _aspect_values(product.attributes.get(key))
            if values and aspect_name not in aspects:
                aspects[aspect_name] = values

        return {name: values for name, values in aspects.items() if "condition" not in name.lower()}

    def image_urls(self, product: Product, limit: int) -> list[str]:
        urls: list[str] = []
        for photo in product.photos:
            url = photo
            if isinstance(photo, dict):
                url = next((photo[k] for k in _PHOTO_URL_KEYS if photo.get(k)), None)
            if isinstance(url, str) and url and url not in urls:
                urls.append(url)
        return urls[:limit]

    def pricing_summary(self, product: Product, currency: str) -> dict[str, Any]:
        """
        Fixed price: a single ``price``.
        Auction: ``auctionStartPrice`` plus optional reserve and buy-it-now ``price``.
        """
        def amount(value: float) -> dict[str, str]:
            return {"value": format_amount(value), "currency": currency}

        if product.listing_format == ListingFormat.AUCTION:
            if not product.auction_start_price or product.auction_start_price <= 0:
                raise ListingDataError(
                    f"Auction for {product.sku} has no starting bid",
                    details={"product_id": product.id},
                )
            summary = {"auctionStartPrice": amount(product.auction_start_price)}
            if product.auction_reserve_price:
                summary["auctionReservePrice"] = amount(product.auction_reserve_price)
            if product.buy_it_now_price:
                summary["price"] = amount(product.buy_it_now_price)
            return summary

        if product.price is None or product.price <= 0:
            raise ListingDataError(
                f"Product {product.sku} has no price",
                details={"product_id": product.id},
            )
        return {"price": amount(product.price)}

    # ─── Policies ────────────────────────────────────────────

    def requires_deferred_payment(self, product: Product) -> bool:
        return product.listing_format == ListingFormat.AUCTION and not product.buy_it_now_price

    def select_policies(self, product: Product, context: ListingContext) -> tuple[str, str, str]:
        """
        Pick fulfillment, payment and return policy ids.

        Tenant-preferred ids win when they qualify. Free-shipping products
        prefer a fulfillment policy with a free option. Auctions without
        buy-it-now need a payment policy that does not require immediate
        payment.

        Raises:
            ConfigurationError: A policy kind has no qualifying option.
        """
        policies = context.policies
        settings = context.settings

        fulfillment = policies.fulfillment
        if product.free_shipping:
            fulfillment = [p for p in fulfillment if p.free_shipping] or fulfillment
        fulfillment_id = _pick(
            [p.policy_id for p in fulfillment], settings.fulfillment_policy_id, "fulfillment policy"
        )

        payment = policies.payment
        if self.requires_deferred_payment(product):
            payment = [p for p in payment if not p.immediate_pay]
            if not payment:
                raise ConfigurationError(
                    "Auction without buy-it-now requires a payment policy without immediate payment",
                    details={"product_id": product.id},
                )
        payment_id = _pick([p.policy_id for p in payment], settings.payment_policy_id, "payment policy")

        return_id = _pick(
            [p.policy_id for p in policies.returns], settings.return_policy_id, "return policy"
        )
        return fulfillment_id, payment_id, return_id

    def location_key(self, context: ListingContext) -> str:
        return _pick(
            context.policies.location_keys,
            context.settings.merchant_location_key,
            "inventory location",
        )


def _pick(candidates: list[str], preferred: str | None, kind: str) -> str:
    if not candidates:
        raise ConfigurationError(f"No {kind} configured on the marketplace", details={"kind": kind})
    if preferred and preferred in candidates:
        return preferred
    return candidates[0]


def _aspect_values(raw: Any) -> list[str]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, list | tuple | set):
        return [str(v) for v in raw if v not in (None, "")]
    return [str(raw)]
