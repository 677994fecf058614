"""
Pydantic domain models for MarketSync.

These models represent the data flowing through the sync engine:
Product → ListingPayload → remote offer, and RemoteOrder → sale transitions.
They are independent of the persistence layer (see db/mappers.py).
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class Marketplace(StrEnum):
    """Supported target marketplaces."""
    EBAY = "ebay"


class ListingFormat(StrEnum):
    """Offer format on the marketplace."""
    FIXED_PRICE = "FIXED_PRICE"
    AUCTION = "AUCTION"


class MarketplaceCondition(StrEnum):
    """eBay Inventory API ConditionEnum."""
    NEW = "NEW"
    LIKE_NEW = "LIKE_NEW"
    NEW_OTHER = "NEW_OTHER"
    NEW_WITH_DEFECTS = "NEW_WITH_DEFECTS"
    CERTIFIED_REFURBISHED = "CERTIFIED_REFURBISHED"
    SELLER_REFURBISHED = "SELLER_REFURBISHED"
    USED_EXCELLENT = "USED_EXCELLENT"
    USED_VERY_GOOD = "USED_VERY_GOOD"
    USED_GOOD = "USED_GOOD"
    USED_ACCEPTABLE = "USED_ACCEPTABLE"
    FOR_PARTS_OR_NOT_WORKING = "FOR_PARTS_OR_NOT_WORKING"


class AlertLevel(StrEnum):
    """Severity of a user-facing alert."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class BatchOperation(StrEnum):
    """Operations accepted by the batch action endpoint."""
    PUBLISH = "publish"
    UPDATE = "update"
    END = "end"


# ─── Credential ───────────────────────────────────────────────


class Credential(BaseModel):
    """Per-tenant OAuth credential for one marketplace."""

    tenant_id: str
    marketplace: Marketplace = Marketplace.EBAY
    access_token: str
    refresh_token: str | None = None
    access_token_expires_at: datetime | None = None
    refresh_token_expires_at: datetime | None = None
    sandbox_mode: bool = True

    def expires_within(self, window: timedelta, now: datetime) -> bool:
        """True if the access token is expired or expires inside ``window``."""
        if self.access_token_expires_at is None:
            return True
        return self.access_token_expires_at <= now + window

    def can_refresh(self, now: datetime) -> bool:
        if not self.refresh_token:
            return False
        if self.refresh_token_expires_at is None:
            return True
        return self.refresh_token_expires_at > now


class TokenGrant(BaseModel):
    """Response of the OAuth token endpoint."""

    access_token: str
    expires_in: int = 7200
    refresh_token: str | None = None
    refresh_token_expires_in: int | None = None
    token_type: str = "User Access Token"


# ─── Catalog ──────────────────────────────────────────────────


class SaleMarker(BaseModel):
    """Dedupe marker recorded once a remote sale line item has been applied."""

    order_id: str
    line_item_id: str

    model_config = {"frozen": True}


class Product(BaseModel):
    """A catalog record. Its ``id`` doubles as the marketplace SKU."""

    id: str
    tenant_id: str
    title: str = ""
    description: str = ""
    platform_descriptions: dict[str, str] = Field(default_factory=dict)
    brand: str = ""
    model: str = ""
    reference_number: str = ""
    serial_number: str = ""
    year: str = ""
    gender: str = ""
    category_code: str = ""
    condition: str = ""
    quantity: int = Field(default=1, ge=0)
    price: float | None = None
    currency: str = "USD"
    listing_format: ListingFormat = ListingFormat.FIXED_PRICE
    auction_start_price: float | None = None
    auction_reserve_price: float | None = None
    buy_it_now_price: float | None = None
    free_shipping: bool = False
    attributes: dict[str, Any] = Field(default_factory=dict)
    photos: list[Any] = Field(default_factory=list)
    platform_ids: dict[str, str] = Field(default_factory=dict)
    exported_to: dict[str, datetime] = Field(default_factory=dict)
    withdrawn_at: dict[str, datetime] = Field(default_factory=dict)
    sold: bool = False
    sold_date: date | None = None
    sold_price: float | None = None
    sold_platform: str | None = None
    sale_marker: SaleMarker | None = None
    split_from_id: str | None = None

    @property
    def sku(self) -> str:
        return self.id

    def is_listed(self, marketplace: Marketplace) -> bool:
        return bool(self.platform_ids.get(marketplace))


# ─── Remote Orders ────────────────────────────────────────────


class RemoteLineItem(BaseModel):
    """One line item of a marketplace order."""

    line_item_id: str
    sku: str | None = None
    remote_item_id: str | None = None
    quantity: int = 1
    total: float = 0.0

    @property
    def unit_price(self) -> float:
        if self.quantity <= 0:
            return self.total
        return round(self.total / self.quantity, 2)


class RemoteOrder(BaseModel):
    """A marketplace order with its line items."""

    order_id: str
    creation_date: datetime
    line_items: list[RemoteLineItem] = Field(default_factory=list)
    fulfillment_hrefs: list[str] = Field(default_factory=list)


# ─── Listing Policies ─────────────────────────────────────────


class FulfillmentPolicy(BaseModel):
    policy_id: str
    name: str = ""
    free_shipping: bool = False


class PaymentPolicy(BaseModel):
    policy_id: str
    name: str = ""
    immediate_pay: bool = False


class ReturnPolicy(BaseModel):
    policy_id: str
    name: str = ""


class PolicyOptions(BaseModel):
    """Every listing policy and location a tenant has configured on the marketplace."""

    fulfillment: list[FulfillmentPolicy] = Field(default_factory=list)
    payment: list[PaymentPolicy] = Field(default_factory=list)
    returns: list[ReturnPolicy] = Field(default_factory=list)
    location_keys: list[str] = Field(default_factory=list)


class TenantSettings(BaseModel):
    """Tenant-level listing preferences."""

    listing_footer: str = ""
    fulfillment_policy_id: str | None = None
    payment_policy_id: str | None = None
    return_policy_id: str | None = None
    merchant_location_key: str | None = None
    auto_withdraw_sold: bool = True


class ListingContext(BaseModel):
    """Everything the listing builder needs beyond the product itself."""

    marketplace_id: str = "EBAY_US"
    currency: str = "USD"
    policies: PolicyOptions
    settings: TenantSettings = Field(default_factory=TenantSettings)
    image_limit: int = 24


class ListingPayload(BaseModel):
    """Built inventory item and offer bodies for one SKU."""

    sku: str
    listing_format: ListingFormat
    inventory_item: dict[str, Any]
    offer: dict[str, Any]


# ─── Audit & Alerts ───────────────────────────────────────────


class LogEntry(BaseModel):
    tenant_id: str
    level: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    correlation_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class Alert(BaseModel):
    tenant_id: str
    level: AlertLevel
    title: str
    message: str
    product_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


# ─── Batch Results ────────────────────────────────────────────


@dataclass
class BatchResult:
    """Accumulated outcome of a batch operation."""

    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def record_success(self) -> None:
        self.success += 1

    def record_failure(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)

    def to_dict(self) -> dict:
        return {"success": self.success, "failed": self.failed, "errors": list(self.errors)}


@dataclass
class PollSummary:
    """Outcome of one order poll cycle for a tenant."""

    orders_seen: int = 0
    line_items_seen: int = 0
    applied: int = 0
    duplicates: int = 0
    unresolved: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "orders_seen": self.orders_seen,
            "line_items_seen": self.line_items_seen,
            "applied": self.applied,
            "duplicates": self.duplicates,
            "unresolved": self.unresolved,
            "errors": list(self.errors),
        }
