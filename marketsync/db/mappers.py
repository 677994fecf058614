"""
Pydantic ↔ ORM mapping helpers for MarketSync.

Converts between the domain models the sync engine works with
(Product, Credential, LogEntry, Alert, TenantSettings) and the
SQLAlchemy ORM rows in ``marketsync.db.models``.

Domain ids are strings; tenant ids are stored as UUIDs. Token
encryption is the credential repository's job, not the mapper's.
"""

import uuid
from datetime import UTC, datetime

from marketsync.core.models import (
    Alert,
    Credential,
    LogEntry,
    Marketplace,
    Product,
    SaleMarker,
    TenantSettings,
)
from marketsync.db import models as orm


def tenant_uuid(tenant_id: str) -> uuid.UUID:
    """Parse a domain tenant id. Raises ValueError when it is not a UUID."""
    return uuid.UUID(str(tenant_id))


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _timestamps_to_json(values: dict[str, datetime]) -> dict[str, str]:
    return {key: as_utc(value).isoformat() for key, value in values.items()}


# ─── Product ──────────────────────────────────────────────────


def _product_columns(product: Product) -> dict:
    marker = product.sale_marker
    return {
        "title": product.title,
        "description": product.description,
        "platform_descriptions": dict(product.platform_descriptions),
        "brand": product.brand,
        "model": product.model,
        "reference_number": product.reference_number,
        "serial_number": product.serial_number,
        "year": product.year,
        "gender": product.gender,
        "category_code": product.category_code,
        "condition": product.condition,
        "quantity": product.quantity,
        "price": product.price,
        "currency": product.currency,
        "listing_format": product.listing_format.value,
        "auction_start_price": product.auction_start_price,
        "auction_reserve_price": product.auction_reserve_price,
        "buy_it_now_price": product.buy_it_now_price,
        "free_shipping": product.free_shipping,
        "attributes": dict(product.attributes),
        "photos": list(product.photos),
        "platform_ids": dict(product.platform_ids),
        "exported_to": _timestamps_to_json(product.exported_to),
        "withdrawn_at": _timestamps_to_json(product.withdrawn_at),
        "sold": product.sold,
        "sold_date": product.sold_date,
        "sold_price": product.sold_price,
        "sold_platform": product.sold_platform,
        "sale_order_id": marker.order_id if marker else None,
        "sale_line_item_id": marker.line_item_id if marker else None,
        "split_from_id": product.split_from_id,
    }


def product_row_from_domain(product: Product) -> orm.Product:
    """
    Map a domain Product to a new (unsaved) ORM row.

    Args:
        product: Domain product. Its id becomes the primary key.

    Returns:
        A Product ORM instance ready for session.add().
    """
    return orm.Product(
        id=product.id,
        tenant_id=tenant_uuid(product.tenant_id),
        **_product_columns(product),
    )


def apply_product_to_row(product: Product, row: orm.Product) -> orm.Product:
    """Copy every mutable field of ``product`` onto an existing row."""
    for key, value in _product_columns(product).items():
        setattr(row, key, value)
    return row


def product_from_row(row: orm.Product) -> Product:
    """
    Map a Product ORM row back to the domain model.

    Handles None values and non-dict JSON from the database by
    substituting safe defaults.
    """
    marker = None
    if row.sale_order_id and row.sale_line_item_id:
        marker = SaleMarker(order_id=row.sale_order_id, line_item_id=row.sale_line_item_id)

    def _dict(value) -> dict:
        return value if isinstance(value, dict) else {}

    return Product(
        id=row.id,
        tenant_id=str(row.tenant_id),
        title=row.title or "",
        description=row.description or "",
        platform_descriptions=_dict(row.platform_descriptions),
        brand=row.brand or "",
        model=row.model or "",
        reference_number=row.reference_number or "",
        serial_number=row.serial_number or "",
        year=row.year or "",
        gender=row.gender or "",
        category_code=row.category_code or "",
        condition=row.condition or "",
        quantity=row.quantity or 0,
        price=row.price,
        currency=row.currency or "USD",
        listing_format=row.listing_format or "FIXED_PRICE",
        auction_start_price=row.auction_start_price,
        auction_reserve_price=row.auction_reserve_price,
        buy_it_now_price=row.buy_it_now_price,
        free_shipping=bool(row.free_shipping),
        attributes=_dict(row.attributes),
        photos=row.photos if isinstance(row.photos, list) else [],
        platform_ids=_dict(row.platform_ids),
        exported_to=_dict(row.exported_to),
        withdrawn_at=_dict(row.withdrawn_at),
        sold=bool(row.sold),
        sold_date=row.sold_date,
        sold_price=row.sold_price,
        sold_platform=row.sold_platform,
        sale_marker=marker,
        split_from_id=row.split_from_id,
    )


# ─── Credential ───────────────────────────────────────────────


def credential_from_row(
    row: orm.MarketplaceCredential, access_token: str, refresh_token: str | None
) -> Credential:
    """Build a domain Credential from a row and its decrypted tokens."""
    return Credential(
        tenant_id=str(row.tenant_id),
        marketplace=Marketplace(row.marketplace),
        access_token=access_token,
        refresh_token=refresh_token or None,
        access_token_expires_at=as_utc(row.access_token_expires_at),
        refresh_token_expires_at=as_utc(row.refresh_token_expires_at),
        sandbox_mode=row.sandbox_mode,
    )


# ─── Tenant Settings ──────────────────────────────────────────


def tenant_settings_from_row(row: orm.Tenant | None) -> TenantSettings:
    if row is None or not isinstance(row.settings, dict):
        return TenantSettings()
    known = {k: v for k, v in row.settings.items() if k in TenantSettings.model_fields}
    return TenantSettings(**known)


# ─── Audit & Alerts ───────────────────────────────────────────


def audit_row_from_entry(entry: LogEntry) -> orm.AuditLog:
    data = entry.model_dump(mode="json")
    return orm.AuditLog(
        tenant_id=tenant_uuid(entry.tenant_id),
        level=entry.level,
        message=entry.message,
        details=data["details"],
        correlation_id=entry.correlation_id,
        created_at=entry.created_at,
    )


def alert_row_from_alert(alert: Alert) -> orm.AlertRecord:
    return orm.AlertRecord(
        tenant_id=tenant_uuid(alert.tenant_id),
        level=alert.level.value,
        title=alert.title,
        message=alert.message,
        product_id=alert.product_id,
        created_at=alert.created_at,
    )
