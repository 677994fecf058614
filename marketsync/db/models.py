"""
SQLAlchemy 2.0 ORM models for MarketSync.

All models use the modern Mapped/mapped_column syntax.
Multi-tenant isolation is enforced by scoping all queries through
tenant_id at the repository layer.
"""

import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Unicode,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def new_uuid() -> uuid.UUID:
    """Generate a new UUID4."""
    return uuid.uuid4()


def new_product_id() -> str:
    return str(uuid.uuid4())


# ─── Tenant & Credentials ─────────────────────────────────────


class Tenant(Base):
    """A seller account: the multi-tenant root entity."""

    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=new_uuid
    )
    name: Mapped[str] = mapped_column(Unicode(200), default="", nullable=False)
    # listing_footer, policy ids, merchant_location_key, auto_withdraw_sold
    settings: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    # Relationships
    credentials: Mapped[list["MarketplaceCredential"]] = relationship(
        back_populates="tenant", cascade="all, delete-orphan"
    )
    products: Mapped[list["Product"]] = relationship(
        back_populates="tenant", cascade="all, delete-orphan"
    )


class MarketplaceCredential(Base):
    """Encrypted OAuth credential for a tenant's marketplace connection."""

    __tablename__ = "marketplace_credentials"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=new_uuid
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    marketplace: Mapped[str] = mapped_column(String(20), default="ebay", nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)  # Encrypted
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)  # Encrypted
    access_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    refresh_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sandbox_mode: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship(back_populates="credentials")

    __table_args__ = (
        UniqueConstraint("tenant_id", "marketplace", name="uq_credentials_tenant_marketplace"),
    )


# ─── Catalog ──────────────────────────────────────────────────


class Product(Base):
    """A catalog record. The primary key doubles as the marketplace SKU."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_product_id)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Unicode(500), default="", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    platform_descriptions: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    brand: Mapped[str] = mapped_column(Unicode(200), default="", nullable=False)
    model: Mapped[str] = mapped_column(Unicode(200), default="", nullable=False)
    reference_number: Mapped[str] = mapped_column(Unicode(100), default="", nullable=False)
    serial_number: Mapped[str] = mapped_column(Unicode(100), default="", nullable=False)
    year: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    gender: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    category_code: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    condition: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    listing_format: Mapped[str] = mapped_column(String(20), default="FIXED_PRICE", nullable=False)
    auction_start_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    auction_reserve_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    buy_it_now_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    free_shipping: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attributes: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    photos: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    # Marketplace listing state, keyed by marketplace name
    platform_ids: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    exported_to: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    withdrawn_at: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    # Sale state
    sold: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sold_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    sold_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    sold_platform: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sale_order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sale_line_item_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    split_from_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship(back_populates="products")

    __table_args__ = (
        Index("ix_products_tenant_id", "tenant_id"),
        Index("ix_products_tenant_sale_marker", "tenant_id", "sale_order_id", "sale_line_item_id"),
    )


# ─── Audit & Alerts ───────────────────────────────────────────


class AuditLog(Base):
    """Append-only, tenant-scoped record of sync decisions and failures."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=new_uuid
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    level: Mapped[str] = mapped_column(String(16), default="info", nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        Index("ix_audit_logs_tenant_time", "tenant_id", "created_at"),
    )


class AlertRecord(Base):
    """User-facing notification (sale, offer, reconnect prompt)."""

    __tablename__ = "alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=new_uuid
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    level: Mapped[str] = mapped_column(String(16), default="info", nullable=False)
    title: Mapped[str] = mapped_column(Unicode(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        Index("ix_alerts_tenant_unread", "tenant_id", "is_read"),
    )
