"""Initial schema: tenants, marketplace_credentials, products, audit_logs, alerts

Tables:
    tenants                : Multi-tenant root entity with listing settings
    marketplace_credentials: Encrypted OAuth tokens per tenant and marketplace
    products               : Catalog records, listing state and sale state
    audit_logs             : Append-only sync decisions and failures
    alerts                 : User-facing notifications

Revision ID: 4c1e9a7d2b30
Revises:
Create Date: 2026-09-14
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "4c1e9a7d2b30"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _tenant_fk() -> sa.Column:
    return sa.Column(
        "tenant_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")
    )


def _json(name: str, empty: str = "{}") -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSON(astext_type=sa.Text()),
        nullable=False,
        server_default=sa.text(f"'{empty}'::json"),
    )


def upgrade() -> None:
    # ─── tenants ─────────────────────────────────────────────
    op.create_table(
        "tenants",
        _uuid_pk(),
        sa.Column("name", sa.Unicode(200), nullable=False, server_default=""),
        _json("settings"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    # ─── marketplace_credentials ─────────────────────────────
    op.create_table(
        "marketplace_credentials",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("marketplace", sa.String(20), nullable=False, server_default="ebay"),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("access_token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refresh_token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sandbox_mode", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("tenant_id", "marketplace", name="uq_credentials_tenant_marketplace"),
    )

    # ─── products ────────────────────────────────────────────
    op.create_table(
        "products",
        sa.Column("id", sa.String(64), primary_key=True),
        _tenant_fk(),
        sa.Column("title", sa.Unicode(500), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        _json("platform_descriptions"),
        sa.Column("brand", sa.Unicode(200), nullable=False, server_default=""),
        sa.Column("model", sa.Unicode(200), nullable=False, server_default=""),
        sa.Column("reference_number", sa.Unicode(100), nullable=False, server_default=""),
        sa.Column("serial_number", sa.Unicode(100), nullable=False, server_default=""),
        sa.Column("year", sa.String(20), nullable=False, server_default=""),
        sa.Column("gender", sa.String(20), nullable=False, server_default=""),
        sa.Column("category_code", sa.String(50), nullable=False, server_default=""),
        sa.Column("condition", sa.String(50), nullable=False, server_default=""),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("listing_format", sa.String(20), nullable=False, server_default="FIXED_PRICE"),
        sa.Column("auction_start_price", sa.Float(), nullable=True),
        sa.Column("auction_reserve_price", sa.Float(), nullable=True),
        sa.Column("buy_it_now_price", sa.Float(), nullable=True),
        sa.Column("free_shipping", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _json("attributes"),
        _json("photos", "[]"),
        _json("platform_ids"),
        _json("exported_to"),
        _json("withdrawn_at"),
        sa.Column("sold", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sold_date", sa.Date(), nullable=True),
        sa.Column("sold_price", sa.Float(), nullable=True),
        sa.Column("sold_platform", sa.String(20), nullable=True),
        sa.Column("sale_order_id", sa.String(100), nullable=True),
        sa.Column("sale_line_item_id", sa.String(100), nullable=True),
        sa.Column("split_from_id", sa.String(64), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_products_tenant_id", "products", ["tenant_id"])
    op.create_index(
        "ix_products_tenant_sale_marker",
        "products",
        ["tenant_id", "sale_order_id", "sale_line_item_id"],
    )

    # ─── audit_logs ──────────────────────────────────────────
    op.create_table(
        "audit_logs",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("level", sa.String(16), nullable=False, server_default="info"),
        sa.Column("message", sa.Text(), nullable=False),
        _json("details"),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_audit_logs_tenant_time", "audit_logs", ["tenant_id", "created_at"])

    # ─── alerts ──────────────────────────────────────────────
    op.create_table(
        "alerts",
        _uuid_pk(),
        _tenant_fk(),
        sa.Column("level", sa.String(16), nullable=False, server_default="info"),
        sa.Column("title", sa.Unicode(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("product_id", sa.String(64), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _timestamp("created_at"),
    )
    op.create_index("ix_alerts_tenant_unread", "alerts", ["tenant_id", "is_read"])


def downgrade() -> None:
    op.drop_index("ix_alerts_tenant_unread", table_name="alerts")
    op.drop_table("alerts")
    op.drop_index("ix_audit_logs_tenant_time", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_products_tenant_sale_marker", table_name="products")
    op.drop_index("ix_products_tenant_id", table_name="products")
    op.drop_table("products")
    op.drop_table("marketplace_credentials")
    op.drop_table("tenants")
