"""Initial database schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # Create shops table
    op.create_table(
        "shops",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("etsy_shop_id", sa.BigInteger(), nullable=False),
        sa.Column("etsy_user_id", sa.BigInteger(), nullable=False),
        sa.Column("shop_name", sa.String(length=255), nullable=False),
        sa.Column("shop_url", sa.String(length=500), nullable=True),
        sa.Column("icon_url", sa.String(length=500), nullable=True),
        sa.Column(
            "status",
            sa.Enum("active", "inactive", "token_expired", "error", name="shopstatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("telegram_enabled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("telegram_chat_id", sa.String(length=100), nullable=True),
        sa.Column("email_enabled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("notification_email", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("etsy_shop_id"),
    )
    op.create_index("idx_shops_status", "shops", ["status"])

    # Create etsy_tokens table
    op.create_table(
        "etsy_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("access_token_encrypted", sa.Text(), nullable=False),
        sa.Column("refresh_token_encrypted", sa.Text(), nullable=False),
        sa.Column(
            "token_type", sa.String(length=50), nullable=False, server_default="Bearer"
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scope", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("shop_id"),
    )
    op.create_index("idx_etsy_tokens_expires", "etsy_tokens", ["expires_at"])

    # Create products table
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("etsy_listing_id", sa.BigInteger(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sku", sa.String(length=255), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "active",
                "inactive",
                "draft",
                "expired",
                "sold_out",
                "removed",
                name="productstatus",
            ),
            nullable=False,
            server_default="active",
        ),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("price", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"),
        sa.Column("currency_code", sa.String(length=10), nullable=False, server_default="USD"),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("primary_image_url", sa.String(length=1000), nullable=True),
        sa.Column("image_urls", sa.JSON(), nullable=True),
        sa.Column("url", sa.String(length=1000), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("shop_id", "etsy_listing_id", name="uq_products_shop_listing"),
    )
    op.create_index("ix_products_shop_id", "products", ["shop_id"])
    op.create_index("ix_products_sku", "products", ["sku"])

    # Create product_variants table
    op.create_table(
        "product_variants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("etsy_product_id", sa.BigInteger(), nullable=False),
        sa.Column("etsy_offering_id", sa.BigInteger(), nullable=True),
        sa.Column("sku", sa.String(length=255), nullable=True),
        sa.Column("price", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("property_values", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "product_id", "etsy_product_id", name="uq_product_variants_product_inventory"
        ),
    )
    op.create_index("ix_product_variants_product_id", "product_variants", ["product_id"])
    op.create_index("ix_product_variants_sku", "product_variants", ["sku"])

    # Create orders table
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("etsy_receipt_id", sa.BigInteger(), nullable=False),
        sa.Column("buyer_name", sa.String(length=255), nullable=True),
        sa.Column("buyer_email", sa.String(length=255), nullable=True),
        sa.Column(
            "total_price", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"
        ),
        sa.Column(
            "subtotal", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"
        ),
        sa.Column(
            "shipping_cost", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"
        ),
        sa.Column(
            "sales_tax", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"
        ),
        sa.Column("currency_code", sa.String(length=10), nullable=False, server_default="USD"),
        sa.Column(
            "status",
            sa.Enum(
                "open",
                "paid",
                "shipped",
                "completed",
                "canceled",
                "refunded",
                name="orderstatus",
            ),
            nullable=False,
            server_default="open",
        ),
        sa.Column("tracking_number", sa.String(length=255), nullable=True),
        sa.Column("carrier_name", sa.String(length=255), nullable=True),
        sa.Column("shipping_address", sa.String(length=1000), nullable=True),
        sa.Column("shipping_country", sa.String(length=10), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("etsy_created_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("etsy_receipt_id"),
    )
    op.create_index("ix_orders_shop_id", "orders", ["shop_id"])
    op.create_index("idx_orders_status", "orders", ["status"])
    op.create_index("idx_orders_etsy_created", "orders", ["etsy_created_at"])

    # Create order_items table
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_variant_id", sa.Integer(), nullable=True),
        sa.Column("etsy_transaction_id", sa.BigInteger(), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("sku", sa.String(length=255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("price", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"),
        sa.Column(
            "shipping_cost", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["product_variant_id"], ["product_variants.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("etsy_transaction_id"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])


def downgrade() -> None:
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("product_variants")
    op.drop_table("products")
    op.drop_table("etsy_tokens")
    op.drop_table("shops")

    # Drop enums
    op.execute("DROP TYPE IF EXISTS orderstatus")
    op.execute("DROP TYPE IF EXISTS productstatus")
    op.execute("DROP TYPE IF EXISTS shopstatus")
