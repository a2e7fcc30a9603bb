"""Product models synced from Etsy listings."""

import enum
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopsync.models.base import Base, TimestampMixin


class ProductStatus(str, enum.Enum):
    """Listing state enumeration."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"
    EXPIRED = "expired"
    SOLD_OUT = "sold_out"
    REMOVED = "removed"


class Product(Base, TimestampMixin):
    """Local projection of an Etsy listing."""

    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("shop_id", "etsy_listing_id", name="uq_products_shop_listing"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True
    )
    etsy_listing_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    status: Mapped[ProductStatus] = mapped_column(
        Enum(ProductStatus, values_callable=lambda x: [e.value for e in x]),
        default=ProductStatus.ACTIVE,
        nullable=False,
    )
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(10), default="USD", nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    primary_image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    image_urls: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    variants: Mapped[list["ProductVariant"]] = relationship(
        "ProductVariant", back_populates="product", cascade="all, delete-orphan"
    )


class ProductVariant(Base, TimestampMixin):
    """Inventory product of a listing, optionally priced by an offering."""

    __tablename__ = "product_variants"
    __table_args__ = (
        UniqueConstraint(
            "product_id", "etsy_product_id", name="uq_product_variants_product_inventory"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    etsy_product_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    etsy_offering_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    sku: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    property_values: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    product: Mapped["Product"] = relationship("Product", back_populates="variants")
