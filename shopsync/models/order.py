"""Order models synced from Etsy receipts."""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import BigInteger, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopsync.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from shopsync.models.product import ProductVariant


class OrderStatus(str, enum.Enum):
    """Order status enumeration."""

    OPEN = "open"
    PAID = "paid"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    CANCELED = "canceled"
    REFUNDED = "refunded"


class Order(Base, TimestampMixin):
    """Local projection of an Etsy receipt."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Etsy identifiers
    etsy_receipt_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)

    # Buyer info
    buyer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    buyer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Amounts (major units)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    sales_tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(10), default="USD", nullable=False)

    # Status
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, values_callable=lambda x: [e.value for e in x]),
        default=OrderStatus.OPEN,
        nullable=False,
    )

    # Shipping
    tracking_number: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    carrier_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shipping_address: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    shipping_country: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Dates
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    etsy_created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base, TimestampMixin):
    """Order line, keyed by the Etsy transaction id."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_variant_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True
    )

    # Null for manually created rows
    etsy_transaction_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, unique=True, nullable=True
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")
    product_variant: Mapped[Optional["ProductVariant"]] = relationship("ProductVariant")
