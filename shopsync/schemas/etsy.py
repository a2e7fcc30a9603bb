"""Etsy API v3 payload schemas.

Transient DTOs: they are parsed from API responses and projected into local
rows, never stored as-is. Unknown fields are ignored.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

CENTS = Decimal("0.01")


class EtsyModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Money(EtsyModel):
    """Etsy money object; ``amount`` is an integer in minor units."""

    amount: int = 0
    currency_code: str = "USD"

    def to_decimal(self) -> Decimal:
        """Major units, e.g. 1999 -> Decimal('19.99')."""
        return (Decimal(self.amount) / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)


def money_to_decimal(money: Optional[Money]) -> Decimal:
    return money.to_decimal() if money is not None else Decimal("0.00")


class RemoteTransaction(EtsyModel):
    """Receipt line item."""

    transaction_id: int
    title: str = ""
    sku: Optional[str] = None
    quantity: int = 1
    price: Optional[Money] = None
    shipping_cost: Optional[Money] = None
    listing_id: Optional[int] = None
    product_id: Optional[int] = None


class RemoteShipment(EtsyModel):
    tracking_code: Optional[str] = None
    carrier_name: Optional[str] = None
    shipment_notification_timestamp: Optional[int] = None


class RemoteReceipt(EtsyModel):
    """Etsy receipt (customer order)."""

    receipt_id: int
    name: Optional[str] = None
    buyer_email: Optional[str] = None
    status: Optional[str] = None
    was_paid: bool = False
    was_shipped: bool = False

    grandtotal: Optional[Money] = None
    subtotal: Optional[Money] = None
    total_shipping_cost: Optional[Money] = None
    total_tax_cost: Optional[Money] = None

    first_line: Optional[str] = None
    second_line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country_iso: Optional[str] = None

    create_timestamp: Optional[int] = None
    shipments: list[RemoteShipment] = Field(default_factory=list)
    transactions: list[RemoteTransaction] = Field(default_factory=list)


class RemoteImage(EtsyModel):
    url_fullxfull: Optional[str] = None


class RemoteListing(EtsyModel):
    """Etsy listing (product)."""

    listing_id: int
    title: str = ""
    description: Optional[str] = None
    state: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    price: Optional[Money] = None
    quantity: int = 0
    url: Optional[str] = None
    images: list[RemoteImage] = Field(default_factory=list)
    skus: list[str] = Field(default_factory=list)


class RemotePropertyValue(EtsyModel):
    property_name: str = ""
    values: list[str] = Field(default_factory=list)


class RemoteOffering(EtsyModel):
    """Priced, stocked offering of an inventory product."""

    offering_id: Optional[int] = None
    price: Optional[Money] = None
    quantity: int = 0


class RemoteInventoryProduct(EtsyModel):
    product_id: int
    sku: Optional[str] = None
    property_values: list[RemotePropertyValue] = Field(default_factory=list)
    offerings: list[RemoteOffering] = Field(default_factory=list)


class RemoteInventory(EtsyModel):
    products: list[RemoteInventoryProduct] = Field(default_factory=list)


class WebhookData(EtsyModel):
    shop_id: Optional[int] = None
    resource_url: Optional[str] = None


class WebhookEvent(EtsyModel):
    """Inbound webhook body ``{event_type, data: {shop_id, resource_url, ...}}``."""

    event_type: Optional[str] = None
    data: WebhookData = Field(default_factory=WebhookData)
