"""Database models package."""

from shopsync.models.base import Base
from shopsync.models.shop import Shop, ShopStatus
from shopsync.models.etsy_token import EtsyToken
from shopsync.models.order import Order, OrderItem, OrderStatus
from shopsync.models.product import Product, ProductStatus, ProductVariant

__all__ = [
    "Base",
    "Shop",
    "ShopStatus",
    "EtsyToken",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Product",
    "ProductStatus",
    "ProductVariant",
]
