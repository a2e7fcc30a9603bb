"""Storage collaborator used by the sync engine.

Every repository operation opens its own short-lived session and commits a
single row. Sync passes never hold a transaction across rows, so progress
made before a failure stays persisted.

Upserts are explicit: ``find_by_remote_id`` returns ``Found(row)`` or
``NotFound()`` and the caller picks ``create`` or ``update``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopsync.models import (
    EtsyToken,
    Order,
    OrderItem,
    Product,
    ProductVariant,
    Shop,
    ShopStatus,
)

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    """Lookup hit carrying the local row."""

    row: T


@dataclass(frozen=True)
class NotFound:
    """Lookup miss: the caller should create the row."""


Lookup = Union[Found[T], NotFound]


class RemoteKeyedRepository(Generic[T]):
    """Repository for rows keyed by an immutable Etsy identifier."""

    model: type
    key_fields: tuple[str, ...] = ()

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    def _key_clause(self, keys: dict[str, Any]):
        if set(keys) != set(self.key_fields):
            raise ValueError(
                f"{self.model.__name__} lookup needs {self.key_fields}, got {tuple(keys)}"
            )
        return [getattr(self.model, name) == value for name, value in keys.items()]

    async def find_by_remote_id(self, **keys: Any) -> Lookup[T]:
        async with self._session_maker() as session:
            result = await session.execute(select(self.model).where(*self._key_clause(keys)))
            row = result.scalar_one_or_none()
        return Found(row) if row is not None else NotFound()

    async def create(self, values: dict[str, Any]) -> T:
        async with self._session_maker() as session:
            row = self.model(**values)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row

    async def update(self, row_id: int, values: dict[str, Any]) -> T:
        """Overwrite mutable fields in place; primary and remote keys never change."""
        async with self._session_maker() as session:
            row = await session.get(self.model, row_id)
            if row is None:
                raise LookupError(f"{self.model.__name__} {row_id} disappeared during sync")
            for key, value in values.items():
                if key == "id" or key in self.key_fields:
                    continue
                setattr(row, key, value)
            await session.commit()
            await session.refresh(row)
            return row

    async def count(self, **filters: Any) -> int:
        stmt = select(func.count()).select_from(self.model)
        for name, value in filters.items():
            stmt = stmt.where(getattr(self.model, name) == value)
        async with self._session_maker() as session:
            return (await session.execute(stmt)).scalar_one()


class OrderRepository(RemoteKeyedRepository[Order]):
    model = Order
    key_fields = ("etsy_receipt_id",)


class OrderItemRepository(RemoteKeyedRepository[OrderItem]):
    model = OrderItem
    key_fields = ("etsy_transaction_id",)

    async def list_for_order(self, order_id: int) -> list[OrderItem]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
            )
            return list(result.scalars().all())


class ProductRepository(RemoteKeyedRepository[Product]):
    model = Product
    key_fields = ("shop_id", "etsy_listing_id")


class ProductVariantRepository(RemoteKeyedRepository[ProductVariant]):
    model = ProductVariant
    key_fields = ("product_id", "etsy_product_id")

    async def find_by_sku(self, shop_id: int, sku: str) -> Optional[ProductVariant]:
        """First variant with ``sku`` among the shop's products."""
        async with self._session_maker() as session:
            result = await session.execute(
                select(ProductVariant)
                .join(Product, ProductVariant.product_id == Product.id)
                .where(Product.shop_id == shop_id, ProductVariant.sku == sku)
                .order_by(ProductVariant.id)
                .limit(1)
            )
            return result.scalar_one_or_none()


class ShopRepository:
    """Shop rows, looked up by local id or Etsy shop id."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get(self, shop_id: int) -> Optional[Shop]:
        async with self._session_maker() as session:
            return await session.get(Shop, shop_id)

    async def find_by_remote_id(self, etsy_shop_id: int) -> Lookup[Shop]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Shop).where(Shop.etsy_shop_id == etsy_shop_id)
            )
            shop = result.scalar_one_or_none()
        return Found(shop) if shop is not None else NotFound()

    async def list_active(self) -> list[Shop]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Shop).where(Shop.status == ShopStatus.ACTIVE).order_by(Shop.id)
            )
            return list(result.scalars().all())

    async def _update(self, shop: Shop, **values: Any) -> None:
        async with self._session_maker() as session:
            row = await session.get(Shop, shop.id)
            if row is None:
                raise LookupError(f"Shop {shop.id} not found")
            for key, value in values.items():
                setattr(row, key, value)
            await session.commit()
        # Keep the caller's detached copy in step with the stored row
        for key, value in values.items():
            setattr(shop, key, value)

    async def set_status(self, shop: Shop, status: ShopStatus) -> None:
        await self._update(shop, status=status)

    async def mark_synced(self, shop: Shop, when: datetime) -> None:
        await self._update(shop, last_sync_at=when)

    async def upsert_connected(
        self,
        etsy_shop_id: int,
        etsy_user_id: int,
        shop_name: str,
        shop_url: Optional[str] = None,
        icon_url: Optional[str] = None,
    ) -> Shop:
        """Create or reactivate a shop after a successful OAuth connect."""
        async with self._session_maker() as session:
            result = await session.execute(
                select(Shop).where(Shop.etsy_shop_id == etsy_shop_id)
            )
            shop = result.scalar_one_or_none()
            if shop is None:
                shop = Shop(etsy_shop_id=etsy_shop_id, etsy_user_id=etsy_user_id)
                session.add(shop)
            shop.etsy_user_id = etsy_user_id
            shop.shop_name = shop_name
            shop.shop_url = shop_url
            shop.icon_url = icon_url
            shop.status = ShopStatus.ACTIVE
            await session.commit()
            await session.refresh(shop)
            return shop


class CredentialRepository:
    """One encrypted credential row per shop."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get_for_shop(self, shop_id: int) -> Optional[EtsyToken]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(EtsyToken).where(EtsyToken.shop_id == shop_id)
            )
            return result.scalar_one_or_none()

    async def save_for_shop(
        self,
        shop_id: int,
        access_token_encrypted: str,
        refresh_token_encrypted: str,
        expires_at: datetime,
        token_type: str = "Bearer",
        scope: Optional[str] = None,
    ) -> EtsyToken:
        """Single-row upsert; previous token values are overwritten."""
        async with self._session_maker() as session:
            result = await session.execute(
                select(EtsyToken).where(EtsyToken.shop_id == shop_id)
            )
            token = result.scalar_one_or_none()
            if token is None:
                token = EtsyToken(shop_id=shop_id)
                session.add(token)
            token.access_token_encrypted = access_token_encrypted
            token.refresh_token_encrypted = refresh_token_encrypted
            token.expires_at = expires_at
            token.token_type = token_type
            if scope is not None:
                token.scope = scope
            await session.commit()
            await session.refresh(token)
            return token


@dataclass
class Repositories:
    """All repositories sharing one session factory."""

    shops: ShopRepository
    credentials: CredentialRepository
    orders: OrderRepository
    order_items: OrderItemRepository
    products: ProductRepository
    variants: ProductVariantRepository

    @classmethod
    def from_session_maker(
        cls, session_maker: async_sessionmaker[AsyncSession]
    ) -> "Repositories":
        return cls(
            shops=ShopRepository(session_maker),
            credentials=CredentialRepository(session_maker),
            orders=OrderRepository(session_maker),
            order_items=OrderItemRepository(session_maker),
            products=ProductRepository(session_maker),
            variants=ProductVariantRepository(session_maker),
        )
