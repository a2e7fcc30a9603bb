"""Order sync service for Etsy receipts."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from shopsync.db.repositories import Found, Repositories
from shopsync.models import Order, OrderStatus, Shop
from shopsync.schemas.etsy import RemoteReceipt, RemoteTransaction, money_to_decimal
from shopsync.services.etsy.client import MAX_PAGE_SIZE, ResilientClient
from shopsync.services.etsy.sync import ReconciliationSync, upsert
from shopsync.services.notifications import NotificationService, OrderItemSummary

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def derive_order_status(receipt: RemoteReceipt) -> OrderStatus:
    """Local status by precedence: canceled > shipped > paid > open."""
    if (receipt.status or "").lower() == "canceled":
        return OrderStatus.CANCELED
    if receipt.was_shipped:
        return OrderStatus.SHIPPED
    if receipt.was_paid:
        return OrderStatus.PAID
    return OrderStatus.OPEN


def format_address(receipt: RemoteReceipt) -> str:
    parts = [
        receipt.first_line,
        receipt.second_line,
        receipt.city,
        receipt.state,
        receipt.zip,
        receipt.country_iso,
    ]
    return ", ".join(part for part in parts if part)


def project_receipt(receipt: RemoteReceipt) -> dict[str, Any]:
    """Parse Etsy receipt data to Order fields (everything but identity)."""
    created_at = _from_timestamp(receipt.create_timestamp)

    values: dict[str, Any] = {
        "buyer_name": receipt.name or receipt.buyer_email,
        "buyer_email": receipt.buyer_email,
        "total_price": money_to_decimal(receipt.grandtotal),
        "subtotal": money_to_decimal(receipt.subtotal),
        "shipping_cost": money_to_decimal(receipt.total_shipping_cost),
        "sales_tax": money_to_decimal(receipt.total_tax_cost),
        "currency_code": receipt.grandtotal.currency_code if receipt.grandtotal else "USD",
        "status": derive_order_status(receipt),
        "shipping_address": format_address(receipt),
        "shipping_country": receipt.country_iso,
        "etsy_created_at": created_at,
        "paid_at": created_at if receipt.was_paid else None,
    }

    if receipt.shipments:
        shipment = receipt.shipments[0]
        values["tracking_number"] = shipment.tracking_code
        values["carrier_name"] = shipment.carrier_name
        values["shipped_at"] = _from_timestamp(shipment.shipment_notification_timestamp)

    return values


def project_transaction(transaction: RemoteTransaction) -> dict[str, Any]:
    return {
        "title": transaction.title,
        "sku": transaction.sku or None,
        "quantity": transaction.quantity,
        "price": money_to_decimal(transaction.price),
        "shipping_cost": money_to_decimal(transaction.shipping_cost),
    }


class OrderSync(ReconciliationSync):
    """Sync Etsy receipts into local orders and order items.

    Operators hear about an order once: when it first appears already paid,
    and when a known order turns canceled.
    """

    resource_name = "order"

    def __init__(
        self,
        client: ResilientClient,
        repos: Repositories,
        notifier: NotificationService,
        page_size: int = MAX_PAGE_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(client, page_size)
        self.repos = repos
        self.notifier = notifier
        self._clock = clock

    async def fetch_page(
        self, shop: Shop, limit: int, offset: int, since_timestamp: Optional[int]
    ) -> dict:
        return await self.client.get_shop_receipts(
            shop, limit=limit, offset=offset, min_created=since_timestamp
        )

    async def reconcile(self, shop: Shop, record: dict) -> None:
        receipt = RemoteReceipt.model_validate(record)
        values = project_receipt(receipt)

        lookup = await self.repos.orders.find_by_remote_id(etsy_receipt_id=receipt.receipt_id)
        if isinstance(lookup, Found):
            previous_status: Optional[OrderStatus] = lookup.row.status
            order = await self.repos.orders.update(lookup.row.id, values)
            created = False
            logger.debug(f"Updated order for receipt {receipt.receipt_id}")
        else:
            previous_status = None
            order = await self.repos.orders.create(
                {"shop_id": shop.id, "etsy_receipt_id": receipt.receipt_id, **values}
            )
            created = True
            logger.info(f"Created new order for receipt {receipt.receipt_id}")

        # Order row is already committed; a later item failure must not skip this
        await self._notify(shop, order, receipt, created, previous_status)
        await self._sync_items(shop, order, receipt.transactions)

    async def _sync_items(
        self, shop: Shop, order: Order, transactions: list[RemoteTransaction]
    ) -> None:
        for transaction in transactions:
            values = project_transaction(transaction)

            # Link to product variant by SKU
            if transaction.sku:
                variant = await self.repos.variants.find_by_sku(shop.id, transaction.sku)
                if variant is not None:
                    values["product_variant_id"] = variant.id

            await upsert(
                self.repos.order_items,
                keys={"etsy_transaction_id": transaction.transaction_id},
                values=values,
                defaults={"order_id": order.id},
            )

    async def _notify(
        self,
        shop: Shop,
        order: Order,
        receipt: RemoteReceipt,
        created: bool,
        previous_status: Optional[OrderStatus],
    ) -> None:
        buyer = order.buyer_name or "Unknown"
        try:
            if created and order.status == OrderStatus.PAID:
                items = [
                    OrderItemSummary(
                        title=t.title,
                        quantity=t.quantity,
                        price=money_to_decimal(t.price),
                    )
                    for t in receipt.transactions
                ]
                await self.notifier.notify_new_order(
                    shop,
                    receipt.receipt_id,
                    buyer,
                    order.total_price,
                    order.currency_code,
                    items,
                )
            elif (
                not created
                and order.status == OrderStatus.CANCELED
                and previous_status != OrderStatus.CANCELED
            ):
                await self.notifier.notify_order_canceled(shop, receipt.receipt_id, buyer)
        except Exception as e:
            # Delivery is best-effort and never fails the sync
            logger.error(f"Notification for receipt {receipt.receipt_id} failed: {e}")

    async def after_pass(self, shop: Shop) -> None:
        await self.repos.shops.mark_synced(shop, self._clock())

    async def sync_receipt(self, shop: Shop, receipt: dict) -> None:
        """Reconcile one already-fetched receipt."""
        await self.reconcile(shop, receipt)
