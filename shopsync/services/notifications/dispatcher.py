"""Decide which channels receive an order event and deliver best-effort."""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Protocol

from shopsync.models import Shop
from shopsync.services.notifications.email import EmailNotifier, format_new_order_email
from shopsync.services.notifications.telegram import (
    TelegramNotifier,
    format_new_order_message,
    format_order_canceled_message,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderItemSummary:
    title: str
    quantity: int
    price: Decimal


class NotificationService(Protocol):
    """Operator notification collaborator consumed by the sync engine."""

    async def notify_new_order(
        self,
        shop: Shop,
        receipt_id: int,
        buyer: str,
        total: Decimal,
        currency: str,
        items: list[OrderItemSummary],
    ) -> None:
        ...

    async def notify_order_canceled(self, shop: Shop, receipt_id: int, buyer: str) -> None:
        ...


class NotificationDispatcher:
    """Fan out to the channels a shop enabled.

    Fire-and-forget: transport failures are logged, never raised.
    """

    def __init__(self, telegram: TelegramNotifier, email: EmailNotifier) -> None:
        self._telegram = telegram
        self._email = email

    async def notify_new_order(
        self,
        shop: Shop,
        receipt_id: int,
        buyer: str,
        total: Decimal,
        currency: str,
        items: list[OrderItemSummary],
    ) -> None:
        deliveries: list[Awaitable] = []

        if shop.telegram_enabled and shop.telegram_chat_id:
            message = format_new_order_message(
                shop.shop_name, receipt_id, buyer, total, currency, items
            )
            deliveries.append(self._telegram.send_message(shop.telegram_chat_id, message))

        if shop.email_enabled and shop.notification_email:
            subject, html_content, plain = format_new_order_email(
                shop.shop_name, receipt_id, buyer, total, currency, items
            )
            deliveries.append(
                self._email.send_email(shop.notification_email, subject, html_content, plain)
            )

        await self._settle(deliveries, f"new order {receipt_id}")

    async def notify_order_canceled(self, shop: Shop, receipt_id: int, buyer: str) -> None:
        deliveries: list[Awaitable] = []
        if shop.telegram_enabled and shop.telegram_chat_id:
            message = format_order_canceled_message(shop.shop_name, receipt_id, buyer)
            deliveries.append(self._telegram.send_message(shop.telegram_chat_id, message))

        await self._settle(deliveries, f"canceled order {receipt_id}")

    async def _settle(self, deliveries: list[Awaitable], label: str) -> None:
        if not deliveries:
            return
        results = await asyncio.gather(*deliveries, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Notification for {label} failed: {result}")
            elif getattr(result, "success", result) is False:
                logger.warning(
                    f"Notification for {label} not delivered: {getattr(result, 'error', '')}"
                )
