"""Telegram bot transport for operator notifications."""

import html
import logging
from decimal import Decimal
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from shopsync.services.notifications.dispatcher import OrderItemSummary

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramNotifier:
    def __init__(self, http: httpx.AsyncClient, bot_token: str) -> None:
        self._http = http
        self._bot_token = bot_token

    @property
    def configured(self) -> bool:
        return bool(self._bot_token)

    async def send_message(self, chat_id: str, text: str) -> bool:
        """Send an HTML-formatted message. Returns False when delivery failed."""
        if not self.configured:
            logger.warning("Telegram bot token not configured")
            return False

        try:
            response = await self._http.post(
                f"{TELEGRAM_API_BASE}/bot{self._bot_token}/sendMessage",
                json={
                    "chat_id": chat_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                },
            )
        except httpx.RequestError as e:
            logger.error(f"Telegram send error: {e}")
            return False

        if not response.is_success:
            logger.error(f"Telegram send error: {response.status_code} - {response.text}")
            return False
        return True


def format_new_order_message(
    shop_name: str,
    receipt_id: int,
    buyer_name: str,
    total: Decimal,
    currency_code: str,
    items: list["OrderItemSummary"],
) -> str:
    item_lines = [f"  • {html.escape(item.title)} x{item.quantity}" for item in items]
    return "\n".join(
        [
            "<b>New Order!</b>",
            "",
            f"<b>Shop:</b> {html.escape(shop_name)}",
            f"<b>Order:</b> #{receipt_id}",
            f"<b>Buyer:</b> {html.escape(buyer_name)}",
            f"<b>Total:</b> {total} {html.escape(currency_code)}",
            "",
            "<b>Items:</b>",
            *item_lines,
        ]
    )


def format_order_canceled_message(shop_name: str, receipt_id: int, buyer_name: str) -> str:
    return "\n".join(
        [
            "<b>Order Canceled</b>",
            "",
            f"<b>Shop:</b> {html.escape(shop_name)}",
            f"<b>Order:</b> #{receipt_id}",
            f"<b>Buyer:</b> {html.escape(buyer_name)}",
        ]
    )
