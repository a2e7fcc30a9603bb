"""Tests for operator notification fan-out."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest

from shopsync.models import Shop, ShopStatus
from shopsync.services.notifications import (
    EmailDeliveryError,
    EmailNotifier,
    NotificationDispatcher,
    OrderItemSummary,
    TelegramNotifier,
)
from shopsync.services.notifications.telegram import format_new_order_message

ITEMS = [OrderItemSummary(title="Notebook <A5>", quantity=2, price=Decimal("9.50"))]


def make_shop(**overrides) -> Shop:
    values = dict(
        id=1,
        etsy_shop_id=555,
        etsy_user_id=777,
        shop_name="Paper & Co",
        status=ShopStatus.ACTIVE,
        telegram_enabled=True,
        telegram_chat_id="-100123",
        email_enabled=True,
        notification_email="owner@example.com",
    )
    values.update(overrides)
    return Shop(**values)


@pytest.fixture
def telegram() -> AsyncMock:
    return AsyncMock(spec=TelegramNotifier)


@pytest.fixture
def email() -> AsyncMock:
    return AsyncMock(spec=EmailNotifier)


class TestNotificationDispatcher:
    async def test_new_order_goes_to_enabled_channels(self, telegram, email):
        dispatcher = NotificationDispatcher(telegram, email)

        await dispatcher.notify_new_order(make_shop(), 1001, "Ada", Decimal("19.00"), "USD", ITEMS)

        telegram.send_message.assert_awaited_once()
        assert telegram.send_message.await_args.args[0] == "-100123"
        email.send_email.assert_awaited_once()
        assert email.send_email.await_args.args[0] == "owner@example.com"

    async def test_disabled_channels_skipped(self, telegram, email):
        dispatcher = NotificationDispatcher(telegram, email)
        shop = make_shop(telegram_enabled=False, email_enabled=True, notification_email=None)

        await dispatcher.notify_new_order(shop, 1001, "Ada", Decimal("19.00"), "USD", ITEMS)

        telegram.send_message.assert_not_awaited()
        email.send_email.assert_not_awaited()

    async def test_channel_failure_is_swallowed(self, telegram, email):
        email.send_email.side_effect = EmailDeliveryError("SendGrid API key not configured")
        dispatcher = NotificationDispatcher(telegram, email)

        await dispatcher.notify_new_order(make_shop(), 1001, "Ada", Decimal("19.00"), "USD", ITEMS)

        telegram.send_message.assert_awaited_once()

    async def test_cancellation_uses_telegram(self, telegram, email):
        dispatcher = NotificationDispatcher(telegram, email)

        await dispatcher.notify_order_canceled(make_shop(), 1001, "Ada")

        telegram.send_message.assert_awaited_once()
        assert "Order Canceled" in telegram.send_message.await_args.args[1]
        email.send_email.assert_not_awaited()


class TestTransports:
    def test_telegram_message_escapes_html(self):
        text = format_new_order_message("Paper & Co", 1001, "Ada <b>", Decimal("19.00"), "USD", ITEMS)

        assert "Paper &amp; Co" in text
        assert "Ada &lt;b&gt;" in text
        assert "Notebook &lt;A5&gt; x2" in text

    async def test_telegram_send_posts_html_message(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            sent = await TelegramNotifier(http, "bot-token").send_message("-100123", "<b>hi</b>")

        assert sent is True
        assert seen[0].url.path == "/botbot-token/sendMessage"
        assert json.loads(seen[0].content)["parse_mode"] == "HTML"

    async def test_telegram_without_token_does_not_send(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))) as http:
            assert await TelegramNotifier(http, "").send_message("1", "hi") is False

    async def test_email_requires_api_key(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(202))) as http:
            notifier = EmailNotifier(http, "", "orders@example.com", "Shop Sync")
            assert not notifier.configured
            with pytest.raises(EmailDeliveryError):
                await notifier.send_email("owner@example.com", "New order", "<p>hi</p>")
