"""Tests for Etsy webhook verification and dispatch."""

import base64
import hashlib
import hmac
import json
from unittest.mock import AsyncMock

import pytest

from shopsync.services.etsy.errors import RemoteUnavailable, SignatureInvalid
from shopsync.services.etsy.locks import ShopLocks
from shopsync.services.etsy.webhooks import (
    WebhookDispatcher,
    decode_signing_secret,
    parse_receipt_id,
    verify_signature,
)

from conftest import ETSY_SHOP_ID

KEY = b"0123456789abcdef0123456789abcdef"
SIGNING_SECRET = "whsec_" + base64.b64encode(KEY).decode()


def sign(payload: bytes, msg_id: str = "msg_1", timestamp: str = "1773489600") -> dict:
    digest = hmac.new(KEY, f"{msg_id}.{timestamp}.".encode() + payload, hashlib.sha256).digest()
    return {
        "webhook-id": msg_id,
        "webhook-timestamp": timestamp,
        "webhook-signature": "v1," + base64.b64encode(digest).decode(),
    }


def event_body(event_type: str = "order.paid", shop_id=ETSY_SHOP_ID, receipt_id: int = 1001) -> bytes:
    return json.dumps(
        {
            "event_type": event_type,
            "data": {
                "shop_id": shop_id,
                "resource_url": f"https://api.etsy.com/v3/application/shops/{shop_id}/receipts/{receipt_id}",
            },
        }
    ).encode()


@pytest.fixture
def etsy_client() -> AsyncMock:
    client = AsyncMock()
    client.get_receipt.return_value = {"receipt_id": 1001, "create_timestamp": 1773489600}
    return client


@pytest.fixture
def order_sync() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def locks() -> ShopLocks:
    return ShopLocks()


@pytest.fixture
def dispatcher(repos, etsy_client, order_sync, locks) -> WebhookDispatcher:
    return WebhookDispatcher(repos.shops, etsy_client, order_sync, locks, signing_secret=SIGNING_SECRET)


class TestSignature:
    def test_secret_prefix_stripped(self):
        assert decode_signing_secret(SIGNING_SECRET) == KEY
        assert decode_signing_secret(base64.b64encode(KEY).decode()) == KEY

    def test_valid_signature_accepted(self):
        payload = event_body()
        verify_signature(payload, sign(payload), KEY)

    def test_any_candidate_may_match(self):
        payload = event_body()
        headers = sign(payload)
        headers["webhook-signature"] = "v1,bm90LXRoZS1zaWduYXR1cmU= " + headers["webhook-signature"]
        verify_signature(payload, headers, KEY)

    def test_one_byte_mutation_rejected(self):
        payload = event_body()
        headers = sign(payload)
        tampered = payload.replace(b"1001", b"1002")

        with pytest.raises(SignatureInvalid):
            verify_signature(tampered, headers, KEY)

    def test_missing_header_rejected(self):
        payload = event_body()
        headers = sign(payload)
        del headers["webhook-timestamp"]

        with pytest.raises(SignatureInvalid, match="Missing"):
            verify_signature(payload, headers, KEY)

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://api.etsy.com/v3/application/shops/1/receipts/987", 987),
            ("/receipts/12/transactions", 12),
            ("https://api.etsy.com/v3/application/listings/5", None),
            (None, None),
        ],
    )
    def test_parse_receipt_id(self, url, expected):
        assert parse_receipt_id(url) == expected


class TestWebhookDispatcher:
    async def test_signed_order_event_triggers_resync(self, dispatcher, etsy_client, order_sync, shop):
        payload = event_body()

        result = await dispatcher.handle(payload, sign(payload))

        assert result.status_code == 200
        assert result.body == {"received": True}
        etsy_client.get_receipt.assert_awaited_once()
        assert etsy_client.get_receipt.await_args.args[1] == 1001
        order_sync.sync_shop.assert_awaited_once()
        synced_shop = order_sync.sync_shop.await_args.args[0]
        assert synced_shop.id == shop.id
        assert order_sync.sync_shop.await_args.kwargs["since_timestamp"] == 1773489600 - 60

    async def test_canceled_event_also_resyncs(self, dispatcher, order_sync, shop):
        payload = event_body("order.canceled")

        result = await dispatcher.handle(payload, sign(payload))

        assert result.status_code == 200
        order_sync.sync_shop.assert_awaited_once()

    async def test_tampered_body_rejected(self, dispatcher, order_sync, shop):
        payload = event_body()
        headers = sign(payload)

        result = await dispatcher.handle(payload[:-1] + b" ", headers)

        assert result.status_code == 401
        order_sync.sync_shop.assert_not_awaited()

    async def test_missing_headers_rejected_when_secret_set(self, dispatcher, order_sync, shop):
        result = await dispatcher.handle(event_body(), {})

        assert result.status_code == 401
        assert result.body == {"error": "Missing webhook headers"}

    async def test_unsigned_accepted_without_secret(self, repos, etsy_client, order_sync, locks, shop):
        dispatcher = WebhookDispatcher(repos.shops, etsy_client, order_sync, locks)

        result = await dispatcher.handle(event_body(), {})

        assert result.status_code == 200
        order_sync.sync_shop.assert_awaited_once()

    async def test_unknown_shop_acknowledged_and_dropped(self, dispatcher, etsy_client, order_sync):
        payload = event_body(shop_id=999999)

        result = await dispatcher.handle(payload, sign(payload))

        assert result.status_code == 200
        assert result.body == {"received": True}
        etsy_client.get_receipt.assert_not_awaited()
        order_sync.sync_shop.assert_not_awaited()

    async def test_unknown_event_type_ignored(self, dispatcher, order_sync, shop):
        payload = event_body("listing.updated")

        result = await dispatcher.handle(payload, sign(payload))

        assert result.status_code == 200
        order_sync.sync_shop.assert_not_awaited()

    async def test_missing_shop_id_ignored(self, dispatcher, order_sync):
        payload = json.dumps({"event_type": "order.paid", "data": {}}).encode()

        result = await dispatcher.handle(payload, sign(payload))

        assert result.status_code == 200
        order_sync.sync_shop.assert_not_awaited()

    async def test_processing_error_still_acknowledged(self, dispatcher, etsy_client, order_sync, shop):
        etsy_client.get_receipt.side_effect = RemoteUnavailable(503, "unavailable")
        payload = event_body()

        result = await dispatcher.handle(payload, sign(payload))

        assert result.status_code == 200
        assert result.body == {"received": True, "error": "Processing error"}
        order_sync.sync_shop.assert_not_awaited()

    async def test_malformed_json_rejected(self, dispatcher):
        payload = b"{not json"

        result = await dispatcher.handle(payload, sign(payload))

        assert result.status_code == 400

    @pytest.mark.parametrize(
        "body",
        [
            {"event_type": "order.paid", "data": {"shop_id": ETSY_SHOP_ID, "resource_url": 12345}},
            {"event_type": "order.paid", "data": "not-an-object"},
            {"event_type": "order.paid", "data": {"shop_id": "abc"}},
            [],
        ],
    )
    async def test_unexpected_json_shape_acknowledged_and_dropped(
        self, dispatcher, etsy_client, order_sync, shop, body
    ):
        payload = json.dumps(body).encode()

        result = await dispatcher.handle(payload, sign(payload))

        assert result.status_code == 200
        assert result.body == {"received": True}
        etsy_client.get_receipt.assert_not_awaited()
        order_sync.sync_shop.assert_not_awaited()

    async def test_resync_runs_under_shop_lock(self, dispatcher, order_sync, locks, shop):
        observed = []

        async def record(target, since_timestamp=None):
            observed.append(locks.is_locked(target.id))
            return 1

        order_sync.sync_shop.side_effect = record
        payload = event_body()

        await dispatcher.handle(payload, sign(payload))

        assert observed == [True]
        assert not locks.is_locked(shop.id)
