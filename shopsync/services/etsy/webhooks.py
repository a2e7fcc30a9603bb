"""Inbound Etsy webhook verification and dispatch."""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from shopsync.db.repositories import Found, ShopRepository
from shopsync.schemas.etsy import WebhookEvent
from shopsync.services.etsy.client import ResilientClient
from shopsync.services.etsy.errors import SignatureInvalid
from shopsync.services.etsy.locks import ShopLocks
from shopsync.services.etsy.orders import OrderSync

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("webhook-id", "webhook-timestamp", "webhook-signature")
HANDLED_EVENTS = frozenset({"order.paid", "order.canceled"})
RECEIPT_ID_PATTERN = re.compile(r"receipts/(\d+)")

# Receipts created just before the hinted one are picked up too
RESYNC_LEEWAY_SECONDS = 60


def decode_signing_secret(secret: str) -> bytes:
    """Key bytes from a ``whsec_``-prefixed base64 signing secret.

    Raises:
        ValueError: If the secret is not valid base64.
    """
    if secret.startswith("whsec_"):
        secret = secret[len("whsec_"):]
    try:
        return base64.b64decode(secret + "=" * (-len(secret) % 4))
    except binascii.Error as e:
        raise ValueError(f"Webhook signing secret is not base64: {e}") from e


def compute_signature(key: bytes, msg_id: str, timestamp: str, payload: bytes) -> str:
    signed_content = f"{msg_id}.{timestamp}.".encode() + payload
    digest = hmac.new(key, signed_content, hashlib.sha256).digest()
    return f"v1,{base64.b64encode(digest).decode()}"


def verify_signature(payload: bytes, headers: Mapping[str, str], key: bytes) -> None:
    """Check the ``webhook-signature`` header against the raw request body.

    The header may carry several space-separated candidates; any match
    accepts the request.

    Raises:
        SignatureInvalid: If a header is missing or no candidate matches.
    """
    values = {name: headers.get(name) for name in SIGNATURE_HEADERS}
    if not all(values.values()):
        raise SignatureInvalid("Missing webhook headers")

    expected = compute_signature(
        key, values["webhook-id"], values["webhook-timestamp"], payload
    ).encode()

    candidates = values["webhook-signature"].split(" ")
    if not any(hmac.compare_digest(expected, c.encode()) for c in candidates if c):
        raise SignatureInvalid("Invalid webhook signature")


def parse_receipt_id(resource_url: Optional[str]) -> Optional[int]:
    match = RECEIPT_ID_PATTERN.search(resource_url or "")
    return int(match.group(1)) if match else None


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    body: dict[str, Any] = field(default_factory=lambda: {"received": True})


class WebhookDispatcher:
    """Turn Etsy order events into a targeted order resync.

    Events are hints: the receipt named by the event is fetched again and the
    shop's orders are re-synced from shortly before its creation, so replays
    and out-of-order deliveries converge on the same state.
    """

    def __init__(
        self,
        shops: ShopRepository,
        client: ResilientClient,
        order_sync: OrderSync,
        locks: ShopLocks,
        signing_secret: str = "",
    ) -> None:
        self._shops = shops
        self._client = client
        self._order_sync = order_sync
        self._locks = locks
        self._key = decode_signing_secret(signing_secret) if signing_secret else None

    async def handle(self, raw_payload: bytes, headers: Mapping[str, str]) -> WebhookResult:
        """Verify and process one webhook delivery.

        Args:
            raw_payload: Request body exactly as received
            headers: Request headers (lookups use lower-case names)

        Returns:
            Status code and JSON body to send back to Etsy
        """
        if self._key is not None:
            try:
                verify_signature(raw_payload, headers, self._key)
            except SignatureInvalid as e:
                logger.warning(f"Rejected Etsy webhook: {e}")
                return WebhookResult(401, {"error": str(e)})

        try:
            body = json.loads(raw_payload)
        except ValueError:
            logger.warning("Etsy webhook body is not JSON")
            return WebhookResult(400, {"error": "Invalid webhook payload"})

        try:
            event = WebhookEvent.model_validate(body)
        except ValidationError as e:
            logger.warning(f"Unrecognized Etsy webhook body dropped: {e.error_count()} errors")
            return WebhookResult(200)

        try:
            await self._process(event)
        except Exception as e:
            # Etsy retries non-2xx deliveries; processing failures are not its fault
            logger.error(f"Webhook processing error: {e}", exc_info=True)
            return WebhookResult(200, {"received": True, "error": "Processing error"})

        return WebhookResult(200)

    async def _process(self, event: WebhookEvent) -> None:
        etsy_shop_id = event.data.shop_id
        if not etsy_shop_id:
            logger.debug(f"Webhook {event.event_type} without shop_id ignored")
            return

        lookup = await self._shops.find_by_remote_id(etsy_shop_id)
        if not isinstance(lookup, Found):
            logger.warning(f"Webhook received for unknown shop: {etsy_shop_id}")
            return
        shop = lookup.row

        if event.event_type not in HANDLED_EVENTS:
            logger.info(f"Unhandled webhook event: {event.event_type}")
            return

        receipt_id = parse_receipt_id(event.data.resource_url)
        if receipt_id is None:
            logger.warning(
                f"Webhook {event.event_type} for shop {shop.id} has no receipt in "
                f"resource_url {event.data.resource_url!r}"
            )
            return

        async with self._locks.hold(shop.id):
            receipt = await self._client.get_receipt(shop, receipt_id)
            created = receipt.get("create_timestamp") or 0
            since = max(int(created) - RESYNC_LEEWAY_SECONDS, 0) or None

            logger.info(
                f"Webhook {event.event_type} for receipt {receipt_id}, "
                f"resyncing shop {shop.id} orders"
            )
            await self._order_sync.sync_shop(shop, since_timestamp=since)
