"""Async HTTP client for Etsy API v3 with quota, retry and token recovery."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from shopsync.db.repositories import ShopRepository
from shopsync.models import Shop, ShopStatus
from shopsync.services.etsy.errors import (
    AuthExpired,
    EtsyAPIError,
    EtsyOAuthError,
    RateLimited,
    RemoteUnavailable,
)
from shopsync.services.etsy.oauth import TokenManager
from shopsync.services.etsy.rate_limiter import EtsyRateLimiter

logger = logging.getLogger(__name__)

ETSY_API_BASE = "https://api.etsy.com/v3/application"
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class EtsyRequest:
    """One logical Etsy API operation."""

    method: str
    path: str
    params: Optional[dict[str, Any]] = None
    json_body: Optional[dict[str, Any]] = None


def parse_retry_after(value: Optional[str], default: float) -> float:
    """Seconds to wait from a ``retry-after`` header (delta-seconds form only)."""
    if value is None:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    return max(seconds, 0.0)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class ResilientClient:
    """Etsy API client.

    Features:
    - Daily quota check before every logical call (no token refresh is spent
      once the quota is gone)
    - 429 handling with ``retry-after`` backoff
    - 401 recovery through a forced, per-shop serialized token refresh
    - Shops whose refresh token is rejected are marked ``token_expired``
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        tokens: TokenManager,
        rate_limiter: EtsyRateLimiter,
        shops: ShopRepository,
        api_key: str,
        max_retries: int = 3,
        default_retry_after: float = 5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._http = http
        self._tokens = tokens
        self._rate_limiter = rate_limiter
        self._shops = shops
        self._api_key = api_key
        self._max_retries = max_retries
        self._default_retry_after = default_retry_after
        self._sleep = sleep

    @property
    def quota_scope(self) -> str:
        return self._api_key

    async def call(self, shop: Shop, request: EtsyRequest) -> dict:
        """Execute one logical API operation for ``shop``.

        Raises:
            AuthExpired: If the shop needs to be reconnected.
            QuotaExceeded: If today's call budget is spent.
            RateLimited: If 429 persists past the retry budget.
            RemoteUnavailable: On transport failure, timeout or 5xx.
            EtsyAPIError: On any other error status.
        """
        if shop.status == ShopStatus.TOKEN_EXPIRED:
            raise AuthExpired(f"Shop {shop.id} must be reconnected to Etsy")

        await self._rate_limiter.consume(self.quota_scope)

        access_token = await self._resolve_token(shop)
        attempts = self._max_retries + 1

        for attempt in range(1, attempts + 1):
            response = await self._send(request, access_token)

            if response.status_code == 429:
                retry_after = parse_retry_after(
                    response.headers.get("retry-after"), self._default_retry_after
                )
                if attempt < attempts:
                    logger.warning(
                        f"Etsy 429 for shop {shop.id} on {request.path}, "
                        f"retrying in {retry_after}s (attempt {attempt}/{attempts})"
                    )
                    await self._sleep(retry_after)
                    continue
                raise RateLimited(response.text, retry_after, _response_body(response))

            if response.status_code == 401:
                if attempt < attempts:
                    logger.warning(f"Got 401 for shop {shop.id}, forcing token refresh")
                    access_token = await self._recover_auth(shop, access_token)
                    continue
                raise EtsyAPIError(401, response.text, _response_body(response))

            return self._parse(response)

        raise EtsyAPIError(None, "Retry budget exhausted")  # pragma: no cover

    async def get_with_token(
        self, access_token: str, path: str, params: Optional[dict[str, Any]] = None
    ) -> dict:
        """Single GET with a raw access token, used before a shop exists."""
        await self._rate_limiter.consume(self.quota_scope)
        response = await self._send(EtsyRequest("GET", path, params=params), access_token)
        return self._parse(response)

    async def _resolve_token(self, shop: Shop) -> str:
        try:
            return await self._tokens.get_access_token(shop)
        except EtsyOAuthError as e:
            await self._mark_token_expired(shop, e)
            raise AuthExpired(f"Token refresh rejected for shop {shop.id}: {e.message}") from e

    async def _recover_auth(self, shop: Shop, stale_access_token: str) -> str:
        try:
            return await self._tokens.force_refresh(shop, stale_access_token)
        except EtsyOAuthError as e:
            await self._mark_token_expired(shop, e)
            raise AuthExpired(f"Token refresh rejected for shop {shop.id}: {e.message}") from e

    async def _mark_token_expired(self, shop: Shop, error: Exception) -> None:
        logger.error(f"Marking shop {shop.id} token_expired: {error}")
        await self._shops.set_status(shop, ShopStatus.TOKEN_EXPIRED)

    async def _send(self, request: EtsyRequest, access_token: str) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "x-api-key": self._api_key,
        }
        try:
            return await self._http.request(
                method=request.method,
                url=f"{ETSY_API_BASE}{request.path}",
                headers=headers,
                params=request.params,
                json=request.json_body,
            )
        except httpx.TimeoutException as e:
            raise RemoteUnavailable(None, f"Timeout calling {request.path}") from e
        except httpx.HTTPError as e:
            raise RemoteUnavailable(None, f"Transport error calling {request.path}: {e}") from e

    def _parse(self, response: httpx.Response) -> dict:
        if response.is_success:
            if not response.content:
                return {}
            return response.json()

        logger.error(f"Etsy API error: {response.status_code} - {response.text}")
        error_cls = RemoteUnavailable if response.status_code >= 500 else EtsyAPIError
        raise error_cls(
            status_code=response.status_code,
            message=response.text,
            response_body=_response_body(response),
        )

    # Convenience methods for common operations

    async def get(self, shop: Shop, path: str, params: Optional[dict] = None) -> dict:
        return await self.call(shop, EtsyRequest("GET", path, params=params))

    async def post(self, shop: Shop, path: str, json_body: Optional[dict] = None) -> dict:
        return await self.call(shop, EtsyRequest("POST", path, json_body=json_body))

    async def get_me(self, access_token: str) -> dict:
        """Get the authenticated user (``user_id`` and ``shop_id``)."""
        return await self.get_with_token(access_token, "/users/me")

    async def get_user_shops(self, access_token: str, user_id: int) -> list[dict]:
        """Shops owned by ``user_id``; Etsy returns either one shop or a result list."""
        data = await self.get_with_token(access_token, f"/users/{user_id}/shops")
        if "results" in data:
            return list(data["results"] or [])
        return [data] if data.get("shop_id") else []

    async def get_shop(self, shop: Shop) -> dict:
        return await self.get(shop, f"/shops/{shop.etsy_shop_id}")

    async def get_shop_listings(
        self,
        shop: Shop,
        limit: int = MAX_PAGE_SIZE,
        offset: int = 0,
        state: Optional[str] = "active",
    ) -> dict:
        """Get shop listings.

        Returns:
            Response with "count" and "results" list
        """
        params: dict[str, Any] = {"limit": min(limit, MAX_PAGE_SIZE), "offset": offset}
        if state:
            params["state"] = state
        return await self.get(shop, f"/shops/{shop.etsy_shop_id}/listings", params=params)

    async def get_listing(self, shop: Shop, listing_id: int) -> dict:
        return await self.get(
            shop, f"/listings/{listing_id}", params={"includes": "images,inventory"}
        )

    async def get_listing_inventory(self, shop: Shop, listing_id: int) -> dict:
        return await self.get(shop, f"/listings/{listing_id}/inventory")

    async def get_shop_receipts(
        self,
        shop: Shop,
        limit: int = MAX_PAGE_SIZE,
        offset: int = 0,
        min_created: Optional[int] = None,
        was_paid: Optional[bool] = None,
    ) -> dict:
        """Get shop receipts (orders).

        Args:
            shop: Connected shop
            limit: Number of results per page (max 100)
            offset: Pagination offset
            min_created: Unix timestamp - minimum created time
            was_paid: Filter by payment status

        Returns:
            Response with "count" and "results" list
        """
        params: dict[str, Any] = {"limit": min(limit, MAX_PAGE_SIZE), "offset": offset}
        if min_created is not None:
            params["min_created"] = min_created
        if was_paid is not None:
            params["was_paid"] = str(was_paid).lower()
        return await self.get(shop, f"/shops/{shop.etsy_shop_id}/receipts", params=params)

    async def get_receipt(self, shop: Shop, receipt_id: int) -> dict:
        return await self.get(shop, f"/shops/{shop.etsy_shop_id}/receipts/{receipt_id}")

    async def create_receipt_shipment(
        self,
        shop: Shop,
        receipt_id: int,
        tracking_code: str,
        carrier_name: str,
        send_bcc: bool = False,
    ) -> dict:
        """Attach tracking to a receipt (marks it shipped on Etsy)."""
        return await self.post(
            shop,
            f"/shops/{shop.etsy_shop_id}/receipts/{receipt_id}/tracking",
            json_body={
                "tracking_code": tracking_code,
                "carrier_name": carrier_name,
                "send_bcc": send_bcc,
            },
        )
