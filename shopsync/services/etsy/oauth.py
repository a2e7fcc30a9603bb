"""Etsy OAuth 2.0: PKCE connect flow and per-shop access token lifecycle."""

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional
from urllib.parse import urlencode

import httpx

from shopsync.config import Settings
from shopsync.db.repositories import CredentialRepository, ShopRepository
from shopsync.models import EtsyToken, Shop
from shopsync.models.etsy_token import ensure_utc
from shopsync.services.etsy.crypto import CredentialVault
from shopsync.services.etsy.errors import EtsyOAuthError, RemoteUnavailable
from shopsync.services.etsy.locks import ShopLocks

if TYPE_CHECKING:
    from shopsync.services.etsy.client import ResilientClient

logger = logging.getLogger(__name__)

# Etsy OAuth endpoints
ETSY_AUTH_URL = "https://www.etsy.com/oauth/connect"
ETSY_TOKEN_URL = "https://api.etsy.com/v3/public/oauth/token"

PENDING_STATE_TTL = timedelta(minutes=10)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenGrant:
    """Token endpoint response."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "TokenGrant":
        try:
            return cls(
                access_token=data["access_token"],
                refresh_token=data["refresh_token"],
                expires_in=int(data["expires_in"]),
                token_type=data.get("token_type", "Bearer"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise EtsyOAuthError(f"Malformed token response: {e}") from e


async def request_token(http: httpx.AsyncClient, form: dict[str, str]) -> TokenGrant:
    """POST to the token endpoint.

    Raises:
        EtsyOAuthError: If Etsy rejects the grant (4xx).
        RemoteUnavailable: If the endpoint cannot be reached or returns 5xx.
    """
    try:
        response = await http.post(ETSY_TOKEN_URL, data=form)
    except httpx.HTTPError as e:
        raise RemoteUnavailable(None, f"Token endpoint unreachable: {e}") from e

    if response.status_code >= 500:
        raise RemoteUnavailable(response.status_code, response.text)

    if not response.is_success:
        error_msg = f"Token request failed: {response.status_code} - {response.text}"
        logger.error(error_msg)
        raise EtsyOAuthError(error_msg, response.status_code)

    return TokenGrant.from_response(response.json())


class TokenManager:
    """Obtain, refresh and cache access tokens per shop.

    Refreshes for one shop are serialized. A caller that waited for an
    in-flight refresh re-reads the stored credential and reuses the rotated
    token instead of spending the (now invalid) refresh token again.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        vault: CredentialVault,
        credentials: CredentialRepository,
        api_key: str,
        refresh_margin: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._http = http
        self._vault = vault
        self._credentials = credentials
        self._api_key = api_key
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._locks = ShopLocks()
        self._cache: dict[int, tuple[str, datetime]] = {}

    def _is_fresh(self, expires_at: datetime, margin: timedelta) -> bool:
        return ensure_utc(expires_at) - self._clock() > margin

    def _remember(self, shop_id: int, access_token: str, expires_at: datetime) -> str:
        self._cache[shop_id] = (access_token, ensure_utc(expires_at))
        return access_token

    def forget(self, shop_id: int) -> None:
        self._cache.pop(shop_id, None)

    async def _load(self, shop: Shop) -> EtsyToken:
        token = await self._credentials.get_for_shop(shop.id)
        if token is None:
            raise EtsyOAuthError(f"No token found for shop {shop.id}")
        return token

    async def get_access_token(self, shop: Shop) -> str:
        """Get a valid access token, refreshing when it expires within the margin.

        Raises:
            EtsyOAuthError: If the refresh token is rejected or missing.
        """
        cached = self._cache.get(shop.id)
        if cached and self._is_fresh(cached[1], self._refresh_margin):
            return cached[0]

        async with self._locks.hold(shop.id):
            token = await self._load(shop)
            if self._is_fresh(token.expires_at, self._refresh_margin):
                access_token = self._vault.decrypt(token.access_token_encrypted)
                return self._remember(shop.id, access_token, token.expires_at)
            return await self._refresh(shop, token)

    async def force_refresh(self, shop: Shop, stale_access_token: Optional[str]) -> str:
        """Refresh after Etsy rejected ``stale_access_token`` with 401.

        If another caller already rotated the token, the rotated one is
        returned without a second refresh.
        """
        async with self._locks.hold(shop.id):
            token = await self._load(shop)
            current = self._vault.decrypt(token.access_token_encrypted)
            if current != stale_access_token and self._is_fresh(
                token.expires_at, self._refresh_margin
            ):
                return self._remember(shop.id, current, token.expires_at)
            return await self._refresh(shop, token)

    async def refresh_if_expiring(self, shop: Shop, within: timedelta) -> bool:
        """Proactively refresh when the token expires within ``within``.

        Returns:
            True if a refresh was performed.
        """
        async with self._locks.hold(shop.id):
            token = await self._load(shop)
            if self._is_fresh(token.expires_at, within):
                return False
            await self._refresh(shop, token)
            return True

    async def store_grant(
        self, shop_id: int, grant: TokenGrant, scope: Optional[str] = None
    ) -> EtsyToken:
        """Encrypt and persist a grant, replacing the previous credential."""
        expires_at = self._clock() + timedelta(seconds=grant.expires_in)
        token = await self._credentials.save_for_shop(
            shop_id,
            access_token_encrypted=self._vault.encrypt(grant.access_token),
            refresh_token_encrypted=self._vault.encrypt(grant.refresh_token),
            expires_at=expires_at,
            token_type=grant.token_type,
            scope=scope,
        )
        self._remember(shop_id, grant.access_token, expires_at)
        return token

    async def _refresh(self, shop: Shop, token: EtsyToken) -> str:
        self.forget(shop.id)
        logger.info(f"Refreshing Etsy access token for shop {shop.id}")

        grant = await request_token(
            self._http,
            {
                "grant_type": "refresh_token",
                "client_id": self._api_key,
                "refresh_token": self._vault.decrypt(token.refresh_token_encrypted),
            },
        )
        await self.store_grant(shop.id, grant)

        logger.info(f"Successfully refreshed Etsy access token for shop {shop.id}")
        return grant.access_token


class EtsyOAuthService:
    """Handle the Etsy OAuth 2.0 PKCE connect flow."""

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient,
        tokens: TokenManager,
        shops: ShopRepository,
        client: "ResilientClient",
    ) -> None:
        self._settings = settings
        self._http = http
        self._tokens = tokens
        self._shops = shops
        self._client = client
        # Pending states live in memory; a multi-worker deployment needs sticky sessions
        self._pending_states: dict[str, dict] = {}

    def generate_pkce_pair(self) -> tuple[str, str]:
        """Generate PKCE code_verifier and code_challenge.

        Returns:
            Tuple of (code_verifier, code_challenge)
        """
        # code_verifier: 43-128 chars, URL-safe
        code_verifier = secrets.token_urlsafe(64)

        # code_challenge: SHA256 hash of verifier, base64url encoded (no padding)
        digest = hashlib.sha256(code_verifier.encode()).digest()
        code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode()

        return code_verifier, code_challenge

    def get_authorization_url(self) -> tuple[str, str]:
        """Generate Etsy OAuth authorization URL.

        Returns:
            Tuple of (authorization_url, state)
        """
        state = secrets.token_urlsafe(32)
        code_verifier, code_challenge = self.generate_pkce_pair()

        self._pending_states[state] = {
            "code_verifier": code_verifier,
            "created_at": utcnow(),
        }
        self._cleanup_expired_states()

        params = {
            "response_type": "code",
            "client_id": self._settings.ETSY_API_KEY,
            "redirect_uri": self._settings.ETSY_REDIRECT_URI,
            "scope": self._settings.ETSY_SCOPES,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }

        url = f"{ETSY_AUTH_URL}?{urlencode(params)}"
        logger.info(f"Generated OAuth authorization URL with state: {state[:8]}...")
        return url, state

    def _cleanup_expired_states(self) -> None:
        """Remove pending states older than 10 minutes."""
        now = utcnow()
        expired = [
            state
            for state, data in self._pending_states.items()
            if now - data["created_at"] > PENDING_STATE_TTL
        ]
        for state in expired:
            del self._pending_states[state]

    async def connect(self, code: str, state: str) -> list[Shop]:
        """Exchange an authorization code and register the user's shops.

        Each shop is created or reactivated with status ``active`` and its
        credential replaced by the new grant.

        Raises:
            EtsyOAuthError: If state is invalid, the exchange fails, or the
                user has no shop.
        """
        self._cleanup_expired_states()
        if state not in self._pending_states:
            raise EtsyOAuthError("Invalid or expired state parameter")

        code_verifier = self._pending_states.pop(state)["code_verifier"]

        logger.info("Exchanging authorization code for access token")
        grant = await request_token(
            self._http,
            {
                "grant_type": "authorization_code",
                "client_id": self._settings.ETSY_API_KEY,
                "redirect_uri": self._settings.ETSY_REDIRECT_URI,
                "code": code,
                "code_verifier": code_verifier,
            },
        )

        user = await self._client.get_me(grant.access_token)
        user_id = user["user_id"]
        remote_shops = await self._client.get_user_shops(grant.access_token, user_id)
        if not remote_shops:
            raise EtsyOAuthError("Etsy account has no shop")

        connected: list[Shop] = []
        for remote in remote_shops:
            shop = await self._shops.upsert_connected(
                etsy_shop_id=remote["shop_id"],
                etsy_user_id=user_id,
                shop_name=remote.get("shop_name") or str(remote["shop_id"]),
                shop_url=remote.get("url"),
                icon_url=remote.get("icon_url_fullxfull"),
            )
            await self._tokens.store_grant(shop.id, grant, scope=self._settings.ETSY_SCOPES)
            connected.append(shop)
            logger.info(f"Connected Etsy shop {shop.etsy_shop_id} as shop {shop.id}")

        return connected
