"""Tests for token lifecycle and the OAuth connect flow."""

import asyncio
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from shopsync.config import Settings
from shopsync.models import ShopStatus
from shopsync.services.etsy.errors import EtsyOAuthError
from shopsync.services.etsy.oauth import EtsyOAuthService, TokenGrant

from conftest import API_KEY, ETSY_SHOP_ID, ETSY_USER_ID, TOKEN_PATH, respond, token_response


class TestTokenRefreshRace:
    async def test_concurrent_401s_refresh_once(self, client, fake_etsy, shop, credential):
        """Two calls rejected with the same stale token share one refresh."""
        path = f"/v3/application/shops/{shop.etsy_shop_id}"

        def resource(request: httpx.Request) -> httpx.Response:
            if request.headers["authorization"] == "Bearer access-1":
                return httpx.Response(401, json={"error": "invalid_token"})
            return httpx.Response(200, json={"shop_id": shop.etsy_shop_id})

        fake_etsy.add("GET", path, resource)
        fake_etsy.add("POST", TOKEN_PATH, token_response("access-2", "refresh-2"))

        results = await asyncio.gather(client.get_shop(shop), client.get_shop(shop))

        assert all(r["shop_id"] == shop.etsy_shop_id for r in results)
        assert len(fake_etsy.token_calls) == 1

    async def test_concurrent_reads_of_expired_token_refresh_once(self, tokens, fake_etsy, shop):
        await tokens.store_grant(shop.id, TokenGrant("access-1", "refresh-1", expires_in=30))
        fake_etsy.add("POST", TOKEN_PATH, token_response("access-2", "refresh-2"))

        first, second = await asyncio.gather(
            tokens.get_access_token(shop),
            tokens.get_access_token(shop),
        )

        assert first == second == "access-2"
        assert len(fake_etsy.token_calls) == 1

    async def test_concurrent_forced_refreshes(self, tokens, fake_etsy, shop, credential):
        fake_etsy.add("POST", TOKEN_PATH, token_response("access-2", "refresh-2"))

        first, second = await asyncio.gather(
            tokens.force_refresh(shop, "access-1"),
            tokens.force_refresh(shop, "access-1"),
        )

        assert first == second == "access-2"
        assert len(fake_etsy.token_calls) == 1


class TestTokenManager:
    async def test_cached_token_used_without_storage_read(self, tokens, repos, shop, credential, monkeypatch):
        async def fail(*args, **kwargs):
            raise AssertionError("credential store should not be read")

        monkeypatch.setattr(repos.credentials, "get_for_shop", fail)

        assert await tokens.get_access_token(shop) == "access-1"

    async def test_token_near_expiry_refreshed_before_use(self, tokens, fake_etsy, shop):
        await tokens.store_grant(shop.id, TokenGrant("access-1", "refresh-1", expires_in=60))
        fake_etsy.add("POST", TOKEN_PATH, token_response("access-2"))

        assert await tokens.get_access_token(shop) == "access-2"
        assert len(fake_etsy.token_calls) == 1

    async def test_missing_credential_is_oauth_error(self, tokens, shop):
        with pytest.raises(EtsyOAuthError):
            await tokens.get_access_token(shop)

    async def test_refresh_if_expiring_skips_fresh_token(self, tokens, fake_etsy, shop, credential):
        assert await tokens.refresh_if_expiring(shop, timedelta(minutes=30)) is False
        assert fake_etsy.token_calls == []

    async def test_refresh_if_expiring_refreshes_inside_window(self, tokens, fake_etsy, shop, credential):
        fake_etsy.add("POST", TOKEN_PATH, token_response("access-2"))

        assert await tokens.refresh_if_expiring(shop, timedelta(minutes=90)) is True
        assert await tokens.get_access_token(shop) == "access-2"

    async def test_stored_tokens_are_encrypted(self, repos, shop, credential):
        stored = await repos.credentials.get_for_shop(shop.id)
        assert "access-1" not in stored.access_token_encrypted
        assert "refresh-1" not in stored.refresh_token_encrypted


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ETSY_API_KEY=API_KEY,
        ETSY_REDIRECT_URI="http://localhost:8000/api/v1/etsy/auth/callback",
        TOKEN_ENCRYPTION_KEY="x" * 40,
    )


@pytest.fixture
def oauth(settings, http, tokens, repos, client) -> EtsyOAuthService:
    return EtsyOAuthService(settings, http, tokens, repos.shops, client)


class TestConnectFlow:
    def test_authorization_url_uses_pkce(self, oauth):
        url, state = oauth.get_authorization_url()

        query = parse_qs(urlparse(url).query)
        assert query["client_id"] == [API_KEY]
        assert query["state"] == [state]
        assert query["code_challenge_method"] == ["S256"]
        assert len(query["code_challenge"][0]) == 43

    async def test_connect_registers_shop_and_credential(self, oauth, fake_etsy, repos, vault):
        _, state = oauth.get_authorization_url()
        fake_etsy.add("POST", TOKEN_PATH, token_response("access-9", "refresh-9"))
        fake_etsy.api("GET", "/users/me", respond(200, json={"user_id": ETSY_USER_ID}))
        fake_etsy.api(
            "GET",
            f"/users/{ETSY_USER_ID}/shops",
            respond(200, json={"shop_id": ETSY_SHOP_ID, "shop_name": "Paper Goods"}),
        )

        shops = await oauth.connect("auth-code", state)

        assert [s.etsy_shop_id for s in shops] == [ETSY_SHOP_ID]
        assert shops[0].status == ShopStatus.ACTIVE
        assert shops[0].shop_name == "Paper Goods"

        stored = await repos.credentials.get_for_shop(shops[0].id)
        assert vault.decrypt(stored.access_token_encrypted) == "access-9"

        form = fake_etsy.token_calls[0].content.decode()
        assert "grant_type=authorization_code" in form
        assert "code_verifier=" in form

    async def test_reconnect_reactivates_expired_shop(self, oauth, fake_etsy, repos, shop):
        await repos.shops.set_status(shop, ShopStatus.TOKEN_EXPIRED)
        _, state = oauth.get_authorization_url()
        fake_etsy.add("POST", TOKEN_PATH, token_response())
        fake_etsy.api("GET", "/users/me", respond(200, json={"user_id": ETSY_USER_ID}))
        fake_etsy.api(
            "GET",
            f"/users/{ETSY_USER_ID}/shops",
            respond(200, json={"results": [{"shop_id": ETSY_SHOP_ID, "shop_name": "Test Shop"}]}),
        )

        shops = await oauth.connect("auth-code", state)

        assert shops[0].id == shop.id
        assert (await repos.shops.get(shop.id)).status == ShopStatus.ACTIVE

    async def test_unknown_state_rejected(self, oauth, fake_etsy):
        with pytest.raises(EtsyOAuthError, match="state"):
            await oauth.connect("auth-code", "forged-state")

        assert fake_etsy.requests == []

    async def test_state_is_single_use(self, oauth, fake_etsy):
        _, state = oauth.get_authorization_url()
        fake_etsy.add("POST", TOKEN_PATH, respond(400, json={"error": "invalid_grant"}))

        with pytest.raises(EtsyOAuthError):
            await oauth.connect("bad-code", state)
        with pytest.raises(EtsyOAuthError, match="state"):
            await oauth.connect("bad-code", state)
