"""Shared pytest fixtures.

Provides:
- In-memory SQLite database (aiosqlite) with the full schema
- A scripted Etsy API behind ``httpx.MockTransport``
- Wired token manager, rate limiter and resilient client
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shopsync.db.repositories import Repositories
from shopsync.models import Base, Shop
from shopsync.services.etsy.client import ResilientClient
from shopsync.services.etsy.crypto import CredentialVault
from shopsync.services.etsy.oauth import TokenGrant, TokenManager
from shopsync.services.etsy.rate_limiter import EtsyRateLimiter, InMemoryCounterStore

API_KEY = "test-api-key"
ENCRYPTION_SECRET = "test-encryption-secret-0123456789abcdef"
ETSY_SHOP_ID = 555
ETSY_USER_ID = 777

API_PREFIX = "/v3/application"
TOKEN_PATH = "/v3/public/oauth/token"

Responder = Callable[[httpx.Request], httpx.Response]


def respond(
    status_code: int = 200,
    json: Any = None,
    headers: Optional[dict[str, str]] = None,
) -> Responder:
    """Build a fresh response for every request it answers."""

    def build(request: httpx.Request) -> httpx.Response:
        if json is None:
            return httpx.Response(status_code, headers=headers)
        return httpx.Response(status_code, json=json, headers=headers)

    return build


def token_response(access_token: str = "access-2", refresh_token: str = "refresh-2") -> Responder:
    return respond(
        200,
        json={
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expires_in": 3600,
            "token_type": "Bearer",
        },
    )


class FakeEtsy:
    """Scripted Etsy endpoints keyed by (method, path).

    Each route holds a queue of responders; the last one keeps answering
    once the queue is down to a single entry.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Responder]] = {}

    def add(self, method: str, path: str, *responders: Responder) -> None:
        self._routes.setdefault((method, path), []).extend(responders)

    def api(self, method: str, path: str, *responders: Responder) -> None:
        self.add(method, f"{API_PREFIX}{path}", *responders)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def api_calls(self, method: str, path: str) -> list[httpx.Request]:
        return self.calls(method, f"{API_PREFIX}{path}")

    @property
    def token_calls(self) -> list[httpx.Request]:
        return self.calls("POST", TOKEN_PATH)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # Let concurrent callers interleave the way real I/O would
        await asyncio.sleep(0)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": f"No route for {request.url.path}"})
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        return responder(request)


@pytest.fixture
async def session_maker() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def repos(session_maker) -> Repositories:
    return Repositories.from_session_maker(session_maker)


@pytest.fixture
async def shop(repos) -> Shop:
    return await repos.shops.upsert_connected(
        etsy_shop_id=ETSY_SHOP_ID,
        etsy_user_id=ETSY_USER_ID,
        shop_name="Test Shop",
    )


@pytest.fixture
def fake_etsy() -> FakeEtsy:
    return FakeEtsy()


@pytest.fixture
async def http(fake_etsy) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_etsy.handler)) as client:
        yield client


@pytest.fixture(scope="session")
def vault() -> CredentialVault:
    return CredentialVault(ENCRYPTION_SECRET)


@pytest.fixture
def rate_limiter() -> EtsyRateLimiter:
    return EtsyRateLimiter(InMemoryCounterStore(), daily_limit=10_000, warn_threshold=9_000)


@pytest.fixture
def tokens(http, vault, repos) -> TokenManager:
    return TokenManager(http, vault, repos.credentials, api_key=API_KEY)


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def client(http, tokens, rate_limiter, repos, sleep) -> ResilientClient:
    return ResilientClient(
        http,
        tokens,
        rate_limiter,
        repos.shops,
        api_key=API_KEY,
        max_retries=3,
        default_retry_after=5,
        sleep=sleep,
    )


@pytest.fixture
async def credential(tokens, shop):
    """Valid stored credential: access-1 / refresh-1, one hour left."""
    return await tokens.store_grant(
        shop.id, TokenGrant(access_token="access-1", refresh_token="refresh-1", expires_in=3600)
    )
