"""Tests for the daily Etsy call budget."""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from shopsync.services.etsy.errors import QuotaExceeded
from shopsync.services.etsy.rate_limiter import (
    EtsyRateLimiter,
    InMemoryCounterStore,
    RedisCounterStore,
)

from conftest import API_KEY, respond


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc))


def make_limiter(clock: FakeClock, limit: int, warn: int) -> EtsyRateLimiter:
    return EtsyRateLimiter(
        InMemoryCounterStore(clock), daily_limit=limit, warn_threshold=warn, clock=clock
    )


class TestEtsyRateLimiter:
    async def test_calls_up_to_limit_succeed(self, clock):
        limiter = make_limiter(clock, 3, 2)

        assert [await limiter.consume(API_KEY) for _ in range(3)] == [1, 2, 3]

    async def test_call_past_limit_raises(self, clock):
        limiter = make_limiter(clock, 3, 2)
        for _ in range(3):
            await limiter.consume(API_KEY)

        with pytest.raises(QuotaExceeded) as exc_info:
            await limiter.consume(API_KEY)
        assert exc_info.value.limit == 3
        assert await limiter.remaining(API_KEY) == 0

    async def test_warning_logged_once_at_threshold(self, clock, caplog):
        limiter = make_limiter(clock, 5, 3)

        with caplog.at_level(logging.WARNING):
            for _ in range(5):
                await limiter.consume(API_KEY)

        warnings = [m for m in caplog.messages if "approaching limit" in m]
        assert warnings == ["Etsy API daily calls: 3/5, approaching limit"]

    async def test_budget_resets_at_utc_midnight(self, clock):
        limiter = make_limiter(clock, 1, 1)
        await limiter.consume(API_KEY)
        with pytest.raises(QuotaExceeded):
            await limiter.consume(API_KEY)

        clock.now += timedelta(days=1)

        assert await limiter.consume(API_KEY) == 1

    async def test_counter_key_does_not_contain_api_key(self, clock):
        store = AsyncMock()
        store.increment.return_value = 1
        limiter = EtsyRateLimiter(store, clock=clock)

        await limiter.consume(API_KEY)

        key, expire_at = store.increment.await_args.args
        assert API_KEY not in key
        assert key.endswith(":2026-03-14")
        assert expire_at == datetime(2026, 3, 15, tzinfo=timezone.utc)


class TestRedisCounterStore:
    async def test_first_increment_sets_expiry(self):
        redis = AsyncMock()
        redis.incr.return_value = 1
        store = RedisCounterStore(redis)
        expire_at = datetime(2026, 3, 15, tzinfo=timezone.utc)

        assert await store.increment("k", expire_at) == 1
        redis.expireat.assert_awaited_once_with("k", int(expire_at.timestamp()))

    async def test_later_increments_keep_expiry(self):
        redis = AsyncMock()
        redis.incr.return_value = 7
        store = RedisCounterStore(redis)

        assert await store.increment("k", datetime(2026, 3, 15, tzinfo=timezone.utc)) == 7
        redis.expireat.assert_not_awaited()

    async def test_get_missing_key_is_zero(self):
        redis = AsyncMock()
        redis.get.return_value = None
        assert await RedisCounterStore(redis).get("k") == 0


class TestQuotaBoundaryThroughClient:
    async def test_call_after_limit_never_reaches_etsy(
        self, client, rate_limiter, fake_etsy, shop, credential
    ):
        """The N+1th logical call fails with QuotaExceeded and sends no request."""
        rate_limiter.daily_limit = 2
        fake_etsy.api("GET", f"/shops/{shop.etsy_shop_id}", respond(200, json={"shop_id": 1}))

        await client.get_shop(shop)
        await client.get_shop(shop)
        with pytest.raises(QuotaExceeded):
            await client.get_shop(shop)

        assert len(fake_etsy.requests) == 2
