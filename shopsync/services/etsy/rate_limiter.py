"""Daily call budget for the Etsy API (10k/day per API key by default)."""

import asyncio
import hashlib
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Callable, Protocol

from redis.asyncio import Redis

from shopsync.services.etsy.errors import QuotaExceeded

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CounterStore(Protocol):
    """Shared integer counters with absolute expiry."""

    async def increment(self, key: str, expire_at: datetime) -> int:
        """Atomically add one and return the new value.

        ``expire_at`` applies when the increment creates the counter.
        """
        ...

    async def get(self, key: str) -> int:
        ...


class InMemoryCounterStore:
    """Process-local counter store for single-worker deployments and tests."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._counters: dict[str, tuple[int, datetime]] = {}
        self._lock = asyncio.Lock()

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expire_at) in self._counters.items() if expire_at <= now]
        for key in expired:
            del self._counters[key]

    async def increment(self, key: str, expire_at: datetime) -> int:
        async with self._lock:
            self._purge_expired()
            count, current_expiry = self._counters.get(key, (0, expire_at))
            count += 1
            self._counters[key] = (count, current_expiry)
            return count

    async def get(self, key: str) -> int:
        async with self._lock:
            self._purge_expired()
            return self._counters.get(key, (0, None))[0]


class RedisCounterStore:
    """Counter store shared by every worker using the same Redis."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def increment(self, key: str, expire_at: datetime) -> int:
        count = int(await self._redis.incr(key))
        if count == 1:
            await self._redis.expireat(key, int(expire_at.timestamp()))
        return count

    async def get(self, key: str) -> int:
        value = await self._redis.get(key)
        return int(value) if value is not None else 0


class EtsyRateLimiter:
    """Rate governor for Etsy API requests.

    Enforces the daily call budget per API key. The counter lives in a
    ``CounterStore`` keyed by UTC date and expires at the next UTC midnight.
    """

    def __init__(
        self,
        store: CounterStore,
        daily_limit: int = 10_000,
        warn_threshold: int = 9_000,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.daily_limit = daily_limit
        self.warn_threshold = warn_threshold
        self._clock = clock

    def _counter_key(self, scope: str) -> tuple[str, datetime]:
        now = self._clock()
        day = now.date()
        # API keys are secrets; only a fingerprint goes into the counter name
        fingerprint = hashlib.sha256(scope.encode("utf-8")).hexdigest()[:16]
        next_midnight = datetime.combine(day + timedelta(days=1), time.min, tzinfo=timezone.utc)
        return f"etsy:api_calls:{fingerprint}:{day.isoformat()}", next_midnight

    async def consume(self, scope: str) -> int:
        """Count one outbound call against today's budget.

        Returns:
            The post-increment count for today.

        Raises:
            QuotaExceeded: If this call pushes the count above the limit.
        """
        key, expire_at = self._counter_key(scope)
        count = await self.store.increment(key, expire_at)

        if count > self.daily_limit:
            logger.warning(f"Etsy daily rate limit reached ({count}/{self.daily_limit})")
            raise QuotaExceeded(count, self.daily_limit)

        if count == self.warn_threshold:
            logger.warning(
                f"Etsy API daily calls: {count}/{self.daily_limit}, approaching limit"
            )

        return count

    async def used(self, scope: str) -> int:
        key, _ = self._counter_key(scope)
        return await self.store.get(key)

    async def remaining(self, scope: str) -> int:
        """Get remaining daily API calls."""
        return max(0, self.daily_limit - await self.used(scope))
