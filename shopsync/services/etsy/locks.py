"""Per-shop mutual exclusion."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ShopLocks:
    """Registry of one ``asyncio.Lock`` per shop id.

    Waiters block cooperatively; different shops never contend.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}

    def get(self, shop_id: int) -> asyncio.Lock:
        lock = self._locks.get(shop_id)
        if lock is None:
            lock = self._locks[shop_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, shop_id: int) -> AsyncIterator[None]:
        async with self.get(shop_id):
            yield

    def is_locked(self, shop_id: int) -> bool:
        lock = self._locks.get(shop_id)
        return lock is not None and lock.locked()
