"""APScheduler integration for periodic Etsy sync passes."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from shopsync.db.repositories import ShopRepository
from shopsync.models import Shop, ShopStatus
from shopsync.services.etsy.errors import EtsyOAuthError
from shopsync.services.etsy.locks import ShopLocks
from shopsync.services.etsy.oauth import TokenManager
from shopsync.services.etsy.orders import OrderSync
from shopsync.services.etsy.products import ProductSync

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ShopSyncResult:
    shop_id: int
    success: bool
    synced: int = 0
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Outcome of one scheduled pass over all active shops."""

    job: str
    results: list[ShopSyncResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


@dataclass(frozen=True)
class ScheduleIntervals:
    order_sync: timedelta = timedelta(minutes=15)
    product_sync: timedelta = timedelta(minutes=30)
    token_refresh: timedelta = timedelta(minutes=45)
    order_lookback: timedelta = timedelta(hours=24)
    token_lookahead: timedelta = timedelta(minutes=60)


class SyncScheduler:
    """Run order, product and token passes over every active shop.

    Shops are processed concurrently, each under its sync lock, and a
    failing shop is recorded without stopping the rest of the batch.
    """

    def __init__(
        self,
        shops: ShopRepository,
        tokens: TokenManager,
        order_sync: OrderSync,
        product_sync: ProductSync,
        locks: ShopLocks,
        intervals: ScheduleIntervals = ScheduleIntervals(),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._shops = shops
        self._tokens = tokens
        self._order_sync = order_sync
        self._product_sync = product_sync
        self._locks = locks
        self._intervals = intervals
        self._clock = clock
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def _run_batch(
        self, job: str, operation: Callable[[Shop], Awaitable[int]]
    ) -> BatchResult:
        shops = await self._shops.list_active()
        logger.info(f"Running {job} for {len(shops)} active shops")

        results = await asyncio.gather(*(self._run_one(job, shop, operation) for shop in shops))
        batch = BatchResult(job=job, results=list(results))

        logger.info(f"{job} finished: {batch.succeeded} succeeded, {batch.failed} failed")
        return batch

    async def _run_one(
        self, job: str, shop: Shop, operation: Callable[[Shop], Awaitable[int]]
    ) -> ShopSyncResult:
        try:
            async with self._locks.hold(shop.id):
                synced = await operation(shop)
        except Exception as e:
            logger.error(f"{job} failed for shop {shop.id}: {e}", exc_info=True)
            return ShopSyncResult(shop_id=shop.id, success=False, error=str(e))

        logger.info(f"{job} for shop {shop.id}: ok ({synced})")
        return ShopSyncResult(shop_id=shop.id, success=True, synced=synced)

    async def run_order_sync(self) -> BatchResult:
        """Incremental order sync with a look-back window."""
        since = int((self._clock() - self._intervals.order_lookback).timestamp())

        async def sync_orders(shop: Shop) -> int:
            return await self._order_sync.sync_shop(shop, since_timestamp=since)

        return await self._run_batch("order sync", sync_orders)

    async def run_product_sync(self) -> BatchResult:
        return await self._run_batch("product sync", self._product_sync.sync_shop)

    async def run_token_refresh(self) -> BatchResult:
        """Refresh credentials about to expire.

        A shop whose refresh token is rejected is marked ``token_expired``
        and drops out of later passes.
        """

        async def refresh(shop: Shop) -> int:
            try:
                refreshed = await self._tokens.refresh_if_expiring(
                    shop, self._intervals.token_lookahead
                )
            except EtsyOAuthError:
                await self._shops.set_status(shop, ShopStatus.TOKEN_EXPIRED)
                logger.warning(f"Shop {shop.id} marked token_expired during refresh sweep")
                raise
            return int(refreshed)

        return await self._run_batch("token refresh", refresh)

    async def sync_shop_now(self, shop_id: int) -> ShopSyncResult:
        """Manual full sync of one shop: products first, then orders.

        Raises:
            LookupError: If the shop does not exist.
        """
        shop = await self._shops.get(shop_id)
        if shop is None:
            raise LookupError(f"Shop {shop_id} not found")

        async def full_sync(target: Shop) -> int:
            products = await self._product_sync.sync_shop(target)
            orders = await self._order_sync.sync_shop(target)
            return products + orders

        return await self._run_one("manual sync", shop, full_sync)

    async def _order_job(self) -> None:
        await self.run_order_sync()

    async def _product_job(self) -> None:
        await self.run_product_sync()

    async def _token_job(self) -> None:
        await self.run_token_refresh()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start the background scheduler with the three sync jobs."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self._order_job,
            trigger=IntervalTrigger(seconds=self._intervals.order_sync.total_seconds()),
            id="etsy_order_sync",
            name="Sync Etsy orders",
            replace_existing=True,
        )
        scheduler.add_job(
            self._product_job,
            trigger=IntervalTrigger(seconds=self._intervals.product_sync.total_seconds()),
            id="etsy_product_sync",
            name="Sync Etsy products",
            replace_existing=True,
        )
        scheduler.add_job(
            self._token_job,
            trigger=IntervalTrigger(seconds=self._intervals.token_refresh.total_seconds()),
            id="etsy_token_refresh",
            name="Refresh expiring Etsy tokens",
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            "Started Etsy sync scheduler (orders every "
            f"{self._intervals.order_sync}, products every {self._intervals.product_sync}, "
            f"tokens every {self._intervals.token_refresh})"
        )

    def stop(self) -> None:
        """Stop the background scheduler gracefully."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Stopped Etsy sync scheduler")
        self._scheduler = None
