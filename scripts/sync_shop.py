"""Script to run an Etsy sync from the command line."""

import argparse
import asyncio
import logging
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(__file__).rsplit("scripts", 1)[0])

import httpx
from redis.asyncio import Redis

from shopsync.config import get_settings
from shopsync.db.session import create_engine, create_session_maker
from shopsync.services.etsy import (
    BatchResult,
    InMemoryCounterStore,
    RedisCounterStore,
    ShopSyncResult,
    build_engine,
)

settings = get_settings()


def print_result(result: ShopSyncResult) -> None:
    if result.success:
        print(f"  [shop {result.shop_id}] ok, {result.synced} records")
    else:
        print(f"  [shop {result.shop_id}] FAILED: {result.error}")


def print_batch(batch: BatchResult) -> None:
    print(f"\n{batch.job}: {batch.succeeded} succeeded, {batch.failed} failed")
    for result in batch.results:
        print_result(result)


async def run(command: str, shop_id: int | None) -> int:
    db_engine = create_engine(settings)
    redis = Redis.from_url(settings.REDIS_URL) if settings.REDIS_URL else None
    counter_store = RedisCounterStore(redis) if redis is not None else InMemoryCounterStore()

    async with httpx.AsyncClient(
        timeout=httpx.Timeout(settings.ETSY_HTTP_TIMEOUT_SECONDS)
    ) as http:
        engine = build_engine(
            settings,
            http=http,
            session_maker=create_session_maker(db_engine),
            counter_store=counter_store,
        )
        try:
            if command == "shop":
                result = await engine.scheduler.sync_shop_now(shop_id)
                print_result(result)
                return 0 if result.success else 1

            if command == "orders":
                batch = await engine.scheduler.run_order_sync()
            elif command == "products":
                batch = await engine.scheduler.run_product_sync()
            else:
                batch = await engine.scheduler.run_token_refresh()
            print_batch(batch)
            return 0 if batch.failed == 0 else 1
        finally:
            if redis is not None:
                await redis.aclose()
            await db_engine.dispose()


def main() -> None:
    """Main entry point."""
    logging.basicConfig(level=settings.LOG_LEVEL)

    parser = argparse.ArgumentParser(
        description="Run Etsy sync passes outside the scheduler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/sync_shop.py shop 3
  python scripts/sync_shop.py orders
  python scripts/sync_shop.py tokens
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    shop_parser = subparsers.add_parser("shop", help="Full product + order sync of one shop")
    shop_parser.add_argument("shop_id", type=int, help="Local shop id")

    subparsers.add_parser("orders", help="Incremental order sync of all active shops")
    subparsers.add_parser("products", help="Product sync of all active shops")
    subparsers.add_parser("tokens", help="Refresh tokens that expire soon")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(2)

    try:
        code = asyncio.run(run(args.command, getattr(args, "shop_id", None)))
    except LookupError as e:
        print(f"ERROR: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
