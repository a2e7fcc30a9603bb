"""Shared paging and upsert logic for reconciliation passes."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from shopsync.db.repositories import Found, RemoteKeyedRepository
from shopsync.models import Shop
from shopsync.services.etsy.client import MAX_PAGE_SIZE, ResilientClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Upserted(Generic[T]):
    """Row written by an upsert and whether it was created."""

    row: T
    created: bool


async def upsert(
    repo: RemoteKeyedRepository[T],
    keys: dict[str, Any],
    values: dict[str, Any],
    defaults: Optional[dict[str, Any]] = None,
) -> Upserted[T]:
    """Create or update the row identified by ``keys``.

    ``defaults`` are only applied on create (owning ids that must not move).
    """
    lookup = await repo.find_by_remote_id(**keys)
    if isinstance(lookup, Found):
        return Upserted(await repo.update(lookup.row.id, values), created=False)
    row = await repo.create({**(defaults or {}), **keys, **values})
    return Upserted(row, created=True)


class ReconciliationSync(ABC):
    """Page through a remote collection and upsert every record.

    Pages are requested with an offset cursor until a page comes back
    shorter than the page size. Each record is written in its own
    transaction; an exception aborts the pass but keeps what was written.
    """

    resource_name: str = "record"

    def __init__(self, client: ResilientClient, page_size: int = MAX_PAGE_SIZE) -> None:
        self.client = client
        self.page_size = min(page_size, MAX_PAGE_SIZE)

    @abstractmethod
    async def fetch_page(
        self, shop: Shop, limit: int, offset: int, since_timestamp: Optional[int]
    ) -> dict:
        """Fetch one page; the response carries a ``results`` list."""

    @abstractmethod
    async def reconcile(self, shop: Shop, record: dict) -> None:
        """Project one remote record into local rows."""

    async def after_pass(self, shop: Shop) -> None:
        """Hook run once a pass completed without error."""

    async def sync_shop(self, shop: Shop, since_timestamp: Optional[int] = None) -> int:
        """Reconcile the shop's remote collection.

        Args:
            shop: Shop to sync
            since_timestamp: Unix timestamp; only records created after it

        Returns:
            Number of remote records processed
        """
        offset = 0
        synced = 0

        logger.info(
            f"Starting {self.resource_name} sync for shop {shop.id}"
            + (f" since {since_timestamp}" if since_timestamp else "")
        )

        while True:
            response = await self.fetch_page(shop, self.page_size, offset, since_timestamp)
            records = response.get("results") or []

            for record in records:
                await self.reconcile(shop, record)
                synced += 1

            if len(records) < self.page_size:
                break
            offset += self.page_size

        await self.after_pass(shop)
        logger.info(f"Synced {synced} {self.resource_name}s for shop {shop.id}")
        return synced
