"""Product sync service for Etsy listings and their inventory."""

import logging
from typing import Any, Optional

from shopsync.db.repositories import Repositories
from shopsync.models import Product, ProductStatus, Shop
from shopsync.schemas.etsy import (
    RemoteInventory,
    RemoteInventoryProduct,
    RemoteListing,
    money_to_decimal,
)
from shopsync.services.etsy.client import MAX_PAGE_SIZE, ResilientClient
from shopsync.services.etsy.errors import AuthExpired, EtsyAPIError
from shopsync.services.etsy.sync import ReconciliationSync, upsert

logger = logging.getLogger(__name__)

LISTING_STATUS_MAP = {
    "active": ProductStatus.ACTIVE,
    "inactive": ProductStatus.INACTIVE,
    "draft": ProductStatus.DRAFT,
    "expired": ProductStatus.EXPIRED,
    "sold_out": ProductStatus.SOLD_OUT,
    "removed": ProductStatus.REMOVED,
}


def map_listing_status(state: Optional[str]) -> ProductStatus:
    return LISTING_STATUS_MAP.get((state or "").lower(), ProductStatus.ACTIVE)


def project_listing(listing: RemoteListing) -> dict[str, Any]:
    """Listing fields for a Product row.

    Image and SKU columns are only overwritten when the listing carries them,
    so a listing fetched without images keeps what was stored before.
    """
    values: dict[str, Any] = {
        "title": listing.title,
        "description": listing.description,
        "status": map_listing_status(listing.state),
        "tags": list(listing.tags),
        "price": money_to_decimal(listing.price),
        "currency_code": listing.price.currency_code if listing.price else "USD",
        "quantity": listing.quantity,
        "url": listing.url,
    }

    if listing.skus:
        values["sku"] = listing.skus[0]

    image_urls = [image.url_fullxfull for image in listing.images if image.url_fullxfull]
    if image_urls:
        values["primary_image_url"] = image_urls[0]
        values["image_urls"] = image_urls

    return values


def project_inventory_product(
    item: RemoteInventoryProduct, fallback_sku: Optional[str]
) -> Optional[dict[str, Any]]:
    """Variant fields from an inventory product, or None when it has no SKU."""
    sku = item.sku or fallback_sku
    if not sku:
        return None

    offering = item.offerings[0] if item.offerings else None
    return {
        "sku": sku,
        "etsy_offering_id": offering.offering_id if offering else None,
        "price": money_to_decimal(offering.price if offering else None),
        "quantity": offering.quantity if offering else 0,
        "property_values": [
            {"property_name": pv.property_name, "values": list(pv.values)}
            for pv in item.property_values
        ],
    }


class ProductSync(ReconciliationSync):
    """Sync active Etsy listings into products and product variants."""

    resource_name = "product"

    def __init__(
        self,
        client: ResilientClient,
        repos: Repositories,
        page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        super().__init__(client, page_size)
        self.repos = repos

    async def fetch_page(
        self, shop: Shop, limit: int, offset: int, since_timestamp: Optional[int]
    ) -> dict:
        # The listings endpoint has no created-after filter; every pass is full
        return await self.client.get_shop_listings(
            shop, limit=limit, offset=offset, state="active"
        )

    async def reconcile(self, shop: Shop, record: dict) -> None:
        listing = RemoteListing.model_validate(record)
        result = await upsert(
            self.repos.products,
            keys={"shop_id": shop.id, "etsy_listing_id": listing.listing_id},
            values=project_listing(listing),
        )
        if result.created:
            logger.info(f"Created product for listing {listing.listing_id}")

        await self._sync_variants(shop, result.row)

    async def _sync_variants(self, shop: Shop, product: Product) -> None:
        try:
            data = await self.client.get_listing_inventory(shop, product.etsy_listing_id)
        except AuthExpired:
            raise
        except EtsyAPIError as e:
            logger.error(
                f"Failed to fetch inventory for listing {product.etsy_listing_id}: {e}"
            )
            return

        inventory = RemoteInventory.model_validate(data)
        for item in inventory.products:
            values = project_inventory_product(item, product.sku)
            if values is None:
                continue
            await upsert(
                self.repos.variants,
                keys={"product_id": product.id, "etsy_product_id": item.product_id},
                values=values,
            )
