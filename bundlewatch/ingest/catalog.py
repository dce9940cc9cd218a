"""Full-catalog snapshot for one sweep."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from bundlewatch.ingest.models import Product
from bundlewatch.ingest.shopify import ShopifyClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CatalogSnapshot:
    client: ShopifyClient
    products: list[Product]
    variant_quantities: dict[str, int] = field(default_factory=dict)

    async def quantity_for(self, variant_id: int | str) -> int:
        key = str(variant_id)
        if key in self.variant_quantities:
            return self.variant_quantities[key]
        logger.info("Variant %s missing from snapshot; fetching directly", key)
        quantity = await self.client.fetch_variant_quantity(key)
        self.variant_quantities[key] = quantity
        return quantity


async def build_snapshot(client: ShopifyClient) -> CatalogSnapshot:
    raw = await client.fetch_all_products()
    products = [Product.from_shopify(item) for item in raw]
    quantities = {
        str(variant.id): variant.quantity for product in products for variant in product.variants
    }
    logger.info("Fetched %s products (%s variants indexed)", len(products), len(quantities))
    return CatalogSnapshot(client=client, products=products, variant_quantities=quantities)
