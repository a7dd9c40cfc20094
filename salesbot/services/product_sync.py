"""Catalog synchronization from the commerce platform into the store.

Upsert by external id with wholesale field replacement: every resync
overwrites price, inventory, tags and the rest with the freshest values
and refreshes ``synced_at`` even when nothing changed. Products missing
from a later fetch are left untouched; sync never removes anything.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from salesbot.store.memory import EntityStore
from salesbot.store.models import Product, ProductDraft

logger = logging.getLogger(__name__)


class ProductSource(Protocol):
    """Anything that can supply product drafts (e.g. ShopifyClient)."""

    async def fetch_products(self) -> list[ProductDraft]:
        ...


@dataclass(frozen=True)
class SyncResult:
    products: list[Product]
    created: int
    updated: int

    @property
    def count(self) -> int:
        return len(self.products)


class ProductSynchronizer:
    """Reconciles an external product list against the entity store."""

    def __init__(self, store: EntityStore, source: ProductSource) -> None:
        self.store = store
        self.source = source

    def apply(self, drafts: list[ProductDraft]) -> SyncResult:
        """Upsert ``drafts`` into the store.

        Args:
            drafts: Product drafts, normally from the platform.

        Returns:
            SyncResult with the resulting products in input order.
        """
        known = {p.id for p in self.store.list_products()}
        products = self.store.sync_products(drafts)
        created = len({p.id for p in products} - known)
        result = SyncResult(products=products, created=created, updated=len(products) - created)
        logger.info(
            "Product sync: %d products (%d created, %d updated)",
            result.count, result.created, result.updated,
        )
        return result

    async def run(self) -> SyncResult:
        """Fetch from the source and apply.

        Raises:
            UpstreamError: Propagated from the source; the store is untouched.
        """
        drafts = await self.source.fetch_products()
        result = self.apply(drafts)
        self.store.record_api_metric("shopify", "/products/sync")
        return result
