"""API routes for the product catalog.

Provides endpoints for:
- GET /products - Active products, optionally filtered by search or category
- POST /products/sync - Pull the catalog from Shopify and upsert it
"""

import logging

from fastapi import APIRouter, Depends, Query

from salesbot.api.dependencies import get_broker, get_store, get_synchronizer
from salesbot.api.schemas import ProductResponse, ProductSyncResponse
from salesbot.services.live_updates import LiveUpdateBroker
from salesbot.services.product_sync import ProductSynchronizer
from salesbot.store.memory import EntityStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=list[ProductResponse])
def list_products(
    search: str | None = None,
    category: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
    store: EntityStore = Depends(get_store),
) -> list[ProductResponse]:
    """List products.

    Args:
        search: Case-insensitive match on title, description or category.
        category: Exact category filter.
        limit: Max results (default 100).
        store: EntityStore (injected).

    Returns:
        Matching products. Without filters, only active products.
    """
    if search:
        products = store.search_products(search)
    elif category:
        products = store.list_products_by_category(category)
    else:
        products = store.list_active_products()
    return [ProductResponse.model_validate(p) for p in products[:limit]]


@router.post("/sync", response_model=ProductSyncResponse)
async def sync_products(
    synchronizer: ProductSynchronizer = Depends(get_synchronizer),
    broker: LiveUpdateBroker = Depends(get_broker),
) -> ProductSyncResponse:
    """Fetch the Shopify catalog and upsert it by external id.

    Raises:
        UpstreamError: If Shopify is unconfigured or unreachable (mapped to 500).
    """
    result = await synchronizer.run()
    broker.publish("products.synced", {"count": result.count})
    return ProductSyncResponse(
        message=f"Synced {result.count} products",
        count=result.count,
        created=result.created,
        updated=result.updated,
        products=[ProductResponse.model_validate(p) for p in result.products],
    )
