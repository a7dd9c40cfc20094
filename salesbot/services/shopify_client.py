"""Shopify Admin API client for catalog synchronization.

Fetches the store's products and maps each one onto a ``ProductDraft``
keyed by the Shopify product id, ready for ``EntityStore.sync_products``.

Example:
    client = ShopifyClient("mystore.myshopify.com", "shpat_xxxx")
    drafts = await client.fetch_products()
"""

import logging
import re

import httpx

from salesbot.errors.domain import UpstreamError
from salesbot.store.models import ProductDraft

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")


def strip_html(html: str | None) -> str:
    """Remove HTML tags from a product description."""
    if not html:
        return ""
    return _TAG_RE.sub("", html).strip()


class ShopifyClient:
    """Read-only Shopify Admin API client.

    Credentials are supplied at construction; an unconfigured client
    reports ``is_configured == False`` and refuses to fetch.
    """

    # Shopify Admin API version
    API_VERSION = "2024-01"
    # Shopify max page size
    MAX_LIMIT = 250

    def __init__(self, store_url: str, access_token: str, timeout: float = 30.0) -> None:
        self._store_url = store_url.replace("https://", "").replace("http://", "").rstrip("/")
        self._access_token = access_token
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self._store_url and self._access_token)

    def _get_base_url(self) -> str:
        return f"https://{self._store_url}/admin/api/{self.API_VERSION}"

    def _get_headers(self) -> dict[str, str]:
        return {
            "X-Shopify-Access-Token": self._access_token,
            "Content-Type": "application/json",
        }

    async def test_connection(self) -> bool:
        """Check that the store answers with the configured token.

        Returns:
            True if ``shop.json`` returns 200, False otherwise.
        """
        if not self.is_configured:
            return False
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    f"{self._get_base_url()}/shop.json",
                    headers=self._get_headers(),
                )
                return response.status_code == 200
        except httpx.RequestError:
            return False

    async def fetch_products(self, limit: int = MAX_LIMIT) -> list[ProductDraft]:
        """Fetch products and map them to drafts.

        Args:
            limit: Page size, capped at Shopify's maximum of 250.

        Returns:
            One ProductDraft per Shopify product.

        Raises:
            UpstreamError: If the client is unconfigured, the request fails,
                or Shopify answers with a non-200 status.
        """
        if not self.is_configured:
            raise UpstreamError(
                "shopify",
                "configuration missing: SHOPIFY_SHOP_URL and SHOPIFY_ACCESS_TOKEN required",
            )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    f"{self._get_base_url()}/products.json",
                    headers=self._get_headers(),
                    params={"limit": min(limit, self.MAX_LIMIT)},
                )
        except httpx.RequestError as e:
            raise UpstreamError("shopify", f"product fetch failed: {e}") from e

        if response.status_code != 200:
            raise UpstreamError("shopify", f"product fetch returned HTTP {response.status_code}")

        products = response.json().get("products", [])
        drafts = [self._normalize_product(p) for p in products]
        logger.info("Fetched %d products from Shopify", len(drafts))
        return drafts

    def _normalize_product(self, shopify_product: dict) -> ProductDraft:
        """Convert a Shopify product into a ProductDraft.

        A product without an id gets no external id, so every sync inserts it.
        Price, compare-at price and inventory come from the first variant;
        the image from the first image.
        """
        variants = shopify_product.get("variants") or []
        images = shopify_product.get("images") or []
        main_variant = variants[0] if variants else {}
        main_image = images[0] if images else {}

        product_id = shopify_product.get("id")
        raw_tags = shopify_product.get("tags") or ""
        tags = tuple(t.strip() for t in raw_tags.split(",") if t.strip())

        return ProductDraft(
            external_id=str(product_id) if product_id not in (None, "") else None,
            title=shopify_product.get("title", ""),
            description=strip_html(shopify_product.get("body_html")),
            price=main_variant.get("price") or "0",
            compare_at_price=main_variant.get("compare_at_price") or None,
            category=shopify_product.get("product_type") or "General",
            tags=tags,
            inventory=main_variant.get("inventory_quantity") or 0,
            image_url=main_image.get("src") or None,
            is_active=shopify_product.get("status") == "active",
        )
