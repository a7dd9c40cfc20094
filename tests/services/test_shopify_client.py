"""Test the Shopify catalog client."""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from salesbot.errors.domain import UpstreamError
from salesbot.services.shopify_client import ShopifyClient, strip_html

SHOPIFY_PRODUCT = {
    "id": 632910392,
    "title": "IPod Nano - 8GB",
    "body_html": "<p>It's the <strong>small</strong> iPod.</p>",
    "product_type": "Cult Products",
    "tags": "Emotive, Flash Memory, MP3",
    "status": "active",
    "variants": [
        {"price": "199.00", "compare_at_price": "249.00", "inventory_quantity": 10},
        {"price": "209.00", "compare_at_price": None, "inventory_quantity": 3},
    ],
    "images": [{"src": "https://cdn.shopify.com/ipod-nano.png"}],
}


@pytest.fixture
def client() -> ShopifyClient:
    return ShopifyClient("https://mystore.myshopify.com/", "shpat_test_token")


class TestShopifyClientInit:
    """Configuration handling."""

    def test_store_url_normalized(self, client):
        assert client._get_base_url() == "https://mystore.myshopify.com/admin/api/2024-01"

    def test_unconfigured(self):
        assert ShopifyClient("", "").is_configured is False

    @pytest.mark.asyncio
    async def test_unconfigured_fetch_raises(self):
        with pytest.raises(UpstreamError, match="configuration missing"):
            await ShopifyClient("", "").fetch_products()

    @pytest.mark.asyncio
    async def test_unconfigured_connection_test_is_false(self):
        assert await ShopifyClient("", "").test_connection() is False


class TestFetchProducts:
    """Product fetch and normalization."""

    @pytest.mark.asyncio
    async def test_maps_first_variant_and_image(self, client, http_response):
        with patch.object(httpx.AsyncClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = http_response(200, {"products": [SHOPIFY_PRODUCT]})
            drafts = await client.fetch_products()

        assert len(drafts) == 1
        draft = drafts[0]
        assert draft.external_id == "632910392"
        assert draft.title == "IPod Nano - 8GB"
        assert draft.description == "It's the small iPod."
        assert draft.price == Decimal("199.00")
        assert draft.compare_at_price == Decimal("249.00")
        assert draft.inventory == 10
        assert draft.category == "Cult Products"
        assert draft.tags == ("Emotive", "Flash Memory", "MP3")
        assert draft.image_url == "https://cdn.shopify.com/ipod-nano.png"
        assert draft.is_active is True

    @pytest.mark.asyncio
    async def test_sends_token_and_limit(self, client, http_response):
        with patch.object(httpx.AsyncClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = http_response(200, {"products": []})
            await client.fetch_products(limit=1000)

        call = mock_get.call_args
        assert call.args[0].endswith("/products.json")
        assert call.kwargs["headers"]["X-Shopify-Access-Token"] == "shpat_test_token"
        assert call.kwargs["params"] == {"limit": 250}

    @pytest.mark.asyncio
    async def test_minimal_product_defaults(self, client, http_response):
        bare = {"id": 1, "title": "Bare", "status": "draft"}
        with patch.object(httpx.AsyncClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = http_response(200, {"products": [bare]})
            (draft,) = await client.fetch_products()

        assert draft.price == Decimal("0.00")
        assert draft.category == "General"
        assert draft.tags == ()
        assert draft.inventory == 0
        assert draft.image_url is None
        assert draft.is_active is False

    @pytest.mark.asyncio
    async def test_missing_id_maps_to_no_external_id(self, client, http_response):
        with patch.object(httpx.AsyncClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = http_response(200, {"products": [
                {"title": "No id"}, {"id": "", "title": "Empty id"},
            ]})
            drafts = await client.fetch_products()

        assert [d.external_id for d in drafts] == [None, None]

    @pytest.mark.asyncio
    async def test_non_200_raises(self, client, http_response):
        with patch.object(httpx.AsyncClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = http_response(401)
            with pytest.raises(UpstreamError, match="HTTP 401"):
                await client.fetch_products()

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, client):
        with patch.object(httpx.AsyncClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = httpx.ConnectError("connection refused")
            with pytest.raises(UpstreamError, match="shopify request failed"):
                await client.fetch_products()

    @pytest.mark.asyncio
    async def test_connection_check(self, client, http_response):
        with patch.object(httpx.AsyncClient, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = http_response(200, {"shop": {"id": 1}})
            assert await client.test_connection() is True


def test_strip_html():
    assert strip_html("<p>Hello <b>world</b></p>") == "Hello world"
    assert strip_html(None) == ""
