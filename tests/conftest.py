"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- A fresh in-memory EntityStore per test
- Product and subscription factories
- Fake httpx responses for mocked outbound calls
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from salesbot.services.signature import new_secret
from salesbot.store.memory import EntityStore
from salesbot.store.models import ProductDraft, SubscriptionDraft


@pytest.fixture
def store() -> EntityStore:
    """Empty store; ids start at 1."""
    return EntityStore()


@pytest.fixture
def make_product(store: EntityStore):
    """Factory inserting a product into the store."""

    def _make(title: str = "Widget", price: str = "19.99", **kwargs):
        return store.create_product(ProductDraft(title=title, price=Decimal(price), **kwargs))

    return _make


@pytest.fixture
def make_subscription(store: EntityStore):
    """Factory inserting a webhook subscription with a fresh secret."""

    def _make(url: str = "https://hooks.example.com/a", events=("order.created",), **kwargs):
        kwargs.setdefault("secret", new_secret())
        return store.create_subscription(SubscriptionDraft(url=url, events=tuple(events), **kwargs))

    return _make


@pytest.fixture
def http_response():
    """Factory for MagicMocks standing in for an httpx.Response."""

    def _make(status_code: int = 200, json_data: dict | None = None) -> MagicMock:
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = json_data or {}
        response.text = ""
        return response

    return _make
