"""Pytest fixtures for API tests.

Provides a TestClient whose services are swapped for test doubles:
a fresh store, a dispatcher whose background fan-out is recorded instead
of sent, a scripted assistant and a mocked Shopify client.
"""

from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from salesbot.api.dependencies import (
    get_assistant,
    get_broker,
    get_dispatcher,
    get_shopify_client,
    get_store,
)
from salesbot.api.main import app
from salesbot.services.assistant import AssistantReply
from salesbot.services.live_updates import LiveUpdateBroker
from salesbot.services.webhook_dispatcher import WebhookDispatcher
from salesbot.store.memory import EntityStore


@pytest.fixture
def dispatcher(store: EntityStore) -> WebhookDispatcher:
    """Real dispatcher; background fan-out is recorded, not delivered."""
    real = WebhookDispatcher(store, timeout=5.0)
    real.dispatch_in_background = MagicMock(return_value=None)
    return real


@pytest.fixture
def assistant() -> MagicMock:
    fake = MagicMock()
    fake.model = "claude-test"
    fake.reply = AsyncMock(return_value=AssistantReply(message="Hello! How can I help?"))
    return fake


@pytest.fixture
def shopify() -> MagicMock:
    fake = MagicMock()
    fake.is_configured = True
    fake.fetch_products = AsyncMock(return_value=[])
    fake.test_connection = AsyncMock(return_value=True)
    return fake


@pytest.fixture
def broker() -> LiveUpdateBroker:
    return LiveUpdateBroker()


@pytest.fixture
def client(
    store: EntityStore,
    dispatcher: WebhookDispatcher,
    assistant: MagicMock,
    shopify: MagicMock,
    broker: LiveUpdateBroker,
) -> Generator[TestClient, None, None]:
    """Create a TestClient with overridden service dependencies.

    Yields:
        TestClient configured for testing.
    """
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_assistant] = lambda: assistant
    app.dependency_overrides[get_shopify_client] = lambda: shopify
    app.dependency_overrides[get_broker] = lambda: broker
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def scheduled_events(dispatcher: WebhookDispatcher):
    """Names of events handed to dispatch_in_background so far."""

    def _events() -> list[str]:
        return [call.args[0] for call in dispatcher.dispatch_in_background.call_args_list]

    return _events
