"""FastAPI dependency providers.

The lifespan in ``salesbot.api.main`` builds one instance of each service
and parks it on ``app.state``; these providers hand them to routes. Tests
swap any of them through ``app.dependency_overrides``.
"""

from fastapi import Depends, Request

from salesbot.config import AppConfig
from salesbot.services.assistant import ChatAssistant
from salesbot.services.chat_service import ChatService
from salesbot.services.live_updates import LiveUpdateBroker
from salesbot.services.product_sync import ProductSynchronizer
from salesbot.services.shopify_client import ShopifyClient
from salesbot.services.webhook_dispatcher import WebhookDispatcher
from salesbot.store.memory import EntityStore


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_store(request: Request) -> EntityStore:
    return request.app.state.store


def get_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.dispatcher


def get_assistant(request: Request) -> ChatAssistant:
    return request.app.state.assistant


def get_broker(request: Request) -> LiveUpdateBroker:
    return request.app.state.broker


def get_shopify_client(request: Request) -> ShopifyClient:
    return request.app.state.shopify


def get_chat_service(
    store: EntityStore = Depends(get_store),
    assistant: ChatAssistant = Depends(get_assistant),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
    broker: LiveUpdateBroker = Depends(get_broker),
) -> ChatService:
    """Dependency injector for ChatService."""
    return ChatService(store, assistant, dispatcher, broker)


def get_synchronizer(
    store: EntityStore = Depends(get_store),
    shopify: ShopifyClient = Depends(get_shopify_client),
) -> ProductSynchronizer:
    """Dependency injector for ProductSynchronizer."""
    return ProductSynchronizer(store, shopify)
