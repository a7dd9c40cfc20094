"""In-memory entity store and its record types."""

from salesbot.store.memory import EntityStore
from salesbot.store.metrics import DashboardMetrics, ProductRecommendationStats
from salesbot.store.models import (
    UNSET,
    Conversation,
    ConversationDraft,
    ConversationPatch,
    ConversationStatus,
    Message,
    MessageDraft,
    MessageRole,
    Order,
    OrderDraft,
    OrderPatch,
    Product,
    ProductDraft,
    ProductPatch,
    Recommendation,
    RecommendationDraft,
    RecommendationPatch,
    RecommendationType,
    SubscriptionDraft,
    SubscriptionPatch,
    WebhookSubscription,
)

__all__ = [
    "EntityStore",
    "DashboardMetrics",
    "ProductRecommendationStats",
    "UNSET",
    "Conversation",
    "ConversationDraft",
    "ConversationPatch",
    "ConversationStatus",
    "Message",
    "MessageDraft",
    "MessageRole",
    "Order",
    "OrderDraft",
    "OrderPatch",
    "Product",
    "ProductDraft",
    "ProductPatch",
    "Recommendation",
    "RecommendationDraft",
    "RecommendationPatch",
    "RecommendationType",
    "SubscriptionDraft",
    "SubscriptionPatch",
    "WebhookSubscription",
]
