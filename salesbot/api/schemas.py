"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the SalesBot REST API:
conversations and chat, products, orders, webhook subscriptions and
dashboard analytics. Money and confidence values are Decimals and
serialize as strings with two fraction digits.
"""

from datetime import datetime
from decimal import Decimal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from salesbot.services.webhook_dispatcher import WebhookEvent
from salesbot.store.models import ConversationStatus, RecommendationType

_EVENT_NAMES = {e.value for e in WebhookEvent}


def _validate_target_url(v: str) -> str:
    parsed = urlparse(v.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("url must be an absolute http(s) URL")
    return v.strip()


def _validate_events(v: list[str]) -> list[str]:
    unknown = [e for e in v if e not in _EVENT_NAMES]
    if unknown:
        raise ValueError(
            f"Unknown event(s): {', '.join(unknown)}. "
            f"Valid events: {', '.join(sorted(_EVENT_NAMES))}"
        )
    # Preserve order, drop duplicates
    return list(dict.fromkeys(v))


# Conversation schemas


class MessageResponse(BaseModel):
    """Response schema for one conversation message."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: int
    role: str
    content: str
    metadata: dict | None = None
    timestamp: datetime


class RecommendationResponse(BaseModel):
    """Response schema for a stored recommendation."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: int
    product_id: int
    type: RecommendationType
    confidence: Decimal
    reason: str | None = None
    presented: bool
    accepted: bool
    created_at: datetime


class ConversationResponse(BaseModel):
    """Response schema for a conversation record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: str
    customer_id: str | None = None
    customer_name: str | None = None
    status: str
    last_message: str | None = None
    context: dict | None = None
    created_at: datetime
    updated_at: datetime


class ConversationSummaryResponse(ConversationResponse):
    """Conversation list entry with message count and latest message."""

    message_count: int = 0
    latest_message: MessageResponse | None = None


class ConversationDetailResponse(BaseModel):
    """Conversation with its full message history and recommendations."""

    conversation: ConversationResponse
    messages: list[MessageResponse]
    recommendations: list[RecommendationResponse]


class ConversationUpdate(BaseModel):
    """Request schema for patching a conversation. Unset fields are kept."""

    status: ConversationStatus | None = None
    customer_id: str | None = None
    customer_name: str | None = Field(None, max_length=200)
    context: dict | None = None


class ChatMessageRequest(BaseModel):
    """Request schema for sending a customer message."""

    message: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1, max_length=200)
    customer_id: str | None = None
    customer_name: str | None = Field(None, max_length=200)
    context: dict | None = None

    @field_validator("message", "session_id")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class SuggestedProductResponse(BaseModel):
    """A recommendation as returned alongside a chat reply."""

    model_config = ConfigDict(from_attributes=True)

    product_id: int
    type: str
    confidence: float
    reason: str = ""


class ChatMessageResponse(BaseModel):
    """Response schema for a chat turn."""

    conversation_id: int
    session_id: str
    message_id: int
    message: str
    recommendations: list[SuggestedProductResponse] = Field(default_factory=list)
    intent: str
    urgency: str
    escalated: bool


class InboundChatResponse(BaseModel):
    """Response schema for the signed inbound chat webhook."""

    response: str
    recommendations: list[SuggestedProductResponse] = Field(default_factory=list)
    session_id: str
    conversation_id: int


# Product schemas


class ProductResponse(BaseModel):
    """Response schema for a product."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: str | None = None
    title: str
    description: str | None = None
    price: Decimal
    compare_at_price: Decimal | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    inventory: int
    image_url: str | None = None
    is_active: bool
    synced_at: datetime


class ProductSyncResponse(BaseModel):
    """Response schema for a catalog sync."""

    message: str
    count: int
    created: int
    updated: int
    products: list[ProductResponse]


# Order schemas


class OrderCreate(BaseModel):
    """Request schema for recording an order.

    ``original_value`` is the cart value before an upsell; when present on
    an order with source ``upsell`` an ``upsell.success`` event fires.
    """

    total_amount: Decimal = Field(..., ge=0)
    status: str = Field("pending", min_length=1, max_length=50)
    external_id: str | None = None
    conversation_id: int | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    currency: str = Field("USD", min_length=3, max_length=3)
    line_items: list | None = None
    source: str = "ai_chatbot"
    original_value: Decimal | None = Field(None, ge=0)


class OrderUpdate(BaseModel):
    """Request schema for patching an order. Unset fields are kept."""

    status: str | None = Field(None, min_length=1, max_length=50)
    external_id: str | None = None
    customer_email: str | None = None
    total_amount: Decimal | None = Field(None, ge=0)
    line_items: list | None = None


class OrderResponse(BaseModel):
    """Response schema for an order."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: str | None = None
    conversation_id: int | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    status: str
    total_amount: Decimal
    currency: str
    line_items: list | None = None
    source: str
    created_at: datetime
    updated_at: datetime


# Webhook subscription schemas


class WebhookCreate(BaseModel):
    """Request schema for creating a webhook subscription."""

    url: str = Field(..., min_length=1, max_length=2048)
    events: list[str] = Field(..., min_length=1)
    description: str | None = Field(None, max_length=500)

    @field_validator("url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        return _validate_target_url(v)

    @field_validator("events")
    @classmethod
    def _check_events(cls, v: list[str]) -> list[str]:
        return _validate_events(v)


class WebhookUpdate(BaseModel):
    """Request schema for patching a webhook subscription."""

    url: str | None = Field(None, min_length=1, max_length=2048)
    events: list[str] | None = Field(None, min_length=1)
    description: str | None = Field(None, max_length=500)
    is_active: bool | None = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, v: str | None) -> str | None:
        return _validate_target_url(v) if v is not None else None

    @field_validator("events")
    @classmethod
    def _check_events(cls, v: list[str] | None) -> list[str] | None:
        return _validate_events(v) if v is not None else None


class WebhookResponse(BaseModel):
    """Response schema for a subscription; ``secret`` is masked."""

    id: int
    url: str
    events: list[str]
    secret: str
    is_active: bool
    description: str | None = None
    last_triggered: datetime | None = None
    created_at: datetime


class WebhookCreatedResponse(WebhookResponse):
    """Creation response: the only place the cleartext secret is returned."""


class WebhookTestResponse(BaseModel):
    """Response schema for a synchronous test delivery."""

    success: bool
    message: str
    status_code: int | None = None


# Analytics schemas


class DashboardMetricsResponse(BaseModel):
    """Response schema for dashboard metrics."""

    model_config = ConfigDict(from_attributes=True)

    active_conversations: int
    total_conversations: int
    conversion_rate: float
    total_revenue: Decimal
    average_order_value: Decimal
    total_orders: int


class RecommendedProductResponse(BaseModel):
    """A product with its recommendation count and acceptance rate."""

    model_config = ConfigDict(from_attributes=True)

    product: ProductResponse
    recommendations: int
    success_rate: float
