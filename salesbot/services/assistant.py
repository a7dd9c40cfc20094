"""Conversational-AI collaborator backed by Claude.

Builds a sales-agent system prompt from the customer's context and the
active catalog, sends the recent conversation, and normalizes the model's
JSON reply into an ``AssistantReply``. Anything the model gets wrong
(missing fields, unknown product ids, out-of-range confidence) is repaired
or dropped here so the chat flow only sees well-formed data.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal

from anthropic import APIError, AsyncAnthropic

from salesbot.config import DEFAULT_MODEL
from salesbot.errors.domain import UpstreamError
from salesbot.store.memory import EntityStore
from salesbot.store.models import (
    Conversation,
    Message,
    MessageRole,
    Order,
    Product,
    RecommendationType,
)

logger = logging.getLogger(__name__)

DEFAULT_GREETING = "I'm here to help! How can I assist you today?"
PROMPT_PRODUCT_LIMIT = 10
_INTENTS = {"product_inquiry", "order_support", "complaint", "general"}
_URGENCIES = {"low", "medium", "high"}
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class SuggestedProduct:
    """A product the model proposes, not yet persisted."""

    product_id: int
    type: str
    confidence: float
    reason: str = ""

    def as_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "type": self.type,
            "confidence": self.confidence,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class AssistantReply:
    message: str
    recommendations: list[SuggestedProduct] = field(default_factory=list)
    intent: str = "general"
    urgency: str = "low"
    should_escalate: bool = False


@dataclass(frozen=True)
class CustomerContext:
    order_history: list[Order]
    lifetime_value: Decimal
    tier: str


def customer_tier(lifetime_value: Decimal) -> str:
    """Gold above 1000 spent, Silver above 500, otherwise Standard."""
    if lifetime_value > 1000:
        return "Gold"
    if lifetime_value > 500:
        return "Silver"
    return "Standard"


def build_customer_context(store: EntityStore, customer_id: str | None) -> CustomerContext | None:
    """Summarize a known customer's order history, or None for guests."""
    if not customer_id:
        return None
    orders = store.list_orders_by_customer(customer_id)
    lifetime = sum((o.total_amount for o in orders), Decimal("0"))
    return CustomerContext(order_history=orders, lifetime_value=lifetime, tier=customer_tier(lifetime))


def build_system_prompt(
    conversation: Conversation,
    products: list[Product],
    customer: CustomerContext | None = None,
) -> str:
    """Render the sales-agent system prompt."""
    tier = customer.tier if customer else "Standard"
    lifetime = customer.lifetime_value if customer else Decimal("0")
    catalog = "\n".join(
        f"- {p.title}: ${p.price} (ID: {p.id}) - {(p.description or 'No description')[:100]}"
        for p in products[:PROMPT_PRODUCT_LIMIT]
    ) or "No products available"

    return f"""You are an expert AI sales agent for an e-commerce platform. Your goal is to help customers find products, increase sales through intelligent cross-selling and up-selling, and provide excellent customer service.

CONTEXT:
- Customer: {conversation.customer_name or 'Guest'}
- Session ID: {conversation.session_id}
- Customer Tier: {tier}
- Lifetime Value: ${lifetime}

AVAILABLE PRODUCTS:
{catalog}

GUIDELINES:
1. Be helpful, friendly, and professional
2. Understand customer needs before recommending products
3. Suggest relevant cross-sells and up-sells naturally
4. Provide specific product recommendations with reasoning
5. Handle order inquiries and support questions
6. Escalate complex issues when needed

RESPONSE FORMAT:
Always respond with a single valid JSON object and nothing else:
{{
  "message": "Your response to the customer",
  "recommendations": [
    {{
      "productId": number,
      "type": "cross_sell" | "upsell" | "primary",
      "confidence": 0.0-1.0,
      "reason": "Why this product is recommended"
    }}
  ],
  "intent": "product_inquiry" | "order_support" | "complaint" | "general",
  "urgency": "low" | "medium" | "high",
  "shouldEscalate": false
}}"""


def _parse_suggestion(raw: dict, known_product_ids: set[int]) -> SuggestedProduct | None:
    try:
        product_id = int(raw.get("productId", raw.get("product_id")))
        confidence = float(raw.get("confidence"))
    except (TypeError, ValueError):
        return None
    rec_type = raw.get("type")
    if product_id not in known_product_ids:
        return None
    if rec_type not in {t.value for t in RecommendationType}:
        return None
    if not 0.0 <= confidence <= 1.0:
        return None
    return SuggestedProduct(
        product_id=product_id,
        type=rec_type,
        confidence=round(confidence, 2),
        reason=str(raw.get("reason") or ""),
    )


def parse_reply(text: str, known_product_ids: set[int]) -> AssistantReply:
    """Normalize the model's raw text into an AssistantReply.

    Text that holds no JSON object becomes the reply message verbatim.

    Args:
        text: Raw model output.
        known_product_ids: Ids the model was allowed to recommend.

    Returns:
        AssistantReply with defaults filled in and invalid suggestions dropped.
    """
    match = _JSON_OBJECT_RE.search(text or "")
    data: dict = {}
    if match:
        try:
            loaded = json.loads(match.group(0))
            if isinstance(loaded, dict):
                data = loaded
        except json.JSONDecodeError:
            logger.warning("Assistant reply was not valid JSON; using raw text")
    if not data:
        return AssistantReply(message=(text or "").strip() or DEFAULT_GREETING)

    suggestions = [
        s for s in (
            _parse_suggestion(r, known_product_ids)
            for r in data.get("recommendations") or []
            if isinstance(r, dict)
        )
        if s is not None
    ]
    intent = data.get("intent")
    urgency = data.get("urgency")
    return AssistantReply(
        message=data.get("message") or DEFAULT_GREETING,
        recommendations=suggestions,
        intent=intent if intent in _INTENTS else "general",
        urgency=urgency if urgency in _URGENCIES else "low",
        should_escalate=bool(data.get("shouldEscalate", data.get("should_escalate", False))),
    )


class ChatAssistant:
    """Async Claude client producing structured sales replies.

    Attributes:
        model: Claude model identifier.
        history_window: Prior messages forwarded with each request.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        history_window: int = 10,
        client: AsyncAnthropic | None = None,
    ) -> None:
        self.model = model
        self.history_window = history_window
        self._client = client

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic()
        return self._client

    def _to_api_messages(self, history: list[Message]) -> list[dict]:
        turns = [
            {"role": m.role, "content": m.content}
            for m in history[-self.history_window:]
            if m.role in (MessageRole.user.value, MessageRole.assistant.value)
        ]
        # The API requires the first turn to come from the user
        while turns and turns[0]["role"] != MessageRole.user.value:
            turns.pop(0)
        return turns

    async def reply(
        self,
        conversation: Conversation,
        history: list[Message],
        products: list[Product],
        customer: CustomerContext | None = None,
    ) -> AssistantReply:
        """Ask the model for the next assistant turn.

        Args:
            conversation: Conversation being answered.
            history: Messages so far, oldest first, ending with the user's turn.
            products: Active catalog offered to the model.
            customer: Optional customer context.

        Returns:
            Normalized AssistantReply.

        Raises:
            UpstreamError: If the Anthropic API call fails.
        """
        messages = self._to_api_messages(history)
        if not messages:
            raise UpstreamError("anthropic", "no user message to answer")

        try:
            response = await self._get_client().messages.create(
                model=self.model,
                max_tokens=1000,
                temperature=0.7,
                system=build_system_prompt(conversation, products, customer),
                messages=messages,
            )
        except APIError as e:
            logger.error("Anthropic API error for conversation %s: %s", conversation.id, e)
            raise UpstreamError("anthropic", str(e)) from e

        text = "".join(
            getattr(block, "text", "") for block in (response.content or [])
        )
        return parse_reply(text, {p.id for p in products[:PROMPT_PRODUCT_LIMIT]})
