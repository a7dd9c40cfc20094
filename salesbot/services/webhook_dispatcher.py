"""Webhook fan-out with per-target isolation.

Given a domain event, the dispatcher builds one envelope, serializes it
once, and delivers the identical bytes to every active subscription that
lists the event. Each target is signed with its own secret and posted
concurrently with an independent timeout. A failing, slow or unreachable
target only marks its own result as failed; siblings and the business
operation that raised the event are unaffected. There is no retry.

Delivery is best-effort: events raised from request handlers are scheduled
with ``dispatch_in_background`` and never awaited by the handler. Only the
explicit test delivery reports its outcome to the caller.

Example:
    dispatcher = WebhookDispatcher(store)
    dispatcher.dispatch_in_background(*dispatcher.order_created(order))
    result = await dispatcher.test_subscription(subscription.id)
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import httpx

from salesbot.config import DEFAULT_USER_AGENT, DEFAULT_WEBHOOK_TIMEOUT
from salesbot.errors.domain import DeliveryError, NotFoundError
from salesbot.services.signature import sign
from salesbot.store.memory import EntityStore
from salesbot.store.models import (
    Conversation,
    Order,
    SubscriptionPatch,
    WebhookSubscription,
    to_money,
)
from salesbot.utils.redaction import sanitize_error_message

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"


class WebhookEvent(str, Enum):
    """Event names emitted to subscribers."""

    conversation_started = "conversation.started"
    conversation_completed = "conversation.completed"
    conversation_escalated = "conversation.escalated"
    order_created = "order.created"
    upsell_success = "upsell.success"
    webhook_test = "webhook.test"


class DeliveryStatus(str, Enum):
    """State of one delivery attempt: PENDING -> DELIVERED | FAILED."""

    pending = "pending"
    delivered = "delivered"
    failed = "failed"


@dataclass
class DeliveryResult:
    """Outcome of delivering one envelope to one subscription."""

    subscription_id: int
    url: str
    event: str
    status: DeliveryStatus = DeliveryStatus.pending
    status_code: int | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == DeliveryStatus.delivered


# Arguments for dispatch()/dispatch_in_background(): (event, data, conversation_id, customer_id)
EventSpec = tuple[str, dict[str, Any], int | None, str | None]


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def build_envelope(
    event: str,
    data: dict[str, Any],
    conversation_id: int | None = None,
    customer_id: str | None = None,
) -> dict[str, Any]:
    """Assemble the envelope delivered to subscribers.

    Optional ids are omitted rather than sent as null.
    """
    envelope: dict[str, Any] = {
        "event": event,
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "data": data,
    }
    if conversation_id is not None:
        envelope["conversationId"] = conversation_id
    if customer_id:
        envelope["customerId"] = customer_id
    return envelope


def serialize_envelope(envelope: dict[str, Any]) -> bytes:
    """Serialize an envelope to the exact bytes that are signed and sent."""
    return json.dumps(envelope, separators=(",", ":"), default=_json_default).encode("utf-8")


def select_subscriptions(
    event: str, subscriptions: list[WebhookSubscription]
) -> list[WebhookSubscription]:
    """Active subscriptions whose event set contains ``event``."""
    return [s for s in subscriptions if s.wants(event)]


class WebhookDispatcher:
    """Fans domain events out to webhook subscriptions.

    Attributes:
        store: Entity store providing subscriptions.
        timeout: Per-delivery timeout in seconds.
        user_agent: User-Agent header on every delivery.
    """

    def __init__(
        self,
        store: EntityStore,
        timeout: float = DEFAULT_WEBHOOK_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.store = store
        self.timeout = timeout
        self.user_agent = user_agent
        self._background: set[asyncio.Task] = set()

    # -- Delivery ----------------------------------------------------------

    async def deliver(
        self, subscription: WebhookSubscription, event: str, body: bytes
    ) -> DeliveryResult:
        """Post one serialized envelope to one subscription.

        Never raises: timeouts, transport errors and non-2xx responses are
        recorded on the returned result.
        """
        result = DeliveryResult(
            subscription_id=subscription.id, url=subscription.url, event=event
        )
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign(body, subscription.secret),
            EVENT_HEADER: event,
            "User-Agent": self.user_agent,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(subscription.url, content=body, headers=headers)
            result.status_code = response.status_code
            if not 200 <= response.status_code < 300:
                raise DeliveryError(
                    response.status_code, f"HTTP {response.status_code}"
                )
            result.status = DeliveryStatus.delivered
            logger.info(
                "Webhook %s delivered %s (HTTP %s)",
                subscription.id, event, response.status_code,
            )
        except DeliveryError as e:
            result.status = DeliveryStatus.failed
            result.error = e.message
            logger.warning("Webhook %s rejected %s: %s", subscription.id, event, e.message)
        except httpx.TimeoutException:
            result.status = DeliveryStatus.failed
            result.error = f"Timed out after {self.timeout:g}s"
            logger.warning("Webhook %s timed out delivering %s", subscription.id, event)
        except httpx.HTTPError as e:
            result.status = DeliveryStatus.failed
            result.error = sanitize_error_message(f"{type(e).__name__}: {e}")
            logger.warning("Webhook %s transport error for %s: %s", subscription.id, event, e)
        except Exception as e:
            result.status = DeliveryStatus.failed
            result.error = sanitize_error_message(f"{type(e).__name__}: {e}")
            logger.warning(
                "Webhook %s unexpected error for %s: %s",
                subscription.id, event, e, exc_info=True,
            )
        return result

    async def dispatch(
        self,
        event: str,
        data: dict[str, Any],
        conversation_id: int | None = None,
        customer_id: str | None = None,
        subscriptions: list[WebhookSubscription] | None = None,
    ) -> list[DeliveryResult]:
        """Deliver an event to every interested subscription and wait for all.

        Args:
            event: Event name.
            data: Event-specific payload.
            conversation_id: Optional conversation the event belongs to.
            customer_id: Optional customer the event belongs to.
            subscriptions: Candidate set; defaults to the store's subscriptions.

        Returns:
            One DeliveryResult per selected subscription.
        """
        if subscriptions is None:
            subscriptions = self.store.list_active_subscriptions()
        targets = select_subscriptions(event, subscriptions)
        if not targets:
            return []

        body = serialize_envelope(build_envelope(event, data, conversation_id, customer_id))
        results = await asyncio.gather(
            *(self.deliver(target, event, body) for target in targets)
        )
        delivered = sum(1 for r in results if r.success)
        logger.info("Event %s fanned out: %d/%d delivered", event, delivered, len(results))
        return list(results)

    def dispatch_in_background(
        self,
        event: str,
        data: dict[str, Any],
        conversation_id: int | None = None,
        customer_id: str | None = None,
    ) -> asyncio.Task | None:
        """Schedule ``dispatch`` without waiting for it.

        The subscription set is captured now, so a subscription deleted after
        this call still receives this event. Returns None when no
        subscription is interested.
        """
        targets = select_subscriptions(event, self.store.list_active_subscriptions())
        if not targets:
            return None
        task = asyncio.create_task(
            self.dispatch(event, data, conversation_id, customer_id, subscriptions=targets)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled background fan-out to settle."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def test_subscription(self, subscription_id: int) -> DeliveryResult:
        """Send a ``webhook.test`` event to one subscription and report the outcome.

        Inactive subscriptions are still tested. On success the
        subscription's ``last_triggered`` is stamped.

        Raises:
            NotFoundError: If the subscription does not exist.
        """
        subscription = self.store.get_subscription(subscription_id)
        if subscription is None:
            raise NotFoundError("Webhook", subscription_id)

        event = WebhookEvent.webhook_test.value
        body = serialize_envelope(build_envelope(event, {
            "test": True,
            "message": "This is a test webhook from SalesBot AI",
            "webhookId": subscription.id,
        }))
        result = await self.deliver(subscription, event, body)
        if result.success:
            self.store.update_subscription(
                subscription_id, SubscriptionPatch(last_triggered=datetime.now(UTC))
            )
        return result

    # -- Event builders ----------------------------------------------------
    # Each returns an EventSpec to pass to dispatch() or dispatch_in_background().

    @staticmethod
    def conversation_started(conversation: Conversation) -> EventSpec:
        return (
            WebhookEvent.conversation_started.value,
            {
                "conversationId": conversation.id,
                "sessionId": conversation.session_id,
                "customerId": conversation.customer_id,
                "customerName": conversation.customer_name,
                "context": conversation.context,
            },
            conversation.id,
            conversation.customer_id,
        )

    @staticmethod
    def conversation_completed(conversation: Conversation) -> EventSpec:
        return (
            WebhookEvent.conversation_completed.value,
            {
                "conversationId": conversation.id,
                "sessionId": conversation.session_id,
                "customerId": conversation.customer_id,
                "status": conversation.status,
                "context": conversation.context,
            },
            conversation.id,
            conversation.customer_id,
        )

    @staticmethod
    def conversation_escalated(conversation: Conversation, reason: str) -> EventSpec:
        return (
            WebhookEvent.conversation_escalated.value,
            {
                "conversationId": conversation.id,
                "sessionId": conversation.session_id,
                "customerId": conversation.customer_id,
                "customerName": conversation.customer_name,
                "reason": reason,
                "context": conversation.context,
            },
            conversation.id,
            conversation.customer_id,
        )

    @staticmethod
    def order_created(order: Order) -> EventSpec:
        return (
            WebhookEvent.order_created.value,
            {
                "orderId": order.id,
                "externalId": order.external_id,
                "customerId": order.customer_id,
                "customerEmail": order.customer_email,
                "totalAmount": order.total_amount,
                "currency": order.currency,
                "source": order.source,
                "lineItems": order.line_items,
            },
            order.conversation_id,
            order.customer_id,
        )

    @staticmethod
    def upsell_success(order: Order, original_value: Decimal) -> EventSpec:
        original = to_money(original_value)
        return (
            WebhookEvent.upsell_success.value,
            {
                "orderId": order.id,
                "customerId": order.customer_id,
                "originalValue": original,
                "finalValue": order.total_amount,
                "upliftAmount": order.total_amount - original,
                "source": order.source,
            },
            order.conversation_id,
            order.customer_id,
        )
