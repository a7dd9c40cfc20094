"""In-memory entity store: the single source of truth for all records.

Holds one dict per entity kind and a single id counter shared by every
kind. One store instance is built at application start and handed to
request handlers; nothing survives a restart.

Concurrency: FastAPI runs sync dependencies and routes in a thread pool,
so every read-modify-write runs under one store-wide ``RLock``. Updates are
last-write-wins; there is no version check.

Example:
    store = EntityStore()
    conv, created = store.get_or_create_conversation(ConversationDraft(session_id="s1"))
    store.create_message(MessageDraft(conversation_id=conv.id, role="user", content="hi"))
"""

import itertools
import logging
import threading
from collections import Counter
from dataclasses import fields

from salesbot.errors.domain import ConflictError, ValidationError
from salesbot.store.metrics import (
    DashboardMetrics,
    ProductRecommendationStats,
    compute_metrics,
    rank_recommended_products,
)
from salesbot.store.models import (
    UNSET,
    Conversation,
    ConversationDraft,
    ConversationPatch,
    ConversationStatus,
    Message,
    MessageDraft,
    Order,
    OrderDraft,
    OrderPatch,
    Product,
    ProductDraft,
    ProductPatch,
    Recommendation,
    RecommendationDraft,
    RecommendationPatch,
    SubscriptionDraft,
    SubscriptionPatch,
    WebhookSubscription,
    apply_patch,
    utc_now,
)

logger = logging.getLogger(__name__)


def _draft_values(draft) -> dict:
    return {f.name: getattr(draft, f.name) for f in fields(draft)}


class EntityStore:
    """Keyed repository for conversations, messages, products, orders,
    recommendations and webhook subscriptions.

    Lookups return ``None`` when nothing matches; they never raise.
    Relationship queries scan the owning collection and filter on the
    foreign id; no secondary index is kept.
    """

    def __init__(self) -> None:
        self._conversations: dict[int, Conversation] = {}
        self._messages: dict[int, Message] = {}
        self._products: dict[int, Product] = {}
        self._orders: dict[int, Order] = {}
        self._recommendations: dict[int, Recommendation] = {}
        self._subscriptions: dict[int, WebhookSubscription] = {}
        self._ids = itertools.count(1)
        self._api_metrics: Counter[str] = Counter()
        self._lock = threading.RLock()

    def _next_id(self) -> int:
        return next(self._ids)

    # -- Conversations -----------------------------------------------------

    def get_conversation(self, conversation_id: int) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def get_conversation_by_session_id(self, session_id: str) -> Conversation | None:
        with self._lock:
            return next(
                (c for c in self._conversations.values() if c.session_id == session_id),
                None,
            )

    def create_conversation(self, draft: ConversationDraft) -> Conversation:
        """Store a new conversation.

        Raises:
            ConflictError: If a conversation already exists for the session id.
        """
        with self._lock:
            if self.get_conversation_by_session_id(draft.session_id) is not None:
                raise ConflictError(
                    f"Conversation for session '{draft.session_id}' already exists"
                )
            now = utc_now()
            conversation = Conversation(
                id=self._next_id(),
                created_at=now,
                updated_at=now,
                **_draft_values(draft),
            )
            self._conversations[conversation.id] = conversation
            logger.debug("Created conversation %s for session %s", conversation.id, draft.session_id)
            return conversation

    def get_or_create_conversation(
        self, draft: ConversationDraft
    ) -> tuple[Conversation, bool]:
        """Return the session's conversation, creating it from ``draft`` if absent.

        The lookup and the insert happen under one lock acquisition.

        Returns:
            Tuple of (conversation, created).
        """
        with self._lock:
            existing = self.get_conversation_by_session_id(draft.session_id)
            if existing is not None:
                return existing, False
            return self.create_conversation(draft), True

    def update_conversation(
        self, conversation_id: int, patch: ConversationPatch
    ) -> Conversation | None:
        with self._lock:
            current = self._conversations.get(conversation_id)
            if current is None:
                return None
            updated = apply_patch(current, patch, updated_at=utc_now())
            self._conversations[conversation_id] = updated
            return updated

    def list_conversations(self) -> list[Conversation]:
        with self._lock:
            return list(self._conversations.values())

    def list_active_conversations(self) -> list[Conversation]:
        with self._lock:
            return [
                c for c in self._conversations.values()
                if c.status == ConversationStatus.active.value
            ]

    def list_conversations_by_customer(self, customer_id: str) -> list[Conversation]:
        with self._lock:
            return [c for c in self._conversations.values() if c.customer_id == customer_id]

    # -- Messages ----------------------------------------------------------

    def get_message(self, message_id: int) -> Message | None:
        return self._messages.get(message_id)

    def create_message(self, draft: MessageDraft) -> Message:
        """Append a message to an existing conversation.

        Raises:
            ValidationError: If the owning conversation does not exist.
        """
        with self._lock:
            if draft.conversation_id not in self._conversations:
                raise ValidationError(
                    f"Message references unknown conversation {draft.conversation_id}"
                )
            message = Message(id=self._next_id(), timestamp=utc_now(), **_draft_values(draft))
            self._messages[message.id] = message
            return message

    def list_messages(self, conversation_id: int) -> list[Message]:
        """Messages of one conversation, oldest first."""
        with self._lock:
            found = [m for m in self._messages.values() if m.conversation_id == conversation_id]
        return sorted(found, key=lambda m: (m.timestamp, m.id))

    def recent_messages(self, limit: int = 50) -> list[Message]:
        """Most recent messages across all conversations, newest first."""
        with self._lock:
            found = list(self._messages.values())
        found.sort(key=lambda m: (m.timestamp, m.id), reverse=True)
        return found[: max(limit, 0)]

    # -- Products ----------------------------------------------------------

    def get_product(self, product_id: int) -> Product | None:
        return self._products.get(product_id)

    def get_product_by_external_id(self, external_id: str) -> Product | None:
        if not external_id:
            return None
        with self._lock:
            return next(
                (p for p in self._products.values() if p.external_id == external_id),
                None,
            )

    def list_products(self) -> list[Product]:
        with self._lock:
            return list(self._products.values())

    def list_active_products(self) -> list[Product]:
        with self._lock:
            return [p for p in self._products.values() if p.is_active]

    def create_product(self, draft: ProductDraft) -> Product:
        with self._lock:
            product = Product(id=self._next_id(), synced_at=utc_now(), **_draft_values(draft))
            self._products[product.id] = product
            return product

    def update_product(self, product_id: int, patch: ProductPatch) -> Product | None:
        """Merge ``patch`` onto a product and refresh its sync timestamp."""
        with self._lock:
            current = self._products.get(product_id)
            if current is None:
                return None
            updated = apply_patch(current, patch, synced_at=utc_now())
            self._products[product_id] = updated
            return updated

    def search_products(self, query: str) -> list[Product]:
        """Case-insensitive substring match on title, description or category."""
        needle = query.lower()
        with self._lock:
            return [
                p for p in self._products.values()
                if needle in p.title.lower()
                or (p.description and needle in p.description.lower())
                or (p.category and needle in p.category.lower())
            ]

    def list_products_by_category(self, category: str) -> list[Product]:
        with self._lock:
            return [p for p in self._products.values() if p.category == category]

    def sync_products(self, drafts: list[ProductDraft]) -> list[Product]:
        """Upsert products by external id.

        A draft whose external id matches a stored product overwrites every
        field of that product; any other draft is inserted. Drafts without an
        external id are locally originated and always inserted. Applying the
        same list twice yields the same records (only ``synced_at`` moves).

        Args:
            drafts: Incoming product drafts.

        Returns:
            The resulting products, in input order.
        """
        results: list[Product] = []
        with self._lock:
            for draft in drafts:
                existing = self.get_product_by_external_id(draft.external_id)
                if existing is not None:
                    results.append(
                        self.update_product(existing.id, ProductPatch.from_draft(draft))
                    )
                else:
                    results.append(self.create_product(draft))
        return results

    # -- Orders ------------------------------------------------------------

    def get_order(self, order_id: int) -> Order | None:
        return self._orders.get(order_id)

    def get_order_by_external_id(self, external_id: str) -> Order | None:
        if not external_id:
            return None
        with self._lock:
            return next(
                (o for o in self._orders.values() if o.external_id == external_id),
                None,
            )

    def _check_order_external_id(self, external_id: str | None, order_id: int | None) -> None:
        holder = self.get_order_by_external_id(external_id)
        if holder is not None and holder.id != order_id:
            raise ConflictError(
                f"Order with external id '{external_id}' already exists (order {holder.id})"
            )

    def create_order(self, draft: OrderDraft) -> Order:
        """Insert an order.

        Raises:
            ConflictError: If another order already has the external id.
        """
        with self._lock:
            self._check_order_external_id(draft.external_id, None)
            now = utc_now()
            order = Order(id=self._next_id(), created_at=now, updated_at=now, **_draft_values(draft))
            self._orders[order.id] = order
            return order

    def update_order(self, order_id: int, patch: OrderPatch) -> Order | None:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                return None
            if patch.external_id is not UNSET:
                self._check_order_external_id(patch.external_id, order_id)
            updated = apply_patch(current, patch, updated_at=utc_now())
            self._orders[order_id] = updated
            return updated

    def list_orders(self) -> list[Order]:
        with self._lock:
            return list(self._orders.values())

    def list_orders_by_customer(self, customer_id: str) -> list[Order]:
        with self._lock:
            return [o for o in self._orders.values() if o.customer_id == customer_id]

    def list_orders_by_conversation(self, conversation_id: int) -> list[Order]:
        with self._lock:
            return [o for o in self._orders.values() if o.conversation_id == conversation_id]

    def recent_orders(self, limit: int = 50) -> list[Order]:
        """Most recently created orders, newest first."""
        with self._lock:
            found = list(self._orders.values())
        found.sort(key=lambda o: (o.created_at, o.id), reverse=True)
        return found[: max(limit, 0)]

    # -- Recommendations ---------------------------------------------------

    def get_recommendation(self, recommendation_id: int) -> Recommendation | None:
        return self._recommendations.get(recommendation_id)

    def create_recommendation(self, draft: RecommendationDraft) -> Recommendation:
        with self._lock:
            rec = Recommendation(id=self._next_id(), created_at=utc_now(), **_draft_values(draft))
            self._recommendations[rec.id] = rec
            return rec

    def update_recommendation(
        self, recommendation_id: int, patch: RecommendationPatch
    ) -> Recommendation | None:
        with self._lock:
            current = self._recommendations.get(recommendation_id)
            if current is None:
                return None
            updated = apply_patch(current, patch)
            self._recommendations[recommendation_id] = updated
            return updated

    def list_recommendations_by_conversation(self, conversation_id: int) -> list[Recommendation]:
        with self._lock:
            return [
                r for r in self._recommendations.values()
                if r.conversation_id == conversation_id
            ]

    def top_recommended_products(self, limit: int = 10) -> list[ProductRecommendationStats]:
        """Products ranked by how often they were recommended."""
        with self._lock:
            recommendations = list(self._recommendations.values())
            products = dict(self._products)
        return rank_recommended_products(recommendations, products, limit)

    # -- Webhook subscriptions ---------------------------------------------

    def get_subscription(self, subscription_id: int) -> WebhookSubscription | None:
        return self._subscriptions.get(subscription_id)

    def list_subscriptions(self) -> list[WebhookSubscription]:
        with self._lock:
            return list(self._subscriptions.values())

    def list_active_subscriptions(self) -> list[WebhookSubscription]:
        with self._lock:
            return [s for s in self._subscriptions.values() if s.is_active]

    def create_subscription(self, draft: SubscriptionDraft) -> WebhookSubscription:
        with self._lock:
            subscription = WebhookSubscription(
                id=self._next_id(), created_at=utc_now(), **_draft_values(draft)
            )
            self._subscriptions[subscription.id] = subscription
            logger.info(
                "Created webhook subscription %s -> %s for events %s",
                subscription.id, subscription.url, ", ".join(subscription.events),
            )
            return subscription

    def update_subscription(
        self, subscription_id: int, patch: SubscriptionPatch
    ) -> WebhookSubscription | None:
        with self._lock:
            current = self._subscriptions.get(subscription_id)
            if current is None:
                return None
            updated = apply_patch(current, patch)
            self._subscriptions[subscription_id] = updated
            return updated

    def delete_subscription(self, subscription_id: int) -> bool:
        """Remove a subscription. Returns False if it did not exist."""
        with self._lock:
            return self._subscriptions.pop(subscription_id, None) is not None

    # -- Analytics ---------------------------------------------------------

    def get_metrics(self) -> DashboardMetrics:
        with self._lock:
            conversations = list(self._conversations.values())
            orders = list(self._orders.values())
        return compute_metrics(conversations, orders)

    def record_api_metric(self, service: str, endpoint: str | None = None) -> None:
        """Count one call to an outward-facing service endpoint."""
        key = f"{service}:{endpoint}" if endpoint else service
        with self._lock:
            self._api_metrics[key] += 1
        logger.debug("API metric recorded: %s", key)

    def api_metrics(self) -> dict[str, int]:
        with self._lock:
            return dict(self._api_metrics)
