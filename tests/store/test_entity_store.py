"""Tests for the in-memory EntityStore."""

import threading
from decimal import Decimal

import pytest

from salesbot.errors.domain import ConflictError, ValidationError
from salesbot.store.memory import EntityStore
from salesbot.store.models import (
    ConversationDraft,
    ConversationPatch,
    MessageDraft,
    OrderDraft,
    OrderPatch,
    ProductPatch,
    RecommendationDraft,
    RecommendationPatch,
    SubscriptionPatch,
)


class TestIdentifiers:
    """Ids come from one counter shared by every entity kind."""

    def test_ids_are_global_across_kinds(self, store: EntityStore, make_product):
        conv = store.create_conversation(ConversationDraft(session_id="s1"))
        product = make_product()
        msg = store.create_message(MessageDraft(conversation_id=conv.id, role="user", content="hi"))

        assert [conv.id, product.id, msg.id] == [1, 2, 3]

    def test_lookup_of_missing_id_returns_none(self, store: EntityStore):
        assert store.get_conversation(99) is None
        assert store.get_product(99) is None
        assert store.get_order(99) is None
        assert store.get_subscription(99) is None
        assert store.update_order(99, OrderPatch(status="shipped")) is None


class TestConversations:
    """Conversation creation, session uniqueness and updates."""

    def test_message_flow_for_new_session(self, store: EntityStore):
        """One conversation and one user message after the first 'hello'."""
        conv, created = store.get_or_create_conversation(ConversationDraft(session_id="s1"))
        store.create_message(MessageDraft(conversation_id=conv.id, role="user", content="hello"))

        assert created is True
        assert len(store.list_conversations()) == 1
        assert conv.status == "active"
        messages = store.list_messages(conv.id)
        assert len(messages) == 1
        assert messages[0].role == "user"
        assert messages[0].content == "hello"

    def test_second_message_reuses_session_conversation(self, store: EntityStore):
        first, _ = store.get_or_create_conversation(ConversationDraft(session_id="s1"))
        second, created = store.get_or_create_conversation(ConversationDraft(session_id="s1"))

        assert created is False
        assert second.id == first.id
        assert len(store.list_conversations()) == 1

    def test_duplicate_session_create_conflicts(self, store: EntityStore):
        store.create_conversation(ConversationDraft(session_id="s1"))
        with pytest.raises(ConflictError):
            store.create_conversation(ConversationDraft(session_id="s1"))

    def test_empty_session_id_rejected(self):
        with pytest.raises(ValueError):
            ConversationDraft(session_id="")

    def test_update_merges_only_set_fields(self, store: EntityStore):
        conv = store.create_conversation(ConversationDraft(
            session_id="s1", customer_name="Ada", context={"page": "home"}
        ))
        updated = store.update_conversation(conv.id, ConversationPatch(status="escalated"))

        assert updated.status == "escalated"
        assert updated.customer_name == "Ada"
        assert updated.context == {"page": "home"}
        assert updated.updated_at >= conv.updated_at
        assert updated.created_at == conv.created_at

    def test_context_is_replaced_not_merged(self, store: EntityStore):
        conv = store.create_conversation(ConversationDraft(
            session_id="s1", context={"page": "home", "ref": "ad"}
        ))
        updated = store.update_conversation(conv.id, ConversationPatch(context={"page": "cart"}))

        assert updated.context == {"page": "cart"}

    def test_any_status_may_follow_any_other(self, store: EntityStore):
        conv = store.create_conversation(ConversationDraft(session_id="s1"))
        store.update_conversation(conv.id, ConversationPatch(status="completed"))
        reopened = store.update_conversation(conv.id, ConversationPatch(status="active"))

        assert reopened.status == "active"

    def test_records_are_snapshots(self, store: EntityStore):
        conv = store.create_conversation(ConversationDraft(session_id="s1"))
        store.update_conversation(conv.id, ConversationPatch(status="completed"))

        assert conv.status == "active"
        assert store.get_conversation(conv.id).status == "completed"

    def test_active_and_customer_filters(self, store: EntityStore):
        a = store.create_conversation(ConversationDraft(session_id="a", customer_id="c1"))
        b = store.create_conversation(ConversationDraft(session_id="b", customer_id="c1"))
        store.create_conversation(ConversationDraft(session_id="c", customer_id="c2"))
        store.update_conversation(b.id, ConversationPatch(status="completed"))

        assert {c.session_id for c in store.list_active_conversations()} == {"a", "c"}
        assert {c.id for c in store.list_conversations_by_customer("c1")} == {a.id, b.id}

    def test_concurrent_get_or_create_yields_one_conversation(self, store: EntityStore):
        results = []

        def worker():
            conv, _ = store.get_or_create_conversation(ConversationDraft(session_id="shared"))
            results.append(conv.id)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(results)) == 1
        assert len(store.list_conversations()) == 1


class TestMessages:
    """Message append and ordering."""

    def test_message_requires_existing_conversation(self, store: EntityStore):
        with pytest.raises(ValidationError):
            store.create_message(MessageDraft(conversation_id=42, role="user", content="hi"))

    def test_invalid_role_rejected(self):
        with pytest.raises(ValueError):
            MessageDraft(conversation_id=1, role="bot", content="hi")

    def test_messages_listed_oldest_first(self, store: EntityStore):
        conv = store.create_conversation(ConversationDraft(session_id="s1"))
        for text in ("one", "two", "three"):
            store.create_message(MessageDraft(conversation_id=conv.id, role="user", content=text))

        assert [m.content for m in store.list_messages(conv.id)] == ["one", "two", "three"]
        assert [m.content for m in store.recent_messages(2)] == ["three", "two"]


class TestProducts:
    """Product queries."""

    def test_price_quantized_to_cents(self, make_product):
        product = make_product(price="10.005")
        assert product.price == Decimal("10.01")

    def test_negative_price_rejected(self, make_product):
        with pytest.raises(ValueError):
            make_product(price="-1")

    def test_search_matches_title_description_and_category(self, make_product, store):
        make_product(title="Blue Mug", category="Kitchen")
        make_product(title="Lamp", description="A bright blue light", category="Home")
        make_product(title="Chair", category="Furniture")

        assert {p.title for p in store.search_products("BLUE")} == {"Blue Mug", "Lamp"}
        assert [p.title for p in store.search_products("kitchen")] == ["Blue Mug"]

    def test_active_and_category_filters(self, make_product, store):
        make_product(title="A", category="Toys")
        make_product(title="B", category="Toys", is_active=False)

        assert [p.title for p in store.list_active_products()] == ["A"]
        assert {p.title for p in store.list_products_by_category("Toys")} == {"A", "B"}

    def test_update_refreshes_synced_at(self, make_product, store):
        product = make_product()
        updated = store.update_product(product.id, ProductPatch(inventory=5))

        assert updated.inventory == 5
        assert updated.synced_at >= product.synced_at

    def test_missing_external_id_lookup(self, store):
        assert store.get_product_by_external_id(None) is None
        assert store.get_product_by_external_id("nope") is None


class TestOrders:
    """Order validation and queries."""

    def test_defaults(self, store: EntityStore):
        order = store.create_order(OrderDraft(status="pending", total_amount=Decimal("12.5")))

        assert order.currency == "USD"
        assert order.source == "ai_chatbot"
        assert order.total_amount == Decimal("12.50")

    def test_negative_total_rejected(self):
        with pytest.raises(ValueError):
            OrderDraft(status="pending", total_amount=Decimal("-0.01"))

    def test_negative_total_rejected_on_update(self, store: EntityStore):
        order = store.create_order(OrderDraft(status="pending", total_amount=Decimal("5")))
        with pytest.raises(ValueError):
            store.update_order(order.id, OrderPatch(total_amount=Decimal("-5")))

    def test_queries(self, store: EntityStore):
        conv = store.create_conversation(ConversationDraft(session_id="s1"))
        first = store.create_order(OrderDraft(
            status="completed", total_amount=Decimal("10"), customer_id="c1",
            conversation_id=conv.id, external_id="shop-1",
        ))
        second = store.create_order(OrderDraft(status="pending", total_amount=Decimal("5")))

        assert store.get_order_by_external_id("shop-1").id == first.id
        assert [o.id for o in store.list_orders_by_customer("c1")] == [first.id]
        assert [o.id for o in store.list_orders_by_conversation(conv.id)] == [first.id]
        assert [o.id for o in store.recent_orders()] == [second.id, first.id]

    def test_line_items_replaced_wholesale(self, store: EntityStore):
        order = store.create_order(OrderDraft(
            status="pending", total_amount=Decimal("5"), line_items=[{"sku": "a"}, {"sku": "b"}]
        ))
        updated = store.update_order(order.id, OrderPatch(line_items=[{"sku": "c"}]))

        assert updated.line_items == [{"sku": "c"}]

    def test_duplicate_external_id_conflicts(self, store: EntityStore):
        store.create_order(OrderDraft(status="pending", total_amount=Decimal("5"), external_id="shop-1"))

        with pytest.raises(ConflictError):
            store.create_order(OrderDraft(
                status="pending", total_amount=Decimal("7"), external_id="shop-1"
            ))

        assert len([o for o in store.list_orders() if o.external_id == "shop-1"]) == 1

    def test_orders_without_external_id_do_not_conflict(self, store: EntityStore):
        store.create_order(OrderDraft(status="pending", total_amount=Decimal("5")))
        store.create_order(OrderDraft(status="pending", total_amount=Decimal("6")))

        assert len(store.list_orders()) == 2

    def test_update_onto_taken_external_id_conflicts(self, store: EntityStore):
        store.create_order(OrderDraft(status="pending", total_amount=Decimal("5"), external_id="shop-1"))
        other = store.create_order(OrderDraft(
            status="pending", total_amount=Decimal("6"), external_id="shop-2"
        ))

        with pytest.raises(ConflictError):
            store.update_order(other.id, OrderPatch(external_id="shop-1"))

        assert store.get_order(other.id).external_id == "shop-2"

    def test_update_keeping_own_external_id(self, store: EntityStore):
        order = store.create_order(OrderDraft(
            status="pending", total_amount=Decimal("5"), external_id="shop-1"
        ))

        updated = store.update_order(order.id, OrderPatch(external_id="shop-1", status="paid"))

        assert updated.status == "paid"


class TestRecommendations:
    """Recommendation validation and ranking."""

    def test_confidence_outside_unit_interval_rejected(self):
        with pytest.raises(ValueError):
            RecommendationDraft(conversation_id=1, product_id=2, type="upsell", confidence=1.5)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            RecommendationDraft(conversation_id=1, product_id=2, type="bundle", confidence=0.5)

    def test_top_recommended_products(self, store: EntityStore, make_product):
        conv = store.create_conversation(ConversationDraft(session_id="s1"))
        popular = make_product(title="Popular")
        niche = make_product(title="Niche")

        def recommend(product, accepted):
            return store.create_recommendation(RecommendationDraft(
                conversation_id=conv.id, product_id=product.id, type="cross_sell",
                confidence=Decimal("0.8"), accepted=accepted,
            ))

        recommend(popular, True)
        recommend(popular, False)
        recommend(popular, False)
        recommend(niche, True)

        top = store.top_recommended_products(1)

        assert len(top) == 1
        assert top[0].product.id == popular.id
        assert top[0].recommendations == 3
        assert top[0].success_rate == pytest.approx(1 / 3)

    def test_accept_hook(self, store: EntityStore, make_product):
        conv = store.create_conversation(ConversationDraft(session_id="s1"))
        rec = store.create_recommendation(RecommendationDraft(
            conversation_id=conv.id, product_id=make_product().id, type="primary",
            confidence=Decimal("0.9"),
        ))
        updated = store.update_recommendation(rec.id, RecommendationPatch(accepted=True))

        assert updated.accepted is True
        assert store.list_recommendations_by_conversation(conv.id)[0].accepted is True


class TestSubscriptions:
    """Webhook subscription lifecycle."""

    def test_inactive_excluded_from_active_list(self, store, make_subscription):
        active = make_subscription()
        inactive = make_subscription(url="https://hooks.example.com/b")
        store.update_subscription(inactive.id, SubscriptionPatch(is_active=False))

        assert [s.id for s in store.list_active_subscriptions()] == [active.id]
        assert len(store.list_subscriptions()) == 2

    def test_delete(self, store, make_subscription):
        sub = make_subscription()

        assert store.delete_subscription(sub.id) is True
        assert store.delete_subscription(sub.id) is False
        assert store.get_subscription(sub.id) is None

    def test_secret_not_in_repr(self, make_subscription):
        sub = make_subscription()
        assert sub.secret not in repr(sub)

    def test_creation_log_omits_secret(self, store, make_subscription, caplog):
        caplog.set_level("DEBUG", logger="salesbot")
        sub = make_subscription()

        assert sub.secret not in caplog.text
        assert sub.url in caplog.text


class TestMetrics:
    """Dashboard metrics and API counters."""

    def test_empty_store_metrics_are_zero(self, store: EntityStore):
        metrics = store.get_metrics()

        assert metrics.active_conversations == 0
        assert metrics.conversion_rate == 0
        assert metrics.total_revenue == 0
        assert metrics.average_order_value == 0

    def test_api_metric_counters(self, store: EntityStore):
        store.record_api_metric("shopify", "/products/sync")
        store.record_api_metric("shopify", "/products/sync")
        store.record_api_metric("chat")

        assert store.api_metrics() == {"shopify:/products/sync": 2, "chat": 1}
