"""Tests for the inbound chat flow."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from salesbot.errors.domain import UpstreamError
from salesbot.services.assistant import AssistantReply, SuggestedProduct
from salesbot.services.chat_service import ESCALATION_REASON, ChatService
from salesbot.services.live_updates import LiveUpdateBroker
from salesbot.services.webhook_dispatcher import WebhookDispatcher


@pytest.fixture
def assistant() -> MagicMock:
    fake = MagicMock()
    fake.reply = AsyncMock(return_value=AssistantReply(message="Hi there!"))
    return fake


@pytest.fixture
def dispatcher(store) -> WebhookDispatcher:
    real = WebhookDispatcher(store)
    real.dispatch_in_background = MagicMock(return_value=None)
    return real


@pytest.fixture
def broker() -> LiveUpdateBroker:
    return LiveUpdateBroker()


@pytest.fixture
def service(store, assistant, dispatcher, broker) -> ChatService:
    return ChatService(store, assistant, dispatcher, broker)


def _scheduled_events(dispatcher) -> list[str]:
    return [call.args[0] for call in dispatcher.dispatch_in_background.call_args_list]


class TestHandleMessage:
    """ChatService.handle_message end to end with a fake assistant."""

    @pytest.mark.asyncio
    async def test_first_message_creates_conversation(self, service, store, dispatcher):
        reply = await service.handle_message("hello", "s1", customer_name="Ada")

        assert reply.conversation_created is True
        assert reply.message == "Hi there!"
        conversations = store.list_conversations()
        assert len(conversations) == 1
        assert conversations[0].status == "active"
        assert conversations[0].customer_name == "Ada"
        messages = store.list_messages(reply.conversation_id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "hello"), ("assistant", "Hi there!")
        ]
        assert messages[1].id == reply.message_id
        assert _scheduled_events(dispatcher) == ["conversation.started"]

    @pytest.mark.asyncio
    async def test_same_session_reuses_conversation(self, service, store, dispatcher):
        first = await service.handle_message("hello", "s1")
        second = await service.handle_message("anything else?", "s1")

        assert second.conversation_id == first.conversation_id
        assert second.conversation_created is False
        assert len(store.list_conversations()) == 1
        assert len(store.list_messages(first.conversation_id)) == 4
        assert store.get_conversation(first.conversation_id).last_message == "anything else?"
        assert _scheduled_events(dispatcher) == ["conversation.started"]

    @pytest.mark.asyncio
    async def test_recommendations_persisted_as_presented(
        self, service, store, assistant, make_product
    ):
        product = make_product()
        assistant.reply.return_value = AssistantReply(
            message="Look at this",
            recommendations=[SuggestedProduct(product.id, "upsell", 0.75, "Bigger size")],
            intent="product_inquiry",
        )

        reply = await service.handle_message("show me mugs", "s1")

        recs = store.list_recommendations_by_conversation(reply.conversation_id)
        assert len(recs) == 1
        assert recs[0].product_id == product.id
        assert recs[0].presented is True
        assert recs[0].accepted is False
        assistant_msg = store.get_message(reply.message_id)
        assert assistant_msg.metadata["intent"] == "product_inquiry"
        assert assistant_msg.metadata["recommendations"][0]["product_id"] == product.id

    @pytest.mark.asyncio
    async def test_escalation_updates_status_and_fires_event(
        self, service, store, assistant, dispatcher
    ):
        assistant.reply.return_value = AssistantReply(message="Connecting you", should_escalate=True)

        reply = await service.handle_message("I want a refund NOW", "s1")

        assert reply.escalated is True
        assert store.get_conversation(reply.conversation_id).status == "escalated"
        assert _scheduled_events(dispatcher) == ["conversation.started", "conversation.escalated"]
        escalation = dispatcher.dispatch_in_background.call_args_list[1]
        assert escalation.args[1]["reason"] == ESCALATION_REASON

    @pytest.mark.asyncio
    async def test_upstream_failure_keeps_user_message(self, service, store, assistant):
        assistant.reply.side_effect = UpstreamError("anthropic", "overloaded")

        with pytest.raises(UpstreamError):
            await service.handle_message("hello", "s1")

        conversation = store.get_conversation_by_session_id("s1")
        messages = store.list_messages(conversation.id)
        assert [(m.role, m.content) for m in messages] == [("user", "hello")]

    @pytest.mark.asyncio
    async def test_publishes_live_update_and_records_metric(self, service, store, broker):
        queue = broker.subscribe()

        reply = await service.handle_message("hello", "s1")

        events = [queue.get_nowait()["event"] for _ in range(queue.qsize())]
        assert events == ["conversation.started", "message.created"]
        assert store.api_metrics() == {"chat:/chat": 1}
        assert reply.session_id == "s1"
