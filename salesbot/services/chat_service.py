"""Inbound chat flow: store, ask the AI, store again, raise events.

Shared by the direct chat endpoint and the signed inbound webhook. The
user's message is persisted before the AI is called, so an upstream
failure leaves the conversation and message in place.
"""

import logging
from dataclasses import dataclass, field

from salesbot.services.assistant import (
    AssistantReply,
    ChatAssistant,
    SuggestedProduct,
    build_customer_context,
)
from salesbot.services.live_updates import LiveUpdateBroker
from salesbot.services.webhook_dispatcher import WebhookDispatcher
from salesbot.store.memory import EntityStore
from salesbot.store.models import (
    ConversationDraft,
    ConversationPatch,
    ConversationStatus,
    MessageDraft,
    MessageRole,
    RecommendationDraft,
)

logger = logging.getLogger(__name__)

ESCALATION_REASON = "AI determined escalation needed"


@dataclass(frozen=True)
class ChatReply:
    """What the caller gets back for one inbound message."""

    conversation_id: int
    session_id: str
    message_id: int
    message: str
    recommendations: list[SuggestedProduct] = field(default_factory=list)
    intent: str = "general"
    urgency: str = "low"
    escalated: bool = False
    conversation_created: bool = False


class ChatService:
    """Runs one inbound customer message through the store and the AI."""

    def __init__(
        self,
        store: EntityStore,
        assistant: ChatAssistant,
        dispatcher: WebhookDispatcher,
        broker: LiveUpdateBroker | None = None,
    ) -> None:
        self.store = store
        self.assistant = assistant
        self.dispatcher = dispatcher
        self.broker = broker

    async def handle_message(
        self,
        message: str,
        session_id: str,
        customer_id: str | None = None,
        customer_name: str | None = None,
        context: dict | None = None,
        source: str = "chat",
    ) -> ChatReply:
        """Process one customer message end to end.

        Args:
            message: Customer's text.
            session_id: External session identifier; one conversation per session.
            customer_id: Optional customer id used for order-history context.
            customer_name: Optional display name for new conversations.
            context: Optional opaque context stored on new conversations.
            source: Metric label for the calling surface.

        Returns:
            ChatReply with the assistant's answer.

        Raises:
            UpstreamError: If the AI collaborator fails.
        """
        conversation, created = self.store.get_or_create_conversation(
            ConversationDraft(
                session_id=session_id,
                customer_id=customer_id,
                customer_name=customer_name,
                status=ConversationStatus.active.value,
                last_message=message,
                context=context,
            )
        )
        if created:
            logger.info("New conversation %s for session %s", conversation.id, session_id)
            self.dispatcher.dispatch_in_background(
                *self.dispatcher.conversation_started(conversation)
            )
            self._publish("conversation.started", {"conversation_id": conversation.id})

        self.store.create_message(MessageDraft(
            conversation_id=conversation.id,
            role=MessageRole.user.value,
            content=message,
        ))

        history = self.store.list_messages(conversation.id)
        products = self.store.list_active_products()
        customer = build_customer_context(self.store, customer_id or conversation.customer_id)

        reply: AssistantReply = await self.assistant.reply(conversation, history, products, customer)

        assistant_message = self.store.create_message(MessageDraft(
            conversation_id=conversation.id,
            role=MessageRole.assistant.value,
            content=reply.message,
            metadata={
                "intent": reply.intent,
                "urgency": reply.urgency,
                "recommendations": [r.as_dict() for r in reply.recommendations],
            },
        ))

        for suggestion in reply.recommendations:
            self.store.create_recommendation(RecommendationDraft(
                conversation_id=conversation.id,
                product_id=suggestion.product_id,
                type=suggestion.type,
                confidence=suggestion.confidence,
                reason=suggestion.reason,
                presented=True,
            ))

        status = (
            ConversationStatus.escalated if reply.should_escalate else ConversationStatus.active
        )
        conversation = self.store.update_conversation(
            conversation.id,
            ConversationPatch(last_message=message, status=status.value),
        )
        if reply.should_escalate:
            logger.info("Conversation %s escalated by assistant", conversation.id)
            self.dispatcher.dispatch_in_background(
                *self.dispatcher.conversation_escalated(conversation, ESCALATION_REASON)
            )

        self.store.record_api_metric(source, "/chat")
        self._publish("message.created", {
            "conversation_id": conversation.id,
            "message_id": assistant_message.id,
            "status": conversation.status,
        })

        return ChatReply(
            conversation_id=conversation.id,
            session_id=session_id,
            message_id=assistant_message.id,
            message=reply.message,
            recommendations=list(reply.recommendations),
            intent=reply.intent,
            urgency=reply.urgency,
            escalated=reply.should_escalate,
            conversation_created=created,
        )

    def _publish(self, event: str, data: dict) -> None:
        if self.broker is not None:
            self.broker.publish(event, data)
