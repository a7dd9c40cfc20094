"""API routes for conversations and the direct chat endpoint.

Provides endpoints for:
- GET /conversations - Active conversations with message counts
- GET /conversations/{id} - Conversation with messages and recommendations
- PATCH /conversations/{id} - Update status or customer fields
- POST /conversations/message - Send a customer message through the AI
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from salesbot.api.dependencies import get_broker, get_chat_service, get_dispatcher, get_store
from salesbot.api.schemas import (
    ChatMessageRequest,
    ChatMessageResponse,
    ConversationDetailResponse,
    ConversationResponse,
    ConversationSummaryResponse,
    ConversationUpdate,
    MessageResponse,
    RecommendationResponse,
    SuggestedProductResponse,
)
from salesbot.services.chat_service import ChatService
from salesbot.services.live_updates import LiveUpdateBroker
from salesbot.services.webhook_dispatcher import WebhookDispatcher
from salesbot.store.memory import EntityStore
from salesbot.store.models import ConversationPatch, ConversationStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])

OPERATOR_ESCALATION_REASON = "Escalated by operator"


@router.get("", response_model=list[ConversationSummaryResponse])
def list_conversations(
    store: EntityStore = Depends(get_store),
) -> list[ConversationSummaryResponse]:
    """List active conversations, most recently updated first.

    Returns:
        Conversations with message count and latest message.
    """
    summaries = []
    for conversation in store.list_active_conversations():
        messages = store.list_messages(conversation.id)
        summaries.append(ConversationSummaryResponse(
            **ConversationResponse.model_validate(conversation).model_dump(),
            message_count=len(messages),
            latest_message=MessageResponse.model_validate(messages[-1]) if messages else None,
        ))
    summaries.sort(key=lambda s: s.updated_at, reverse=True)
    return summaries


@router.get("/{conversation_id}", response_model=ConversationDetailResponse)
def get_conversation(
    conversation_id: int,
    store: EntityStore = Depends(get_store),
) -> ConversationDetailResponse:
    """Get a conversation with its messages and recommendations.

    Raises:
        HTTPException: 404 if not found.
    """
    conversation = store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
    return ConversationDetailResponse(
        conversation=ConversationResponse.model_validate(conversation),
        messages=[MessageResponse.model_validate(m) for m in store.list_messages(conversation_id)],
        recommendations=[
            RecommendationResponse.model_validate(r)
            for r in store.list_recommendations_by_conversation(conversation_id)
        ],
    )


@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: int,
    data: ConversationUpdate,
    store: EntityStore = Depends(get_store),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
    broker: LiveUpdateBroker = Depends(get_broker),
) -> ConversationResponse:
    """Partially update a conversation.

    Moving a conversation into ``completed`` or ``escalated`` fires the
    matching webhook event. Any status may follow any other.

    Raises:
        HTTPException: 404 if not found.
    """
    current = store.get_conversation(conversation_id)
    if current is None:
        raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")

    changes = data.model_dump(exclude_unset=True, mode="json")
    if changes.get("status", "") is None:
        del changes["status"]
    conversation = store.update_conversation(conversation_id, ConversationPatch(**changes))
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")

    if conversation.status != current.status:
        logger.info(
            "Conversation %s status %s -> %s", conversation_id, current.status, conversation.status
        )
        if conversation.status == ConversationStatus.completed.value:
            dispatcher.dispatch_in_background(*dispatcher.conversation_completed(conversation))
        elif conversation.status == ConversationStatus.escalated.value:
            dispatcher.dispatch_in_background(
                *dispatcher.conversation_escalated(conversation, OPERATOR_ESCALATION_REASON)
            )
    broker.publish("conversation.updated", {
        "conversation_id": conversation.id,
        "status": conversation.status,
    })
    return ConversationResponse.model_validate(conversation)


@router.post("/message", response_model=ChatMessageResponse)
async def send_message(
    data: ChatMessageRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatMessageResponse:
    """Send a customer message and return the assistant's reply.

    The first message for a session creates its conversation.

    Raises:
        UpstreamError: If the AI collaborator fails (mapped to 500).
    """
    reply = await service.handle_message(
        message=data.message,
        session_id=data.session_id,
        customer_id=data.customer_id,
        customer_name=data.customer_name,
        context=data.context,
        source="chat",
    )
    return ChatMessageResponse(
        conversation_id=reply.conversation_id,
        session_id=reply.session_id,
        message_id=reply.message_id,
        message=reply.message,
        recommendations=[
            SuggestedProductResponse.model_validate(r) for r in reply.recommendations
        ],
        intent=reply.intent,
        urgency=reply.urgency,
        escalated=reply.escalated,
    )
