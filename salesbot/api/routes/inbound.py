"""Signed inbound chat webhook for third-party integrations.

``POST /webhook/chat`` accepts the same message as the direct chat
endpoint, but only after the raw body has been verified against
``X-Webhook-Signature`` using the secret in ``X-Webhook-Secret``. Nothing
in the body is parsed or stored until verification passes.
"""

import json
import logging

from fastapi import APIRouter, Depends, Request

from salesbot.api.dependencies import get_chat_service
from salesbot.api.schemas import InboundChatResponse, SuggestedProductResponse
from salesbot.errors.domain import AuthenticationError, ValidationError
from salesbot.services.chat_service import ChatService
from salesbot.services.signature import verify
from salesbot.services.webhook_dispatcher import SIGNATURE_HEADER
from salesbot.utils.redaction import redact_for_logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["inbound"])

SECRET_HEADER = "X-Webhook-Secret"


def _parse_chat_body(body: bytes) -> dict:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON") from None
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    missing = [
        key for key in ("message", "session_id")
        if not isinstance(payload.get(key), str) or not payload[key].strip()
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return payload


@router.post("/chat", response_model=InboundChatResponse)
async def inbound_chat(
    request: Request,
    service: ChatService = Depends(get_chat_service),
) -> InboundChatResponse:
    """Verify, then process an inbound chat message.

    Raises:
        AuthenticationError: Signature or secret missing or invalid (401).
        ValidationError: Body is not JSON or lacks message/session_id (400).
    """
    signature = request.headers.get(SIGNATURE_HEADER)
    secret = request.headers.get(SECRET_HEADER)
    if not signature or not secret:
        logger.warning("Inbound webhook rejected: missing signature or secret header")
        raise AuthenticationError("Missing webhook signature or secret")

    body = await request.body()
    if not verify(body, signature, secret):
        logger.warning("Inbound webhook rejected: signature mismatch")
        raise AuthenticationError("Invalid webhook signature")

    payload = _parse_chat_body(body)
    logger.debug("Inbound chat payload: %s", redact_for_logging(payload))
    context = payload.get("context")
    reply = await service.handle_message(
        message=payload["message"],
        session_id=payload["session_id"],
        customer_id=payload.get("customer_id"),
        customer_name=payload.get("customer_name"),
        context=context if isinstance(context, dict) else None,
        source="webhook",
    )
    return InboundChatResponse(
        response=reply.message,
        recommendations=[
            SuggestedProductResponse.model_validate(r) for r in reply.recommendations
        ],
        session_id=reply.session_id,
        conversation_id=reply.conversation_id,
    )
