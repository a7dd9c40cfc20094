"""API routes for outbound webhook subscriptions.

Provides endpoints for:
- GET /webhooks - List subscriptions (secrets masked)
- POST /webhooks - Create a subscription (secret returned once)
- PATCH /webhooks/{id} - Update url, events, description or active flag
- DELETE /webhooks/{id} - Remove a subscription
- POST /webhooks/{id}/test - Synchronous test delivery
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from salesbot.api.dependencies import get_dispatcher, get_store
from salesbot.api.schemas import (
    WebhookCreate,
    WebhookCreatedResponse,
    WebhookResponse,
    WebhookTestResponse,
    WebhookUpdate,
)
from salesbot.errors.domain import NotFoundError
from salesbot.services.signature import new_secret
from salesbot.services.webhook_dispatcher import WebhookDispatcher
from salesbot.store.memory import EntityStore
from salesbot.store.models import SubscriptionDraft, SubscriptionPatch, WebhookSubscription
from salesbot.utils.redaction import mask_secret

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

# Fields a PATCH may clear by sending null
_NULLABLE_FIELDS = frozenset({"description"})


def _to_response(subscription: WebhookSubscription, reveal_secret: bool = False) -> dict:
    return {
        "id": subscription.id,
        "url": subscription.url,
        "events": list(subscription.events),
        "secret": subscription.secret if reveal_secret else mask_secret(subscription.secret),
        "is_active": subscription.is_active,
        "description": subscription.description,
        "last_triggered": subscription.last_triggered,
        "created_at": subscription.created_at,
    }


@router.get("", response_model=list[WebhookResponse])
def list_webhooks(store: EntityStore = Depends(get_store)) -> list[WebhookResponse]:
    """List all subscriptions with their secrets masked."""
    return [WebhookResponse(**_to_response(s)) for s in store.list_subscriptions()]


@router.post("", response_model=WebhookCreatedResponse, status_code=201)
def create_webhook(
    data: WebhookCreate,
    store: EntityStore = Depends(get_store),
) -> WebhookCreatedResponse:
    """Create a subscription with a freshly generated secret.

    Returns:
        The full subscription, including the cleartext secret. This is the
        only response that ever carries it.
    """
    subscription = store.create_subscription(SubscriptionDraft(
        url=data.url,
        events=tuple(data.events),
        secret=new_secret(),
        description=data.description,
    ))
    return WebhookCreatedResponse(**_to_response(subscription, reveal_secret=True))


@router.patch("/{webhook_id}", response_model=WebhookResponse)
def update_webhook(
    webhook_id: int,
    data: WebhookUpdate,
    store: EntityStore = Depends(get_store),
) -> WebhookResponse:
    """Partially update a subscription. The secret cannot be changed.

    Raises:
        HTTPException: 404 if not found.
    """
    changes = {
        k: v for k, v in data.model_dump(exclude_unset=True).items()
        if v is not None or k in _NULLABLE_FIELDS
    }
    subscription = store.update_subscription(webhook_id, SubscriptionPatch(**changes))
    if subscription is None:
        raise HTTPException(status_code=404, detail=f"Webhook {webhook_id} not found")
    logger.info("Updated webhook subscription %s (%s)", webhook_id, ", ".join(sorted(changes)))
    return WebhookResponse(**_to_response(subscription))


@router.delete("/{webhook_id}")
def delete_webhook(webhook_id: int, store: EntityStore = Depends(get_store)) -> dict:
    """Delete a subscription. Events scheduled before this call may still reach it.

    Raises:
        HTTPException: 404 if not found.
    """
    if not store.delete_subscription(webhook_id):
        raise HTTPException(status_code=404, detail=f"Webhook {webhook_id} not found")
    logger.info("Deleted webhook subscription %s", webhook_id)
    return {"status": "deleted", "webhook_id": webhook_id}


@router.post("/{webhook_id}/test", response_model=WebhookTestResponse)
async def test_webhook(
    webhook_id: int,
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
) -> WebhookTestResponse:
    """Send a ``webhook.test`` event and wait for the outcome.

    Raises:
        HTTPException: 404 if not found.
    """
    try:
        result = await dispatcher.test_subscription(webhook_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None

    if result.success:
        message = "Webhook test successful"
    else:
        message = f"Webhook test failed: {result.error}"
    return WebhookTestResponse(
        success=result.success, message=message, status_code=result.status_code
    )
