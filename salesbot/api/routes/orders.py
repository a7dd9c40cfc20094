"""API routes for orders.

Provides endpoints for:
- GET /orders - Recent orders, or one customer's orders
- POST /orders - Record an order and fire order.created (and upsell.success)
- PATCH /orders/{id} - Update status or other fields
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from salesbot.api.dependencies import get_broker, get_dispatcher, get_store
from salesbot.api.schemas import OrderCreate, OrderResponse, OrderUpdate
from salesbot.services.live_updates import LiveUpdateBroker
from salesbot.services.webhook_dispatcher import WebhookDispatcher
from salesbot.store.memory import EntityStore
from salesbot.store.models import OrderDraft, OrderPatch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

UPSELL_SOURCE = "upsell"


@router.get("", response_model=list[OrderResponse])
def list_orders(
    customer: str | None = None,
    limit: int = Query(50, ge=1, le=1000),
    store: EntityStore = Depends(get_store),
) -> list[OrderResponse]:
    """List orders, newest first.

    Args:
        customer: Only this customer's orders.
        limit: Max results (default 50).
        store: EntityStore (injected).
    """
    if customer:
        orders = sorted(
            store.list_orders_by_customer(customer),
            key=lambda o: (o.created_at, o.id),
            reverse=True,
        )[:limit]
    else:
        orders = store.recent_orders(limit)
    return [OrderResponse.model_validate(o) for o in orders]


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    data: OrderCreate,
    store: EntityStore = Depends(get_store),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
    broker: LiveUpdateBroker = Depends(get_broker),
) -> OrderResponse:
    """Record an order.

    Fires ``order.created``. An order with source ``upsell`` and an
    ``original_value`` also fires ``upsell.success`` with the uplift.

    Raises:
        HTTPException: 400 if the referenced conversation does not exist.
        ConflictError: If another order already has the external id (409).
    """
    if data.conversation_id is not None and store.get_conversation(data.conversation_id) is None:
        raise HTTPException(
            status_code=400, detail=f"Conversation {data.conversation_id} not found"
        )

    fields = data.model_dump(exclude={"original_value"})
    try:
        order = store.create_order(OrderDraft(**fields))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    dispatcher.dispatch_in_background(*dispatcher.order_created(order))
    if data.original_value is not None and order.source == UPSELL_SOURCE:
        dispatcher.dispatch_in_background(*dispatcher.upsell_success(order, data.original_value))
    broker.publish("order.created", {"order_id": order.id, "total_amount": str(order.total_amount)})
    return OrderResponse.model_validate(order)


@router.patch("/{order_id}", response_model=OrderResponse)
def update_order(
    order_id: int,
    data: OrderUpdate,
    store: EntityStore = Depends(get_store),
) -> OrderResponse:
    """Partially update an order.

    Raises:
        HTTPException: 404 if not found, 400 if a value is invalid.
        ConflictError: If the new external id belongs to another order (409).
    """
    changes = data.model_dump(exclude_unset=True)
    if changes.get("status", "") is None or changes.get("total_amount", 0) is None:
        raise HTTPException(status_code=400, detail="status and total_amount cannot be null")
    try:
        order = store.update_order(order_id, OrderPatch(**changes))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return OrderResponse.model_validate(order)
