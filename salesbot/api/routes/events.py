"""Server-sent event stream of live dashboard updates.

``GET /events`` keeps a connection open and forwards everything published
on the LiveUpdateBroker (new messages, orders, syncs, status changes). A
``ping`` is sent after 15 seconds of silence to keep proxies from closing
the connection.
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from salesbot.api.dependencies import get_broker
from salesbot.services.live_updates import LiveUpdateBroker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

PING_INTERVAL = 15.0


async def _event_generator(
    request: Request,
    broker: LiveUpdateBroker,
    queue: asyncio.Queue,
) -> AsyncGenerator[dict, None]:
    """Generate SSE events from one listener's queue.

    Args:
        request: FastAPI request for disconnect detection.
        broker: Broker the queue is subscribed to.
        queue: This listener's queue.

    Yields:
        SSE event dictionaries.
    """
    try:
        yield {"data": json.dumps({"event": "connected", "data": {}})}
        while True:
            if await request.is_disconnected():
                break
            try:
                update = await asyncio.wait_for(queue.get(), timeout=PING_INTERVAL)
                yield {
                    "data": json.dumps(
                        {"event": update["event"], "data": update["data"]},
                        default=str,
                    ),
                }
            except asyncio.TimeoutError:
                yield {"data": json.dumps({"event": "ping"})}
    finally:
        broker.unsubscribe(queue)
        logger.debug("Dashboard listener disconnected (%d remaining)", broker.listener_count)


@router.get("/events")
async def stream_events(
    request: Request,
    broker: LiveUpdateBroker = Depends(get_broker),
) -> EventSourceResponse:
    """Stream live dashboard updates.

    Returns:
        EventSourceResponse; the first event is ``connected``.
    """
    queue = broker.subscribe()
    return EventSourceResponse(
        _event_generator(request, broker, queue),
        media_type="text/event-stream",
    )
