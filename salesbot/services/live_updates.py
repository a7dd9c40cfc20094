"""Live dashboard updates over server-sent events.

Each connected dashboard gets its own bounded queue. Publishing never
blocks a request handler: a listener that has fallen behind loses the
update instead of slowing everyone else down.
"""

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

LISTENER_QUEUE_SIZE = 100


class LiveUpdateBroker:
    """Fan-out of dashboard events to SSE listeners."""

    def __init__(self, queue_size: int = LISTENER_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._listeners: set[asyncio.Queue] = set()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._listeners.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._listeners.discard(queue)

    def publish(self, event: str, data: dict[str, Any]) -> int:
        """Queue an update for every listener.

        Returns:
            Number of listeners the update was queued for.
        """
        queued = 0
        for queue in list(self._listeners):
            try:
                queue.put_nowait({"event": event, "data": data})
                queued += 1
            except asyncio.QueueFull:
                logger.debug("Dropping %s update for a slow dashboard listener", event)
        return queued
