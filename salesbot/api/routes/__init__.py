"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from salesbot.api.routes import (
    analytics,
    conversations,
    events,
    inbound,
    orders,
    products,
    webhooks,
)

__all__ = [
    "analytics",
    "conversations",
    "events",
    "inbound",
    "orders",
    "products",
    "webhooks",
]
