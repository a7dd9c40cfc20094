"""Dashboard metrics and recommendation ranking.

Pure functions over a snapshot of store records. Nothing is cached: the
store calls these on every request, which is linear in the number of
conversations, orders and recommendations.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal

from salesbot.store.models import (
    Conversation,
    ConversationStatus,
    Order,
    Product,
    Recommendation,
    to_money,
)

COMPLETED_ORDER_STATUS = "completed"


@dataclass(frozen=True)
class DashboardMetrics:
    """Derived figures shown on the operator dashboard."""

    active_conversations: int
    total_conversations: int
    conversion_rate: float
    total_revenue: Decimal
    average_order_value: Decimal
    total_orders: int


@dataclass(frozen=True)
class ProductRecommendationStats:
    """How often a product was recommended and how often it was accepted."""

    product: Product
    recommendations: int
    success_rate: float


def compute_metrics(
    conversations: Iterable[Conversation],
    orders: Iterable[Order],
) -> DashboardMetrics:
    """Compute dashboard metrics from conversation and order snapshots.

    Conversion rate counts distinct conversations that have at least one
    order; orders without a conversation id do not convert anything.
    Revenue and average order value only consider completed orders. Every
    ratio is 0 when its denominator is 0.

    Args:
        conversations: All stored conversations.
        orders: All stored orders.

    Returns:
        DashboardMetrics for the snapshot.
    """
    conversations = list(conversations)
    orders = list(orders)

    conversation_ids = {c.id for c in conversations}
    active = sum(1 for c in conversations if c.status == ConversationStatus.active.value)
    total_conversations = len(conversations)

    converted = {
        o.conversation_id
        for o in orders
        if o.conversation_id is not None and o.conversation_id in conversation_ids
    }
    conversion_rate = len(converted) / total_conversations if total_conversations else 0.0

    completed = [o for o in orders if o.status == COMPLETED_ORDER_STATUS]
    revenue = sum((o.total_amount for o in completed), Decimal("0"))
    average = to_money(revenue / len(completed)) if completed else Decimal("0.00")

    return DashboardMetrics(
        active_conversations=active,
        total_conversations=total_conversations,
        conversion_rate=conversion_rate,
        total_revenue=to_money(revenue),
        average_order_value=average,
        total_orders=len(orders),
    )


def rank_recommended_products(
    recommendations: Iterable[Recommendation],
    products: Mapping[int, Product],
    limit: int = 10,
) -> list[ProductRecommendationStats]:
    """Group recommendations by product and rank by recommendation count.

    Recommendations pointing at products that no longer exist are skipped.
    Ties in count keep no particular order.

    Args:
        recommendations: All stored recommendations.
        products: Product records keyed by id.
        limit: Maximum entries to return.

    Returns:
        Stats sorted descending by recommendation count.
    """
    counts: dict[int, list[int]] = {}
    for rec in recommendations:
        stats = counts.setdefault(rec.product_id, [0, 0])
        stats[0] += 1
        if rec.accepted:
            stats[1] += 1

    results = [
        ProductRecommendationStats(
            product=products[product_id],
            recommendations=total,
            success_rate=accepted / total if total else 0.0,
        )
        for product_id, (total, accepted) in counts.items()
        if product_id in products
    ]
    results.sort(key=lambda s: s.recommendations, reverse=True)
    return results[: max(limit, 0)]
