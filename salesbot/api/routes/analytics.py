"""API routes for dashboard analytics and recommendation feedback.

Provides endpoints for:
- GET /metrics - Dashboard figures, recomputed on every call
- GET /analytics/recommendations - Most recommended products
- POST /recommendations/{id}/accept - Mark a recommendation as accepted
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from salesbot.api.dependencies import get_store
from salesbot.api.schemas import (
    DashboardMetricsResponse,
    RecommendationResponse,
    RecommendedProductResponse,
)
from salesbot.store.memory import EntityStore
from salesbot.store.models import RecommendationPatch

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analytics"])


@router.get("/metrics", response_model=DashboardMetricsResponse)
def get_metrics(store: EntityStore = Depends(get_store)) -> DashboardMetricsResponse:
    """Active conversations, conversion rate, revenue and average order value."""
    store.record_api_metric("dashboard", "/metrics")
    return DashboardMetricsResponse.model_validate(store.get_metrics())


@router.get("/analytics/recommendations", response_model=list[RecommendedProductResponse])
def top_recommendations(
    limit: int = Query(10, ge=1, le=100),
    store: EntityStore = Depends(get_store),
) -> list[RecommendedProductResponse]:
    """Products ranked by recommendation count with their acceptance rate."""
    return [
        RecommendedProductResponse.model_validate(s)
        for s in store.top_recommended_products(limit)
    ]


@router.post("/recommendations/{recommendation_id}/accept", response_model=RecommendationResponse)
def accept_recommendation(
    recommendation_id: int,
    store: EntityStore = Depends(get_store),
) -> RecommendationResponse:
    """Record that the customer accepted a recommendation.

    What counts as acceptance is decided by the caller.

    Raises:
        HTTPException: 404 if not found.
    """
    recommendation = store.update_recommendation(
        recommendation_id, RecommendationPatch(accepted=True)
    )
    if recommendation is None:
        raise HTTPException(
            status_code=404, detail=f"Recommendation {recommendation_id} not found"
        )
    logger.info("Recommendation %s accepted", recommendation_id)
    return RecommendationResponse.model_validate(recommendation)
