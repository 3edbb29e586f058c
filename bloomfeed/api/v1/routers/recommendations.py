# bloomfeed/api/v1/routers/recommendations.py
from fastapi import APIRouter, Depends, Query, status
import time
import logging

from bloomfeed.api.deps import product_hydrator, recommendation_service
from bloomfeed.api.v1.schemas.reco import RecommendationOut, RecommendationsOut
from bloomfeed.domain.services.hydration_svc import ProductHydrator
from bloomfeed.domain.services.recommendation_svc import RecommendationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recommendations"])


@router.get("/users/{user_id}/recommendations", response_model=RecommendationsOut)
async def get_recommendations(
    user_id: str,
    force_refresh: bool = Query(False, description="Bypass the freshness window and regenerate"),
    allow_stale: bool = Query(False, description="Serve the previous batch if regeneration fails"),
    svc: RecommendationService = Depends(recommendation_service),
    hydrator: ProductHydrator = Depends(product_hydrator),
):
    """
    Current recommendation batch for a user.
    Pipeline: cache (24h) → candidates (marketplace + affiliate) → ranking oracle → atomic batch replace.
    Each item carries its catalog product summary, joined in one query per source.
    """
    logger.info(
        "Request: recommendations user_id=%s, force_refresh=%s, allow_stale=%s",
        user_id, force_refresh, allow_stale,
    )
    start_time = time.perf_counter()

    records = await svc.get_recommendations(user_id, force_refresh=force_refresh, allow_stale=allow_stale)
    products = await hydrator.hydrate(records)
    items = [
        RecommendationOut(
            id=r.id,
            product_id=r.source_ref.product_id,
            source=r.source_ref.source,
            relevance_score=r.relevance_score,
            reason=r.reason,
            urgency=r.urgency,
            clicked=r.clicked,
            recommended_at=r.recommended_at,
            product=products.get(r.source_ref.key()),
        )
        for r in records
    ]

    logger.info(
        "Response: recommendations user_id=%s, count=%s, elapsed_time=%.4fs",
        user_id, len(items), time.perf_counter() - start_time,
    )
    return RecommendationsOut(user_id=user_id, items=items, count=len(items))


@router.post("/users/{user_id}/recommendations/invalidate", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_recommendations(
    user_id: str,
    svc: RecommendationService = Depends(recommendation_service),
):
    """Next read regenerates regardless of age; the user is also queued for the next sweep."""
    logger.info(f"Request: invalidate recommendations user_id={user_id}")
    await svc.invalidate(user_id)
