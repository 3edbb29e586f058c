from fastapi import APIRouter, Depends, status
import logging

from bloomfeed.api.deps import engagement_tracker
from bloomfeed.api.v1.schemas.reco import ClickIn
from bloomfeed.domain.services.engagement_svc import EngagementTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recommendations", tags=["engagement"])


@router.post("/clicks", status_code=status.HTTP_204_NO_CONTENT)
async def record_click(
    body: ClickIn,
    tracker: EngagementTracker = Depends(engagement_tracker),
):
    """Best-effort click tracking: always 204, failures only show up in the logs."""
    logger.debug(f"Request: click item_id={body.item_id} source={body.source} rec={body.recommendation_id}")
    await tracker.record_click(body.item_id, source=body.source, recommendation_id=body.recommendation_id)
