from fastapi import APIRouter, Depends, Query
import logging

from bloomfeed.api.deps import batch_refresher
from bloomfeed.api.v1.schemas.reco import RefreshSummaryOut
from bloomfeed.domain.services.refresh_svc import BatchRefresher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recommendations", tags=["refresh"])


@router.post("/refresh-sweep", response_model=RefreshSummaryOut)
async def run_refresh_sweep(
    limit: int = Query(50, ge=1, le=500, description="Max users to refresh (capped by settings)"),
    refresher: BatchRefresher = Depends(batch_refresher),
):
    """Regenerate stale batches; meant for a scheduler (cron) rather than end users."""
    summary = await refresher.run_sweep(limit)
    return RefreshSummaryOut(**summary.model_dump())
