# bloomfeed/domain/services/engagement_svc.py

from __future__ import annotations
import logging
from typing import Optional

from bloomfeed.domain.models.product import MARKETPLACE, SourceTag
from bloomfeed.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


class EngagementTracker:
    """
    Click side-channel. Two independent, best-effort writes:
      1) flag the recommendation record as clicked (idempotent)
      2) bump the catalog item's click counter ($inc at the storage layer)
    Nothing here raises: a failed write must never block the navigation it rides on.

    When the click names a recommendation, the counter follows that record's
    product reference, so callers may omit `source`. Without one, `source`
    defaults to the marketplace.
    """

    def __init__(self, recommendations, catalog, clock: Clock = utcnow):
        self.recommendations = recommendations
        self.catalog = catalog
        self.clock = clock

    async def record_click(
        self,
        item_id: str,
        *,
        source: Optional[SourceTag] = None,
        recommendation_id: Optional[str] = None,
    ) -> None:
        if recommendation_id:
            try:
                ref = await self.recommendations.mark_clicked(recommendation_id, self.clock())
            except Exception as e:
                logger.warning(f"Failed to flag click recommendation_id={recommendation_id}: {e}")
                ref = None
            else:
                if ref is None:
                    logger.info(f"Click on unknown or superseded recommendation_id={recommendation_id}")
            if ref is not None:
                if (source and source != ref.source) or item_id != ref.product_id:
                    logger.info(
                        f"Click target {source}/{item_id} differs from recommendation_id={recommendation_id}, "
                        f"counting {ref.source}/{ref.product_id}"
                    )
                source, item_id = ref.source, ref.product_id

        source = source or MARKETPLACE
        try:
            if not await self.catalog.increment_clicks(source, item_id):
                logger.warning(f"Click on unknown catalog item source={source} item_id={item_id}")
        except Exception as e:
            logger.warning(f"Failed to increment click count source={source} item_id={item_id}: {e}")
