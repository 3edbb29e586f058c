# bloomfeed/domain/services/recommendation_cache.py

from __future__ import annotations
import logging
from datetime import timedelta
from typing import List, Optional, Sequence

from bloomfeed.domain.errors import CacheWriteFailure
from bloomfeed.domain.models.recommendation import RecommendationBatch, RecommendationRecord
from bloomfeed.domain.services.constants import FRESHNESS_WINDOW_S
from bloomfeed.utils.clock import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)


class RecommendationCache:
    """
    Cache-aside store of each user's current batch.

      get(user_id)              -> records if fresh and not invalidated, else None (miss)
      put(user_id, records)     -> replace the whole batch in one write
      force_invalidate(user_id) -> next get() misses regardless of age

    The repository owns storage; this class owns the freshness rules.
    """

    def __init__(self, repo, *, max_age: timedelta = timedelta(seconds=FRESHNESS_WINDOW_S), clock: Clock = utcnow):
        self.repo = repo
        self.max_age = max_age
        self.clock = clock

    async def get(self, user_id: str, max_age: Optional[timedelta] = None) -> Optional[List[RecommendationRecord]]:
        max_age = max_age if max_age is not None else self.max_age
        batch = await self.repo.get_batch(user_id)
        if batch is None:
            logger.info(f"Reco cache miss (empty) user_id={user_id}")
            return None
        if batch.invalidated:
            logger.info(f"Reco cache miss (invalidated) user_id={user_id}")
            return None
        age = self.clock() - as_utc(batch.generated_at)
        if age >= max_age:
            logger.info(f"Reco cache miss (stale, age={age}) user_id={user_id}")
            return None
        logger.info(f"Reco cache hit user_id={user_id} records={len(batch.records)}")
        return list(batch.records)

    async def peek(self, user_id: str) -> Optional[RecommendationBatch]:
        """Current batch whatever its age; used for the degraded stale fallback."""
        return await self.repo.get_batch(user_id)

    async def put(self, user_id: str, records: Sequence[RecommendationRecord]) -> RecommendationBatch:
        batch = RecommendationBatch(
            user_id=user_id,
            generated_at=self.clock(),
            invalidated=False,
            records=list(records),
        )
        try:
            await self.repo.replace_batch(batch)
        except Exception as e:
            logger.error(f"Reco cache write failed user_id={user_id}: {e}")
            raise CacheWriteFailure(f"Could not persist batch for user_id={user_id}: {e}") from e
        logger.info(f"Reco cache put user_id={user_id} records={len(batch.records)}")
        return batch

    async def force_invalidate(self, user_id: str) -> None:
        found = await self.repo.mark_invalidated(user_id)
        logger.info(f"Reco cache invalidated user_id={user_id} had_batch={found}")
