# bloomfeed/domain/services/recommendation_svc.py

from __future__ import annotations
import logging
import time
import uuid
from typing import List

from bloomfeed.domain.errors import RecommendationError, ScorerTimeout, ViewerNotFound
from bloomfeed.domain.models.product import SourceRef
from bloomfeed.domain.models.recommendation import RecommendationRecord
from bloomfeed.domain.services.candidate_aggregator import CandidateAggregator
from bloomfeed.domain.services.recommendation_cache import RecommendationCache
from bloomfeed.domain.services.scorer_svc import RelevanceScorer
from bloomfeed.utils.clock import Clock, utcnow
from bloomfeed.utils.locks import RedisLock, SingleFlight

logger = logging.getLogger(__name__)


class RecommendationService:
    """
    GetRecommendations end to end.

    High-level flow:
      1) Unless a refresh is forced, serve the cached batch when fresh.
      2) Otherwise regenerate under single-flight for this user:
           - in-process: concurrent callers await the leader's result
           - across workers: a Redis SET NX lock; losers wait then re-read the cache
      3) Regeneration = viewer context -> candidates (both catalogs) -> oracle
         ranking -> atomic batch replace -> profile bookkeeping.
      4) On a retryable failure, callers that opted in get the previous batch.
    """

    def __init__(
        self,
        *,
        cache: RecommendationCache,
        aggregator: CandidateAggregator,
        scorer: RelevanceScorer,
        profiles,
        flight: SingleFlight,
        redis=None,
        lock_ttl: int = 60,
        clock: Clock = utcnow,
    ):
        self.cache = cache
        self.aggregator = aggregator
        self.scorer = scorer
        self.profiles = profiles
        self.flight = flight
        self.redis = redis
        self.lock_ttl = lock_ttl
        self.clock = clock

    async def get_recommendations(
        self,
        user_id: str,
        *,
        force_refresh: bool = False,
        allow_stale: bool = False,
    ) -> List[RecommendationRecord]:
        logger.info(f"get_recommendations user_id={user_id} force_refresh={force_refresh} allow_stale={allow_stale}")
        if not force_refresh:
            if (cached := await self.cache.get(user_id)) is not None:
                return cached

        try:
            return await self.regenerate(user_id, invalidate_first=force_refresh)
        except RecommendationError as e:
            if not (allow_stale and e.retryable):
                raise
            previous = await self.cache.peek(user_id)
            if previous is None:
                raise
            logger.warning(
                f"Serving stale batch user_id={user_id} generated_at={previous.generated_at} after {type(e).__name__}"
            )
            return list(previous.records)

    async def regenerate(self, user_id: str, *, invalidate_first: bool = False) -> List[RecommendationRecord]:
        """At most one regeneration per user in flight; late arrivals share its outcome."""
        if self.flight.in_flight(user_id):
            logger.info(f"Regeneration already in flight, joining user_id={user_id}")

        async def _run() -> List[RecommendationRecord]:
            if invalidate_first:
                await self.invalidate(user_id)
            return await self._generate_locked(user_id)

        def _cancelled() -> ScorerTimeout:
            # Joined callers get a retryable error they can fall back from
            return ScorerTimeout(f"Regeneration for user_id={user_id} was cancelled before completing")

        return await self.flight.do(user_id, _run, on_cancel=_cancelled)

    async def invalidate(self, user_id: str) -> None:
        await self.cache.force_invalidate(user_id)
        await self.profiles.flag_refresh(user_id)

    async def _generate_locked(self, user_id: str) -> List[RecommendationRecord]:
        if self.redis is None:
            return await self._generate(user_id)

        lock = RedisLock(self.redis, f"reco:{user_id}", ttl=self.lock_ttl)
        try:
            acquired = await lock.acquire()
        except Exception as e:
            logger.warning(f"Redis lock unavailable, regenerating without it user_id={user_id}: {e}")
            return await self._generate(user_id)

        try:
            if not acquired:
                logger.info(f"Regeneration running on another worker, waiting user_id={user_id}")
                await lock.wait(timeout=self.lock_ttl)
                if (records := await self.cache.get(user_id)) is not None:
                    return records
                logger.warning(f"No fresh batch after waiting on lock, regenerating user_id={user_id}")
            return await self._generate(user_id)
        finally:
            if acquired:
                await lock.release()

    async def _generate(self, user_id: str) -> List[RecommendationRecord]:
        t0 = time.perf_counter()
        now = self.clock()

        viewer = await self.profiles.get_viewer(user_id, now)
        if viewer is None:
            raise ViewerNotFound(user_id)

        candidates = await self.aggregator.fetch_candidates()
        ranked = await self.scorer.score(viewer.scoring_context(now), candidates)

        records = [
            RecommendationRecord(
                id=uuid.uuid4().hex,
                user_id=user_id,
                source_ref=SourceRef(product_id=r.product_id, source=r.source),
                relevance_score=r.relevance_score,
                reason=r.reason,
                urgency=r.urgency,
                clicked=False,
                recommended_at=now,
            )
            for r in ranked
        ]
        batch = await self.cache.put(user_id, records)

        try:
            await self.profiles.mark_generated(user_id, batch.generated_at)
        except Exception as e:
            # The batch is written; the sweep will just revisit this user
            logger.warning(f"Could not mark profile refreshed user_id={user_id}: {e}")

        logger.info(
            f"Regenerated user_id={user_id} candidates={len(candidates)} records={len(records)} "
            f"time={time.perf_counter() - t0:.3f}s"
        )
        return list(batch.records)
