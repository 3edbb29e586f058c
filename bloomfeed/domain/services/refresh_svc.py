# bloomfeed/domain/services/refresh_svc.py

from __future__ import annotations
import asyncio
import logging
import time
from datetime import timedelta
from typing import List, Optional

from bloomfeed.domain.models.recommendation import RefreshSummary
from bloomfeed.domain.services.constants import FRESHNESS_WINDOW_S, REFRESH_BATCH_SIZE, REFRESH_FAILURE_BACKOFF_S
from bloomfeed.domain.services.recommendation_svc import RecommendationService
from bloomfeed.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


class BatchRefresher:
    """
    Background sweep over users whose batch is missing, stale or flagged.
    Users are processed one at a time, each under its own time budget; one
    user's failure is logged and counted and the sweep moves on.

    A failed user is stamped on its profile and skipped for `failure_backoff`.
    """

    def __init__(
        self,
        *,
        profiles,
        recommendations: RecommendationService,
        batch_size: int = REFRESH_BATCH_SIZE,
        item_timeout_s: float = 45.0,
        max_age: timedelta = timedelta(seconds=FRESHNESS_WINDOW_S),
        failure_backoff: timedelta = timedelta(seconds=REFRESH_FAILURE_BACKOFF_S),
        clock: Clock = utcnow,
    ):
        self.profiles = profiles
        self.recommendations = recommendations
        self.batch_size = batch_size
        self.item_timeout_s = item_timeout_s
        self.max_age = max_age
        self.failure_backoff = failure_backoff
        self.clock = clock

    async def find_stale(self, limit: Optional[int] = None) -> List[str]:
        limit = min(limit or self.batch_size, self.batch_size)
        return await self.profiles.find_stale(limit, self.clock(), self.max_age, self.failure_backoff)

    async def run_sweep(self, limit: Optional[int] = None) -> RefreshSummary:
        t0 = time.perf_counter()
        user_ids = await self.find_stale(limit)
        summary = RefreshSummary(total=len(user_ids))
        logger.info(f"[sweep] start users={len(user_ids)}")

        for user_id in user_ids:
            try:
                await asyncio.wait_for(self.recommendations.regenerate(user_id), timeout=self.item_timeout_s)
                summary.succeeded += 1
            except asyncio.TimeoutError:
                summary.failed += 1
                logger.error(f"[sweep] user_id={user_id} exceeded {self.item_timeout_s}s budget")
                await self._mark_failed(user_id)
            except Exception as e:
                summary.failed += 1
                logger.error(f"[sweep] user_id={user_id} failed: {type(e).__name__}: {e}")
                await self._mark_failed(user_id)

        logger.info(
            f"[sweep] done total={summary.total} succeeded={summary.succeeded} "
            f"failed={summary.failed} time_ms={(time.perf_counter() - t0) * 1000:.1f}"
        )
        return summary

    async def _mark_failed(self, user_id: str) -> None:
        try:
            await self.profiles.mark_refresh_failed(user_id, self.clock())
        except Exception as e:
            logger.warning(f"[sweep] could not record failure user_id={user_id}: {e}")

    async def run_forever(self, interval_s: float) -> None:
        """Scheduled sweeps until cancelled. A failed sweep does not stop the loop."""
        while True:
            try:
                await self.run_sweep()
            except Exception as e:
                logger.error(f"[sweep] aborted: {e}")
            await asyncio.sleep(interval_s)
