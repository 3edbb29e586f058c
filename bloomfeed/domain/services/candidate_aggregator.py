# bloomfeed/domain/services/candidate_aggregator.py

from __future__ import annotations
import asyncio
import logging
import time
from typing import Optional

from bloomfeed.domain.errors import CatalogUnavailable
from bloomfeed.domain.models.product import AFFILIATE, MARKETPLACE, CandidateSet
from bloomfeed.domain.services.constants import DEFAULT_CANDIDATE_LIMIT

logger = logging.getLogger(__name__)


class CandidateAggregator:
    """
    Pulls the candidate pool from both catalogs.

    Both fetches must succeed: a pool missing one catalog would bias the
    ranking, so any failure aborts with CatalogUnavailable. The first failure
    cancels the other fetch instead of waiting for it. No retries here.
    """

    def __init__(
        self,
        catalog,
        *,
        marketplace_limit: int = DEFAULT_CANDIDATE_LIMIT,
        affiliate_limit: int = DEFAULT_CANDIDATE_LIMIT,
    ):
        self.catalog = catalog
        self.marketplace_limit = marketplace_limit
        self.affiliate_limit = affiliate_limit

    async def fetch_candidates(
        self,
        marketplace_limit: Optional[int] = None,
        affiliate_limit: Optional[int] = None,
    ) -> CandidateSet:
        m_limit = marketplace_limit if marketplace_limit is not None else self.marketplace_limit
        a_limit = affiliate_limit if affiliate_limit is not None else self.affiliate_limit
        t0 = time.perf_counter()

        tasks = {
            asyncio.create_task(self.catalog.list_active(MARKETPLACE, m_limit)): MARKETPLACE,
            asyncio.create_task(self.catalog.list_active(AFFILIATE, a_limit)): AFFILIATE,
        }
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            failures = [
                (source, t.exception()) for t, source in tasks.items()
                if t in done and t.exception() is not None
            ]
            if failures:
                source, err = failures[0]
                logger.error(f"Catalog fetch failed source={source}: {err}")
                raise CatalogUnavailable(source, err) from err
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.wait(pending)

        marketplace, affiliate = (task.result() for task in tasks)
        # Storage already filters on availability; re-check so nothing unavailable is ever scored
        market_ok = [p for p in marketplace if p.available][:m_limit]
        affiliate_ok = [p for p in affiliate if p.available][:a_limit]
        dropped = len(marketplace) + len(affiliate) - len(market_ok) - len(affiliate_ok)
        if dropped:
            logger.warning(f"Dropped {dropped} unavailable catalog items from candidate pool")

        logger.info(
            "candidates ok marketplace=%s affiliate=%s time=%.3fs",
            len(market_ok), len(affiliate_ok), time.perf_counter() - t0,
        )
        return CandidateSet(marketplace=market_ok, affiliate=affiliate_ok)
