# bloomfeed/domain/services/hydration_svc.py

from __future__ import annotations
import asyncio
import logging
import time
from typing import Dict, Iterable, List, Tuple

from bloomfeed.domain.models.product import AFFILIATE, MARKETPLACE, ProductSummary, SourceTag
from bloomfeed.domain.models.recommendation import RecommendationRecord

logger = logging.getLogger(__name__)

ProductKey = Tuple[SourceTag, str]


class ProductHydrator:
    """
    Joins catalog rows onto recommendation records: one `$in` query per source,
    both sources in parallel. Best effort: a source that fails to load leaves
    its records without a product summary instead of failing the response.
    """

    def __init__(self, catalog):
        self.catalog = catalog

    async def hydrate(self, records: Iterable[RecommendationRecord]) -> Dict[ProductKey, ProductSummary]:
        t0 = time.perf_counter()
        wanted: Dict[SourceTag, List[str]] = {MARKETPLACE: [], AFFILIATE: []}
        for r in records:
            ids = wanted[r.source_ref.source]
            if r.source_ref.product_id not in ids:
                ids.append(r.source_ref.product_id)

        sources = [s for s, ids in wanted.items() if ids]
        results = await asyncio.gather(
            *(self.catalog.get_many(s, wanted[s]) for s in sources),
            return_exceptions=True,
        )

        products: Dict[ProductKey, ProductSummary] = {}
        for source, res in zip(sources, results):
            if isinstance(res, Exception):
                logger.warning(f"Product hydration failed source={source}: {type(res).__name__}: {res}")
                continue
            for item in res:
                products[(source, item.id)] = ProductSummary.from_item(item)

        missing = sum(len(ids) for ids in wanted.values()) - len(products)
        logger.debug(f"hydrate products={len(products)} missing={missing} time={time.perf_counter() - t0:.3f}s")
        return products
