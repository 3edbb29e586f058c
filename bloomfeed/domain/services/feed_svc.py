# bloomfeed/domain/services/feed_svc.py

from __future__ import annotations
import asyncio
import hashlib
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Mapping, Optional, Sequence

from bloomfeed.domain.errors import ViewerNotFound
from bloomfeed.domain.models.feed import (
    COMMUNITY,
    MILESTONE,
    PRODUCT_BATCH,
    TIP,
    FeedCursor,
    FeedItem,
    FeedItemType,
    FeedPage,
)
from bloomfeed.domain.models.recommendation import RecommendationRecord
from bloomfeed.domain.services.constants import FEED_PATTERN, FEED_PRODUCT_BATCH_SIZE, FEED_SLOT_BUDGET
from bloomfeed.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


def slot_quotas(slot_budget: int, pattern: Sequence[FeedItemType] = FEED_PATTERN) -> Dict[FeedItemType, int]:
    """How many pattern positions each stream gets within one page."""
    quotas = {kind: 0 for kind in pattern}
    for i in range(slot_budget):
        quotas[pattern[i % len(pattern)]] += 1
    return quotas


def _milestone_item(doc: dict) -> FeedItem:
    return FeedItem(id=f"{MILESTONE}:{doc['id']}", type=MILESTONE, payload=doc, timestamp=doc.get("achieved_at"))

def _community_item(doc: dict) -> FeedItem:
    return FeedItem(id=f"{COMMUNITY}:{doc['id']}", type=COMMUNITY, payload=doc, timestamp=doc.get("created_at"))

def _tip_item(doc: dict) -> FeedItem:
    return FeedItem(id=f"{TIP}:{doc['id']}", type=TIP, payload=doc, timestamp=doc.get("updated_at"))

def _with_product(record: RecommendationRecord, products: Mapping) -> dict:
    summary = products.get(record.source_ref.key())
    return {**record.model_dump(), "product": summary.model_dump() if summary else None}

def _product_batch_item(records: List[RecommendationRecord], products: Mapping) -> FeedItem:
    # Derived from the member record ids, so the same slice always maps to the same id
    digest = hashlib.sha1(",".join(r.id for r in records).encode()).hexdigest()[:12]
    return FeedItem(
        id=f"{PRODUCT_BATCH}:{digest}",
        type=PRODUCT_BATCH,
        payload={"recommendations": [_with_product(r, products) for r in records]},
        timestamp=max(r.recommended_at for r in records),
    )

_SINGLE_BUILDERS: Dict[FeedItemType, Callable[[dict], FeedItem]] = {
    MILESTONE: _milestone_item,
    COMMUNITY: _community_item,
    TIP: _tip_item,
}


def compose_page(
    queues: Dict[FeedItemType, Deque],
    *,
    slot_budget: int = FEED_SLOT_BUDGET,
    product_batch_size: int = FEED_PRODUCT_BATCH_SIZE,
    pattern: Sequence[FeedItemType] = FEED_PATTERN,
    products: Optional[Mapping] = None,
) -> List[FeedItem]:
    """
    Walk the pattern for `slot_budget` positions. An empty stream's slot is
    skipped (no placeholder); a product slot takes up to `product_batch_size`
    records as one composite item. Stops early once every queue is drained.
    `products` maps (source, product_id) to the summary joined onto each record.
    """
    items: List[FeedItem] = []
    for slot in range(slot_budget):
        if not any(queues.values()):
            break
        kind = pattern[slot % len(pattern)]
        q = queues.get(kind)
        if not q:
            continue
        if kind == PRODUCT_BATCH:
            batch = [q.popleft() for _ in range(min(product_batch_size, len(q)))]
            items.append(_product_batch_item(batch, products or {}))
        else:
            items.append(_SINGLE_BUILDERS[kind](q.popleft()))
    return items


class FeedCompositor:
    """
    One infinite-scroll page per call, mixing progress events, un-clicked
    recommendations, community posts and stage tips.

    The slot budget counts pattern positions visited, so each stream's share
    of a page is fixed. Page `p` therefore reads every stream at
    offset = p * share, and across pages each stream item is emitted exactly
    once. One extra row per stream is read as a peek to decide `has_more`.
    """

    def __init__(
        self,
        *,
        profiles,
        sources,
        recommendations,
        slot_budget: int = FEED_SLOT_BUDGET,
        product_batch_size: int = FEED_PRODUCT_BATCH_SIZE,
        hydrator=None,
        clock: Clock = utcnow,
    ):
        if slot_budget < len(FEED_PATTERN):
            raise ValueError(f"slot_budget must cover the whole pattern ({len(FEED_PATTERN)} slots)")
        if product_batch_size < 1:
            raise ValueError("product_batch_size must be >= 1")
        self.profiles = profiles
        self.sources = sources
        self.recommendations = recommendations
        self.slot_budget = slot_budget
        self.product_batch_size = product_batch_size
        self.hydrator = hydrator
        self.clock = clock

        quotas = slot_quotas(slot_budget)
        self.limits: Dict[FeedItemType, int] = {
            MILESTONE: quotas[MILESTONE],
            PRODUCT_BATCH: quotas[PRODUCT_BATCH] * product_batch_size,
            COMMUNITY: quotas[COMMUNITY],
            TIP: quotas[TIP],
        }

    async def get_page(self, user_id: str, page: int) -> FeedPage:
        if page < 0:
            raise ValueError("page must be >= 0")
        t0 = time.perf_counter()
        viewer = await self.profiles.get_viewer(user_id, self.clock())
        if viewer is None:
            raise ViewerNotFound(user_id)

        lim = self.limits
        # All four pulls must land before composing: no partial pages
        progress, recos, posts, tips = await asyncio.gather(
            self.sources.list_progress(user_id, page * lim[MILESTONE], lim[MILESTONE] + 1),
            self.recommendations.list_unclicked(user_id, page * lim[PRODUCT_BATCH], lim[PRODUCT_BATCH] + 1),
            self.sources.list_posts(viewer.postal_prefix, page * lim[COMMUNITY], lim[COMMUNITY] + 1),
            self.sources.list_tips(viewer.stage.stage_key(), page * lim[TIP], lim[TIP] + 1),
        )
        rows = {MILESTONE: progress, PRODUCT_BATCH: recos, COMMUNITY: posts, TIP: tips}

        has_more = any(len(rows[kind]) > lim[kind] for kind in rows)
        queues = {kind: deque(rows[kind][: lim[kind]]) for kind in rows}
        products = {}
        if self.hydrator is not None and queues[PRODUCT_BATCH]:
            products = await self.hydrator.hydrate(queues[PRODUCT_BATCH])
        items = compose_page(
            queues,
            slot_budget=self.slot_budget,
            product_batch_size=self.product_batch_size,
            products=products,
        )
        if not items:
            has_more = False

        logger.info(
            "feed page user_id=%s page=%s items=%s has_more=%s sizes=%s time=%.3fs",
            user_id, page, len(items), has_more,
            {k: min(len(v), lim[k]) for k, v in rows.items()}, time.perf_counter() - t0,
        )
        return FeedPage(items=items, cursor=FeedCursor(page=page).advance(has_more))
