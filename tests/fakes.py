"""
In-memory stand-ins for the Mongo repositories and the ranking oracle.
They honour the same contracts as the real adapters (ordering, availability
filtering, atomic counters) so services can be exercised without a database.
"""
import asyncio
import json
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from bloomfeed.domain.models.product import AffiliateItem, MarketplaceItem
from bloomfeed.domain.models.recommendation import RecommendationBatch, RecommendationRecord
from bloomfeed.domain.models.viewer import StageSignal, ViewerContext


T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# =============================================================================
#                               CATALOG
# =============================================================================

class FakeCatalogRepo:
    def __init__(self, marketplace=(), affiliate=(), *, filter_available: bool = True):
        self.items = {"marketplace": list(marketplace), "affiliate": list(affiliate)}
        self.filter_available = filter_available
        self.fail_sources: set = set()
        self.list_calls: List[tuple] = []
        self.delays: Dict[str, float] = {}
        self.cancelled: List[str] = []
        self.fail_lookups: set = set()
        self.lookups: List[tuple] = []
        self.clicks: Dict[tuple, int] = defaultdict(int)
        self.fail_clicks = False

    async def list_active(self, source, limit):
        self.list_calls.append((source, limit))
        try:
            await asyncio.sleep(self.delays.get(source, 0))
        except asyncio.CancelledError:
            self.cancelled.append(source)
            raise
        if source in self.fail_sources:
            raise ConnectionError(f"{source} catalog down")
        rows = self.items[source]
        if self.filter_available:
            rows = [r for r in rows if r.available]
        return rows[:limit]

    async def get_many(self, source, ids):
        self.lookups.append((source, list(ids)))
        await asyncio.sleep(0)
        if source in self.fail_lookups:
            raise ConnectionError(f"{source} catalog down")
        return [i for i in self.items[source] if i.id in ids]

    async def increment_clicks(self, source, item_id):
        await asyncio.sleep(0)
        if self.fail_clicks:
            raise ConnectionError("catalog write failed")
        if not any(i.id == item_id for i in self.items[source]):
            return False
        self.clicks[(source, item_id)] += 1
        return True


def marketplace_item(i: int, **kw) -> MarketplaceItem:
    data = {"id": f"m{i}", "title": f"Listing {i}", "category": "gear", "price": 10.0 + i}
    data.update(kw)
    return MarketplaceItem(**data)


def affiliate_item(i: int, **kw) -> AffiliateItem:
    data = {"id": f"a{i}", "title": f"Product {i}", "category": "nursery", "price": 40.0 + i}
    data.update(kw)
    return AffiliateItem(**data)


# =============================================================================
#                               RECOMMENDATIONS
# =============================================================================

class FakeRecommendationRepo:
    def __init__(self):
        self.batches: Dict[str, RecommendationBatch] = {}
        self.writes = 0
        self.fail_writes = False
        self.fail_clicks = False

    async def get_batch(self, user_id):
        await asyncio.sleep(0)
        return self.batches.get(user_id)

    async def replace_batch(self, batch):
        await asyncio.sleep(0)
        if self.fail_writes:
            raise ConnectionError("write rejected")
        self.batches[batch.user_id] = batch
        self.writes += 1

    async def mark_invalidated(self, user_id):
        batch = self.batches.get(user_id)
        if batch is None:
            return False
        self.batches[user_id] = batch.model_copy(update={"invalidated": True})
        return True

    async def mark_clicked(self, recommendation_id, at):
        await asyncio.sleep(0)
        if self.fail_clicks:
            raise ConnectionError("click write failed")
        for user_id, batch in self.batches.items():
            for idx, rec in enumerate(batch.records):
                if rec.id != recommendation_id:
                    continue
                if not rec.clicked:
                    records = list(batch.records)
                    records[idx] = rec.model_copy(update={"clicked": True, "clicked_at": at})
                    self.batches[user_id] = batch.model_copy(update={"records": records})
                return rec.source_ref
        return None

    async def list_unclicked(self, user_id, offset, limit):
        batch = self.batches.get(user_id)
        if batch is None:
            return []
        rows = sorted((r for r in batch.records if not r.clicked), key=lambda r: (-r.relevance_score, r.id))
        return rows[offset:offset + limit]


def make_record(i: int, user_id: str = "u1", *, score: Optional[int] = None, at: datetime = T0) -> RecommendationRecord:
    return RecommendationRecord(
        id=f"r{i:03d}",
        user_id=user_id,
        source_ref={"product_id": f"m{i}", "source": "marketplace"},
        relevance_score=score if score is not None else max(0, 100 - i),
        reason="fits the current stage",
        urgency="medium",
        recommended_at=at,
    )


# =============================================================================
#                               PROFILES / FEED SOURCES
# =============================================================================

def viewer(user_id: str = "u1", **kw) -> ViewerContext:
    data = {"user_id": user_id, "stage": StageSignal(age_weeks=10), "budget": None, "postal_prefix": "SW1"}
    data.update(kw)
    return ViewerContext(**data)


class FakeProfileRepo:
    def __init__(self, viewers=()):
        self.viewers: Dict[str, ViewerContext] = {v.user_id: v for v in viewers}
        self.generated: Dict[str, Optional[datetime]] = {v.user_id: None for v in viewers}
        self.flagged: set = set()
        self.failed: Dict[str, datetime] = {}

    async def get_viewer(self, user_id, now):
        return self.viewers.get(user_id)

    async def find_stale(self, limit, now, max_age, retry_after=timedelta(hours=1)):
        stale = [
            uid for uid, at in self.generated.items()
            if (uid in self.flagged or at is None or at < now - max_age)
            and (uid not in self.failed or self.failed[uid] < now - retry_after)
        ]
        # never-failed first, then the oldest failure
        stale.sort(key=lambda uid: (uid in self.failed, self.failed.get(uid, now)))
        return stale[:limit]

    async def mark_generated(self, user_id, at):
        self.generated[user_id] = at
        self.flagged.discard(user_id)
        self.failed.pop(user_id, None)

    async def mark_refresh_failed(self, user_id, at):
        self.failed[user_id] = at

    async def flag_refresh(self, user_id):
        self.flagged.add(user_id)


class FakeFeedSources:
    def __init__(self, progress=(), posts=(), tips=()):
        self.progress = list(progress)
        self.posts = list(posts)
        self.tips = list(tips)
        self.post_prefixes: List[Optional[str]] = []

    async def list_progress(self, user_id, offset, limit):
        await asyncio.sleep(0)
        rows = [p for p in self.progress if p["user_id"] == user_id]
        return rows[offset:offset + limit]

    async def list_posts(self, postal_prefix, offset, limit):
        self.post_prefixes.append(postal_prefix)
        rows = self.posts
        if postal_prefix:
            rows = [p for p in rows if p["author_postal_code"].upper().startswith(postal_prefix.upper())]
        return rows[offset:offset + limit]

    async def list_tips(self, stage, offset, limit):
        rows = [t for t in self.tips if t["stage"] == stage]
        return rows[offset:offset + limit]


# =============================================================================
#                               ORACLE
# =============================================================================

def rank_everything(request: dict) -> str:
    """Rank every candidate it was shown, in order, with descending scores."""
    return json.dumps({
        "recommendations": [
            {
                "product_id": c["id"],
                "source": c["source"],
                "relevance_score": 95 - i,
                "reason": f"useful now ({c['title']})",
                "urgency": "high" if i < 3 else "medium",
            }
            for i, c in enumerate(request["candidates"])
        ]
    })


class FakeOracle:
    def __init__(self, responder: Callable[[dict], str] = rank_everything, *, delay: float = 0.0):
        self.responder = responder
        self.delay = delay
        self.calls: List[dict] = []
        self.hints: List[Optional[str]] = []
        self.hang_on_calls: set = set()
        self.fail_with: Optional[Exception] = None

    async def rank(self, request, *, repair_hint=None):
        self.calls.append(request)
        self.hints.append(repair_hint)
        if len(self.calls) in self.hang_on_calls:
            await asyncio.sleep(3600)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return self.responder(request)


# =============================================================================
#                               REDIS
# =============================================================================

class FakeRedis:
    """Just enough of redis.asyncio.Redis for RedisLock."""

    def __init__(self):
        self.store: Dict[str, str] = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def eval(self, script, numkeys, key, token):
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        return int(key in self.store)
