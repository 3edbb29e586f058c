# bloomfeed/domain/repositories/feed_source_repo.py

from __future__ import annotations
import re
from typing import List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING


class FeedSourceRepo:
    """
    Non-recommendation feed streams. Every query is offset/limit over a
    deterministic sort key with `id` as the tie-break, so re-reading a page
    over unchanged data returns the same rows.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def _page(self, collection: str, query: dict, sort: list, offset: int, limit: int) -> List[dict]:
        if limit <= 0:
            return []
        cursor = self.db[collection].find(query, {"_id": 0}).sort(sort).skip(offset).limit(limit)
        return [doc async for doc in cursor]

    async def list_progress(self, user_id: str, offset: int, limit: int) -> List[dict]:
        """Achieved milestones, most recent first."""
        return await self._page(
            "progress_events",
            {"user_id": user_id},
            [("achieved_at", DESCENDING), ("id", DESCENDING)],
            offset, limit,
        )

    async def list_posts(self, postal_prefix: Optional[str], offset: int, limit: int) -> List[dict]:
        """
        Community posts, most recent first. The postal prefix is matched in the
        query itself so a geo-filtered page is still a full page.
        """
        query: dict = {}
        if postal_prefix:
            query["author_postal_code"] = {"$regex": f"^{re.escape(postal_prefix)}", "$options": "i"}
        return await self._page(
            "community_posts",
            query,
            [("created_at", DESCENDING), ("id", DESCENDING)],
            offset, limit,
        )

    async def list_tips(self, stage: str, offset: int, limit: int) -> List[dict]:
        """Tips for one stage bucket, highest priority first."""
        return await self._page(
            "tips",
            {"stage": stage},
            [("priority", DESCENDING), ("id", ASCENDING)],
            offset, limit,
        )
