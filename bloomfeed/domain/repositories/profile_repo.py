# bloomfeed/domain/repositories/profile_repo.py

from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import ASCENDING
from bloomfeed.domain.models.viewer import StageSignal, ViewerContext

logger = logging.getLogger(__name__)

FULL_TERM_WEEKS = 40


def _as_aware(ts: datetime, like: datetime) -> datetime:
    if ts.tzinfo is None and like.tzinfo is not None:
        return ts.replace(tzinfo=like.tzinfo)
    return ts


def stage_from_profile(doc: dict, now: datetime) -> StageSignal:
    """
    Derive the stage signal from a profile document:
      - pregnancy: explicit `pregnancy_week`, else computed from `due_date`
      - baby: age in weeks from `birthdate`, else a stored `age_months`
    Raises ValueError if the profile carries none of these.
    """
    if doc.get("is_pregnancy"):
        week = doc.get("pregnancy_week")
        if week is None and doc.get("due_date"):
            due = _as_aware(doc["due_date"], now)
            week = max(0, FULL_TERM_WEEKS - (due - now).days // 7)
        return StageSignal(is_pregnancy=True, pregnancy_week=week)

    if doc.get("birthdate"):
        born = _as_aware(doc["birthdate"], now)
        return StageSignal(age_weeks=max(0, (now - born).days // 7))
    return StageSignal(age_months=doc.get("age_months"))


class ProfileRepo:
    """
    Viewer identity provider backed by the `profiles` collection. Read-only
    for viewer context; the refresh bookkeeping fields are the only writes.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "profiles", postal_prefix_len: int = 3):
        self.col = db[collection_name]
        self.postal_prefix_len = postal_prefix_len

    async def get_viewer(self, user_id: str, now: datetime) -> Optional[ViewerContext]:
        doc = await self.col.find_one({"user_id": user_id}, {"_id": 0})
        if not doc:
            return None
        try:
            stage = stage_from_profile(doc, now)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Profile user_id={user_id} has no usable stage signal: {e}")
            return None
        postal = (doc.get("postal_code") or "").strip().upper()
        return ViewerContext(
            user_id=user_id,
            stage=stage,
            budget=doc.get("budget"),
            postal_prefix=postal[: self.postal_prefix_len] or None,
            achieved_milestones=int(doc.get("achieved_milestones") or 0),
        )

    async def find_stale(
        self,
        limit: int,
        now: datetime,
        max_age: timedelta,
        retry_after: timedelta = timedelta(hours=1),
    ) -> List[str]:
        """
        Users whose batch was never generated, is older than `max_age`, or was
        explicitly flagged. A user whose last refresh failed sits out until
        `retry_after` has passed, then queues behind users that never failed.
        Among the rest, never-generated users sort first.
        """
        cutoff = now - max_age
        cursor = (
            self.col.find(
                {"$and": [
                    {"$or": [
                        {"recommendation_refresh_needed": True},
                        {"last_recommendation_generated": None},
                        {"last_recommendation_generated": {"$lt": cutoff}},
                    ]},
                    {"$or": [
                        {"last_refresh_failed_at": None},
                        {"last_refresh_failed_at": {"$lt": now - retry_after}},
                    ]},
                ]},
                {"_id": 0, "user_id": 1},
            )
            .sort([
                ("last_refresh_failed_at", ASCENDING),
                ("last_recommendation_generated", ASCENDING),
                ("user_id", ASCENDING),
            ])
            .limit(limit)
        )
        return [doc["user_id"] async for doc in cursor]

    async def mark_generated(self, user_id: str, at: datetime) -> None:
        await self.col.update_one(
            {"user_id": user_id},
            {
                "$set": {"last_recommendation_generated": at, "recommendation_refresh_needed": False},
                "$unset": {"last_refresh_failed_at": "", "refresh_failures": ""},
            },
        )

    async def mark_refresh_failed(self, user_id: str, at: datetime) -> None:
        await self.col.update_one(
            {"user_id": user_id},
            {"$set": {"last_refresh_failed_at": at}, "$inc": {"refresh_failures": 1}},
        )

    async def flag_refresh(self, user_id: str) -> None:
        await self.col.update_one({"user_id": user_id}, {"$set": {"recommendation_refresh_needed": True}})
