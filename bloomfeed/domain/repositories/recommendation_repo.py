# bloomfeed/domain/repositories/recommendation_repo.py

from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from bloomfeed.domain.models.product import SourceRef
from bloomfeed.domain.models.recommendation import RecommendationBatch, RecommendationRecord

"""
Note:
    - One document per user in `recommendation_batches`:
        { user_id, generated_at, invalidated, records: [RecommendationRecord, ...] }
    - Replacing that single document is atomic in MongoDB, so readers see either
      the previous generation or the new one, never a mix.
    - No freshness logic here: that belongs to RecommendationCache.
"""


class RecommendationRepo:

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "recommendation_batches"):
        self.col = db[collection_name]

    async def get_batch(self, user_id: str) -> Optional[RecommendationBatch]:
        doc = await self.col.find_one({"user_id": user_id}, {"_id": 0})
        return RecommendationBatch.model_validate(doc) if doc else None

    async def replace_batch(self, batch: RecommendationBatch) -> None:
        await self.col.replace_one({"user_id": batch.user_id}, batch.model_dump(), upsert=True)

    async def mark_invalidated(self, user_id: str) -> bool:
        res = await self.col.update_one({"user_id": user_id}, {"$set": {"invalidated": True}})
        return res.matched_count > 0

    async def mark_clicked(self, recommendation_id: str, at: datetime) -> Optional[SourceRef]:
        """
        Flip `clicked` on one record. Only an unclicked record is touched, so
        repeating the call keeps the first `clicked_at`.
        Returns the record's product reference, or None when no current batch
        holds that record.
        """
        doc = await self.col.find_one_and_update(
            {"records.id": recommendation_id},
            {"$set": {"records.$[r].clicked": True, "records.$[r].clicked_at": at}},
            projection={"_id": 0, "records.$": 1},
            array_filters=[{"r.id": recommendation_id, "r.clicked": False}],
        )
        if not doc or not doc.get("records"):
            return None
        return SourceRef.model_validate(doc["records"][0]["source_ref"])

    async def list_unclicked(self, user_id: str, offset: int, limit: int) -> List[RecommendationRecord]:
        """Highest relevance first; record id breaks ties so pages are stable."""
        pipeline = [
            {"$match": {"user_id": user_id}},
            {"$unwind": "$records"},
            {"$match": {"records.clicked": False}},
            {"$replaceRoot": {"newRoot": "$records"}},
            {"$sort": {"relevance_score": -1, "id": 1}},
            {"$skip": offset},
            {"$limit": limit},
        ]
        docs = await self.col.aggregate(pipeline).to_list(length=limit)
        return [RecommendationRecord.model_validate(d) for d in docs]
