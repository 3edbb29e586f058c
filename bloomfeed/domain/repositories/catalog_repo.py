# bloomfeed/domain/repositories/catalog_repo.py

from __future__ import annotations
from typing import List, Sequence
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING
from bloomfeed.domain.models.product import (
    AFFILIATE,
    MARKETPLACE,
    AffiliateItem,
    CandidateProduct,
    MarketplaceItem,
    SourceTag,
)

# Per-source collection name, availability filter and model
_CATALOGS = {
    MARKETPLACE: ("marketplace_listings", {"status": "active"}, MarketplaceItem),
    AFFILIATE: ("affiliate_products", {"stock_status": "in_stock"}, AffiliateItem),
}

_PROJECTION = {
    "_id": 0,
    "id": 1,
    "title": 1,
    "category": 1,
    "price": 1,
    "age_range": 1,
    "description": 1,
    "image_url": 1,
    "updated_at": 1,
    "status": 1,
    "condition": 1,
    "stock_status": 1,
    "merchant_id": 1,
    "product_url": 1,
}


class CatalogRepo:
    """
    Both product catalogs behind one interface:
      - marketplace_listings: first-party listings (status active|sold)
      - affiliate_products:   synced affiliate products (stock_status in_stock|out_of_stock)
    Each document carries a `click_count` counter maintained with $inc.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    def _catalog(self, source: SourceTag):
        try:
            return _CATALOGS[source]
        except KeyError:
            raise ValueError(f"Unknown catalog source: {source}")

    async def list_active(self, source: SourceTag, limit: int) -> List[CandidateProduct]:
        """Available items only, most recently updated first (id breaks ties)."""
        collection, available, model = self._catalog(source)
        cursor = (
            self.db[collection]
            .find(available, _PROJECTION)
            .sort([("updated_at", DESCENDING), ("id", DESCENDING)])
            .limit(limit)
        )
        docs = [doc async for doc in cursor]
        return [model.model_validate({**doc, "source": source}) for doc in docs]

    async def get_many(self, source: SourceTag, ids: Sequence[str]) -> List[CandidateProduct]:
        """
        Items by id in one $in query, whatever their availability (a card for a
        sold listing still renders). Missing ids are simply absent.
        """
        if not ids:
            return []
        collection, _, model = self._catalog(source)
        cursor = self.db[collection].find({"id": {"$in": list(ids)}}, _PROJECTION)
        return [model.model_validate({**doc, "source": source}) async for doc in cursor]

    async def increment_clicks(self, source: SourceTag, item_id: str) -> bool:
        """Atomic server-side increment; returns False if the item does not exist."""
        collection, _, _ = self._catalog(source)
        res = await self.db[collection].update_one({"id": item_id}, {"$inc": {"click_count": 1}})
        return res.matched_count > 0
