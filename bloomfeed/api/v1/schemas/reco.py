# api/v1/schemas/reco.py
from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional

from bloomfeed.domain.models.product import ProductSummary, SourceTag, Urgency


class RecommendationOut(BaseModel):
    id: str
    product_id: str
    source: SourceTag
    relevance_score: int
    reason: str
    urgency: Urgency
    clicked: bool
    recommended_at: datetime
    product: Optional[ProductSummary] = None   # None when the catalog row is gone or unreachable


class RecommendationsOut(BaseModel):
    user_id: str
    items: List[RecommendationOut]
    count: int


class ClickIn(BaseModel):
    item_id: str
    # Resolved from the recommendation when omitted; marketplace otherwise
    source: Optional[SourceTag] = None
    recommendation_id: Optional[str] = None


class RefreshSummaryOut(BaseModel):
    total: int
    succeeded: int
    failed: int
