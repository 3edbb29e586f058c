from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from bloomfeed.domain.models.product import SourceRef, Urgency


class RecommendationRecord(BaseModel):
    id: str
    user_id: str
    source_ref: SourceRef
    relevance_score: int = Field(ge=0, le=100)
    reason: str = ""
    urgency: Urgency = "medium"
    clicked: bool = False
    clicked_at: Optional[datetime] = None
    recommended_at: datetime

    model_config = {"frozen": True}  # only `clicked` ever changes, and only in storage


class RecommendationBatch(BaseModel):
    """The user's current generation of records; replaced wholesale on regeneration."""
    user_id: str
    generated_at: datetime
    invalidated: bool = False
    records: List[RecommendationRecord] = []

    model_config = {"frozen": True}


class RefreshSummary(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0
