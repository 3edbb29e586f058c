from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

FeedItemType = Literal["milestone", "productBatch", "community", "tip"]

MILESTONE: FeedItemType = "milestone"
PRODUCT_BATCH: FeedItemType = "productBatch"
COMMUNITY: FeedItemType = "community"
TIP: FeedItemType = "tip"


class FeedItem(BaseModel):
    # "<type>:<entity id>" so repeated fetches dedupe client-side
    id: str
    type: FeedItemType
    payload: Dict[str, Any]
    timestamp: Optional[datetime] = None

    model_config = {"frozen": True}


class FeedCursor(BaseModel):
    """Next page to request, and whether there is anything left to request."""
    page: int = Field(default=0, ge=0)
    has_more: bool = True

    def advance(self, has_more: bool) -> "FeedCursor":
        return FeedCursor(page=self.page + 1, has_more=has_more)


class FeedPage(BaseModel):
    items: List[FeedItem]
    cursor: FeedCursor
