from pydantic import BaseModel, Field
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime

SourceTag = Literal["marketplace", "affiliate"]
Urgency = Literal["high", "medium", "low"]

MARKETPLACE: SourceTag = "marketplace"
AFFILIATE: SourceTag = "affiliate"


class _CatalogItem(BaseModel):
    id: str
    title: str
    category: Optional[str] = None
    price: float = Field(default=0.0, ge=0)
    age_range: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = {"frozen": True}  # immuable = safe


class MarketplaceItem(_CatalogItem):
    """First-party listing posted by another parent."""
    source: Literal["marketplace"] = "marketplace"
    status: Literal["active", "sold"] = "active"
    condition: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.status == "active"


class AffiliateItem(_CatalogItem):
    """Third-party product synced from the affiliate network."""
    source: Literal["affiliate"] = "affiliate"
    stock_status: Literal["in_stock", "out_of_stock"] = "in_stock"
    merchant_id: Optional[str] = None
    product_url: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.stock_status == "in_stock"


CandidateProduct = Annotated[Union[MarketplaceItem, AffiliateItem], Field(discriminator="source")]


class SourceRef(BaseModel):
    product_id: str
    source: SourceTag
    model_config = {"frozen": True}

    def key(self) -> tuple[str, str]:
        return (self.source, self.product_id)


class ProductSummary(BaseModel):
    """What a product card needs, joined onto each recommendation."""
    id: str
    source: SourceTag
    title: str
    category: Optional[str] = None
    price: float = 0.0
    image_url: Optional[str] = None
    available: bool = True
    condition: Optional[str] = None
    product_url: Optional[str] = None
    model_config = {"frozen": True}

    @classmethod
    def from_item(cls, item: Union[MarketplaceItem, AffiliateItem]) -> "ProductSummary":
        return cls(
            id=item.id,
            source=item.source,
            title=item.title,
            category=item.category,
            price=item.price,
            image_url=item.image_url,
            available=item.available,
            condition=getattr(item, "condition", None),
            product_url=getattr(item, "product_url", None),
        )


class RankedItem(BaseModel):
    """One validated entry of the ranking oracle's answer."""
    product_id: str
    source: SourceTag
    relevance_score: int = Field(ge=0, le=100)
    reason: str = ""
    urgency: Urgency = "medium"
    model_config = {"frozen": True}


class CandidateSet(BaseModel):
    marketplace: List[MarketplaceItem] = []
    affiliate: List[AffiliateItem] = []
    model_config = {"frozen": True}

    def all(self) -> List[CandidateProduct]:
        return [*self.marketplace, *self.affiliate]

    def __len__(self) -> int:
        return len(self.marketplace) + len(self.affiliate)
