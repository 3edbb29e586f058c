from pydantic import BaseModel, Field, model_validator
from typing import Literal, Optional
from datetime import datetime

from bloomfeed.domain.models.product import AFFILIATE, MARKETPLACE, SourceTag

Budget = Literal["low", "medium", "high"]
Season = Literal["winter", "spring", "summer", "fall"]

_SEASON_BY_MONTH = {
    12: "winter", 1: "winter", 2: "winter",
    3: "spring", 4: "spring", 5: "spring",
    6: "summer", 7: "summer", 8: "summer",
    9: "fall", 10: "fall", 11: "fall",
}


def season_for(now: datetime) -> Season:
    return _SEASON_BY_MONTH[now.month]


class StageSignal(BaseModel):
    """
    Where the family is: a pregnancy week, or the baby's age in weeks or months.
    At least one of the two shapes must be present.
    """
    is_pregnancy: bool = False
    pregnancy_week: Optional[int] = Field(default=None, ge=0, le=45)
    age_weeks: Optional[int] = Field(default=None, ge=0)
    age_months: Optional[int] = Field(default=None, ge=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _require_signal(self):
        if self.is_pregnancy:
            if self.pregnancy_week is None:
                raise ValueError("pregnancy stage requires pregnancy_week")
        elif self.age_weeks is None and self.age_months is None:
            raise ValueError("stage signal requires age_weeks, age_months or a pregnancy week")
        return self

    @property
    def months(self) -> Optional[int]:
        if self.age_months is not None:
            return self.age_months
        return self.age_weeks // 4 if self.age_weeks is not None else None

    def stage_key(self) -> str:
        """Bucket used to match tips to the viewer."""
        if self.is_pregnancy:
            week = self.pregnancy_week or 0
            if week <= 13:
                return "pregnancy-trimester-1"
            if week <= 27:
                return "pregnancy-trimester-2"
            return "pregnancy-trimester-3"
        m = self.months or 0
        if m < 3:
            return "newborn-0-3"
        if m < 6:
            return "infant-3-6"
        if m < 12:
            return "infant-6-12"
        if m < 24:
            return "toddler-12-24"
        return "toddler-24-plus"


class ScoringContext(BaseModel):
    """What the ranking oracle is told about the viewer."""
    user_id: Optional[str] = None
    stage: StageSignal
    budget: Optional[Budget] = None
    season: Optional[Season] = None
    achieved_milestones: Optional[int] = Field(default=None, ge=0)

    model_config = {"frozen": True}

    @property
    def preferred_source(self) -> Optional[SourceTag]:
        # Lower budget leans on second-hand listings, higher budget on retail
        if self.budget == "low":
            return MARKETPLACE
        if self.budget == "high":
            return AFFILIATE
        return None


class ViewerContext(BaseModel):
    user_id: str
    stage: StageSignal
    budget: Optional[Budget] = None
    postal_prefix: Optional[str] = None
    achieved_milestones: int = 0

    model_config = {"frozen": True}

    def scoring_context(self, now: datetime) -> ScoringContext:
        return ScoringContext(
            user_id=self.user_id,
            stage=self.stage,
            budget=self.budget,
            season=season_for(now),
            achieved_milestones=self.achieved_milestones,
        )
