from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from bloomfeed.domain.models.viewer import ScoringContext, StageSignal, ViewerContext, season_for


@pytest.mark.parametrize("signal, key", [
    (dict(is_pregnancy=True, pregnancy_week=8), "pregnancy-trimester-1"),
    (dict(is_pregnancy=True, pregnancy_week=27), "pregnancy-trimester-2"),
    (dict(is_pregnancy=True, pregnancy_week=38), "pregnancy-trimester-3"),
    (dict(age_weeks=3), "newborn-0-3"),
    (dict(age_weeks=16), "infant-3-6"),
    (dict(age_months=9), "infant-6-12"),
    (dict(age_months=18), "toddler-12-24"),
    (dict(age_months=30), "toddler-24-plus"),
])
def test_stage_key(signal, key):
    assert StageSignal(**signal).stage_key() == key


def test_stage_requires_a_signal():
    with pytest.raises(ValidationError):
        StageSignal()
    with pytest.raises(ValidationError):
        StageSignal(is_pregnancy=True)


def test_age_months_wins_over_weeks():
    assert StageSignal(age_weeks=40, age_months=3).months == 3
    assert StageSignal(age_weeks=40).months == 10


@pytest.mark.parametrize("budget, source", [("low", "marketplace"), ("high", "affiliate"), ("medium", None), (None, None)])
def test_preferred_source(budget, source):
    ctx = ScoringContext(stage=StageSignal(age_weeks=1), budget=budget)
    assert ctx.preferred_source == source


def test_scoring_context_carries_season():
    v = ViewerContext(user_id="u1", stage=StageSignal(age_weeks=1), achieved_milestones=2)
    ctx = v.scoring_context(datetime(2026, 7, 14, tzinfo=timezone.utc))
    assert ctx.season == "summer"
    assert ctx.user_id == "u1"
    assert ctx.achieved_milestones == 2
    assert season_for(datetime(2026, 12, 1)) == "winter"
