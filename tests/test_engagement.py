import asyncio

import pytest

from bloomfeed.domain.models.product import SourceRef
from bloomfeed.domain.models.recommendation import RecommendationBatch
from bloomfeed.domain.services.engagement_svc import EngagementTracker

from fakes import make_record


@pytest.fixture
def tracker(reco_repo, catalog, clock):
    return EngagementTracker(reco_repo, catalog, clock=clock)


@pytest.fixture
def seeded(reco_repo, clock):
    asyncio.run(_seed(reco_repo, clock))
    return reco_repo


async def _seed(repo, clock):
    await repo.replace_batch(RecommendationBatch(
        user_id="u1", generated_at=clock.now, records=[make_record(1), make_record(2)],
    ))


def test_click_flags_record_and_counts(tracker, seeded, catalog, clock):
    asyncio.run(tracker.record_click("m1", recommendation_id="r001"))
    rec = seeded.batches["u1"].records[0]
    assert rec.clicked is True
    assert rec.clicked_at == clock.now
    assert seeded.batches["u1"].records[1].clicked is False
    assert catalog.clicks[("marketplace", "m1")] == 1


def test_repeat_click_is_idempotent_on_flag_but_counts_twice(tracker, seeded, catalog, clock):
    first_at = clock.now
    asyncio.run(tracker.record_click("m1", recommendation_id="r001"))
    clock.advance(minutes=5)
    asyncio.run(tracker.record_click("m1", recommendation_id="r001"))
    rec = seeded.batches["u1"].records[0]
    assert rec.clicked is True
    assert rec.clicked_at == first_at
    assert catalog.clicks[("marketplace", "m1")] == 2


def test_concurrent_clicks_are_all_counted(tracker, catalog):
    async def scenario():
        await asyncio.gather(*(tracker.record_click("a3", source="affiliate") for _ in range(50)))

    asyncio.run(scenario())
    assert catalog.clicks[("affiliate", "a3")] == 50


def test_unknown_recommendation_still_counts_the_click(tracker, seeded, catalog):
    asyncio.run(tracker.record_click("m2", recommendation_id="superseded"))
    assert catalog.clicks[("marketplace", "m2")] == 1
    assert not any(r.clicked for r in seeded.batches["u1"].records)


def test_write_failures_never_raise(tracker, seeded, catalog, reco_repo):
    reco_repo.fail_clicks = True
    catalog.fail_clicks = True
    assert asyncio.run(tracker.record_click("m1", recommendation_id="r001")) is None
    assert catalog.clicks[("marketplace", "m1")] == 0


def test_counter_failure_does_not_undo_the_flag(tracker, seeded, catalog):
    catalog.fail_clicks = True
    asyncio.run(tracker.record_click("m1", recommendation_id="r001"))
    assert seeded.batches["u1"].records[0].clicked is True


def test_recommendation_decides_which_catalog_is_counted(tracker, reco_repo, catalog, clock):
    affiliate_rec = make_record(9).model_copy(update={
        "id": "ra", "source_ref": SourceRef(product_id="a3", source="affiliate"),
    })
    reco_repo.batches["u1"] = RecommendationBatch(user_id="u1", generated_at=clock.now, records=[affiliate_rec])

    asyncio.run(tracker.record_click("a3", recommendation_id="ra"))

    assert catalog.clicks[("affiliate", "a3")] == 1
    assert ("marketplace", "a3") not in catalog.clicks
    assert reco_repo.batches["u1"].records[0].clicked is True


def test_recommendation_overrides_a_mismatched_source(tracker, seeded, catalog):
    asyncio.run(tracker.record_click("m1", source="affiliate", recommendation_id="r001"))
    assert catalog.clicks[("marketplace", "m1")] == 1
    assert ("affiliate", "m1") not in catalog.clicks


def test_flag_failure_falls_back_to_the_given_source(tracker, seeded, catalog, reco_repo):
    reco_repo.fail_clicks = True
    asyncio.run(tracker.record_click("a2", source="affiliate", recommendation_id="r001"))
    assert catalog.clicks[("affiliate", "a2")] == 1
