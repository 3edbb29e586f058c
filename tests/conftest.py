import os

# Settings are read at import time by bloomfeed.main; give the required ones test values
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGO_DB", "bloomfeed_test")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")

import pytest

from bloomfeed.domain.services.candidate_aggregator import CandidateAggregator
from bloomfeed.domain.services.recommendation_cache import RecommendationCache
from bloomfeed.domain.services.recommendation_svc import RecommendationService
from bloomfeed.domain.services.scorer_svc import RelevanceScorer
from bloomfeed.utils.locks import SingleFlight

from fakes import (
    FakeCatalogRepo,
    FakeClock,
    FakeOracle,
    FakeProfileRepo,
    FakeRecommendationRepo,
    affiliate_item,
    marketplace_item,
    viewer,
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return FakeCatalogRepo(
        marketplace=[marketplace_item(i) for i in range(1, 11)],
        affiliate=[affiliate_item(i) for i in range(1, 11)],
    )


@pytest.fixture
def reco_repo():
    return FakeRecommendationRepo()


@pytest.fixture
def profiles():
    return FakeProfileRepo([viewer("u1"), viewer("u2", budget="low"), viewer("u3", budget="high")])


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def build_service(clock, catalog, reco_repo, profiles):
    """Factory so tests can swap in their own oracle or scorer timeout."""
    def _build(oracle, *, timeout_s: float = 5.0) -> RecommendationService:
        return RecommendationService(
            cache=RecommendationCache(reco_repo, clock=clock),
            aggregator=CandidateAggregator(catalog),
            scorer=RelevanceScorer(oracle, timeout_s=timeout_s),
            profiles=profiles,
            flight=SingleFlight(),
            clock=clock,
        )
    return _build


@pytest.fixture
def service(build_service, oracle):
    return build_service(oracle)
