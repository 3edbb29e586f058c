# bloomfeed/api/deps.py
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends
from bloomfeed.core.config import Settings, get_settings
from bloomfeed.db.mongo import get_db
from bloomfeed.db.redis import get_redis
from bloomfeed.domain.repositories.catalog_repo import CatalogRepo
from bloomfeed.domain.repositories.feed_source_repo import FeedSourceRepo
from bloomfeed.domain.repositories.profile_repo import ProfileRepo
from bloomfeed.domain.repositories.recommendation_repo import RecommendationRepo
from bloomfeed.domain.services.candidate_aggregator import CandidateAggregator
from bloomfeed.domain.services.engagement_svc import EngagementTracker
from bloomfeed.domain.services.feed_svc import FeedCompositor
from bloomfeed.domain.services.hydration_svc import ProductHydrator
from bloomfeed.domain.services.recommendation_cache import RecommendationCache
from bloomfeed.domain.services.recommendation_svc import RecommendationService
from bloomfeed.domain.services.refresh_svc import BatchRefresher
from bloomfeed.domain.services.scorer_svc import OpenAIRankingOracle, RelevanceScorer
from bloomfeed.utils.locks import SingleFlight

# One per process: every request for a user must see the same in-flight map
_single_flight = SingleFlight()


def single_flight() -> SingleFlight:
    return _single_flight


@lru_cache
def _oracle() -> OpenAIRankingOracle:
    return OpenAIRankingOracle(get_settings())


# ----- Builders (also used by the background sweep) ---------------------------

def build_recommendation_service(db, redis, settings: Settings) -> RecommendationService:
    return RecommendationService(
        cache=RecommendationCache(
            RecommendationRepo(db),
            max_age=timedelta(seconds=settings.freshness_window_s),
        ),
        aggregator=CandidateAggregator(
            CatalogRepo(db),
            marketplace_limit=settings.marketplace_candidate_limit,
            affiliate_limit=settings.affiliate_candidate_limit,
        ),
        scorer=RelevanceScorer(
            _oracle(),
            timeout_s=settings.scorer_timeout_s,
            parse_retries=settings.scorer_parse_retries,
            min_items=settings.scorer_min_items,
            max_items=settings.scorer_max_items,
        ),
        profiles=ProfileRepo(db, postal_prefix_len=settings.postal_prefix_len),
        flight=_single_flight,
        redis=redis,
        lock_ttl=settings.regen_lock_ttl,
    )


def build_refresher(db, redis, settings: Settings) -> BatchRefresher:
    return BatchRefresher(
        profiles=ProfileRepo(db, postal_prefix_len=settings.postal_prefix_len),
        recommendations=build_recommendation_service(db, redis, settings),
        batch_size=settings.refresh_batch_size,
        item_timeout_s=settings.refresh_item_timeout_s,
        max_age=timedelta(seconds=settings.freshness_window_s),
        failure_backoff=timedelta(seconds=settings.refresh_failure_backoff_s),
    )


# ----- FastAPI dependencies ---------------------------------------------------

# Dependency for injecting the MongoDB database into endpoints/services
async def mongo_db(db = Depends(get_db)):
    return db

# Dependency for injecting the Redis client (None when not configured)
def redis_dep():
    return get_redis()


def recommendation_service(db = Depends(mongo_db), redis = Depends(redis_dep)) -> RecommendationService:
    return build_recommendation_service(db, redis, get_settings())


def batch_refresher(db = Depends(mongo_db), redis = Depends(redis_dep)) -> BatchRefresher:
    return build_refresher(db, redis, get_settings())


def feed_compositor(db = Depends(mongo_db)) -> FeedCompositor:
    settings = get_settings()
    return FeedCompositor(
        profiles=ProfileRepo(db, postal_prefix_len=settings.postal_prefix_len),
        sources=FeedSourceRepo(db),
        recommendations=RecommendationRepo(db),
        slot_budget=settings.feed_slot_budget,
        product_batch_size=settings.feed_product_batch_size,
        hydrator=ProductHydrator(CatalogRepo(db)),
    )


def product_hydrator(db = Depends(mongo_db)) -> ProductHydrator:
    return ProductHydrator(CatalogRepo(db))


def engagement_tracker(db = Depends(mongo_db)) -> EngagementTracker:
    return EngagementTracker(RecommendationRepo(db), CatalogRepo(db))
