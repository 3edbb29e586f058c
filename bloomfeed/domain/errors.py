# bloomfeed/domain/errors.py
"""
Failure taxonomy of the recommendation and feed pipeline.

Scoring and caching failures propagate to the caller, who may retry or serve
a stale batch. Engagement and per-user sweep failures never reach here: they
are logged and counted where they happen.
"""


class RecommendationError(Exception):
    retryable: bool = False


class ViewerNotFound(RecommendationError):
    def __init__(self, user_id: str):
        super().__init__(f"No viewer profile for user_id={user_id}")
        self.user_id = user_id


class CatalogUnavailable(RecommendationError):
    """Either catalog fetch failed; partial candidate pools are never scored."""
    retryable = True

    def __init__(self, source: str, cause: BaseException | None = None):
        super().__init__(f"Catalog '{source}' unavailable: {cause}")
        self.source = source


class ScorerUnavailable(RecommendationError):
    retryable = True


class ScorerTimeout(ScorerUnavailable):
    pass


class ScorerMalformedResponse(ScorerUnavailable):
    pass


class CacheWriteFailure(RecommendationError):
    retryable = True
