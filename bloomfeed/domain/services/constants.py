from bloomfeed.domain.models.feed import COMMUNITY, MILESTONE, PRODUCT_BATCH, TIP

# Candidate pool bounds per catalog (keeps the oracle payload bounded)
DEFAULT_CANDIDATE_LIMIT = 50

# Ranked selection size
SELECT_MIN = 12
SELECT_MAX = 15

# Score range stored on RecommendationRecord
SCORE_MIN = 0
SCORE_MAX = 100

DEFAULT_URGENCY = "medium"

# Freshness window of a cached batch
FRESHNESS_WINDOW_S = 24 * 3600

# Batch refresher
REFRESH_BATCH_SIZE = 50
REFRESH_FAILURE_BACKOFF_S = 3600

# Feed interleaving: one slot per stream, repeated
FEED_PATTERN = (MILESTONE, PRODUCT_BATCH, COMMUNITY, TIP)
FEED_SLOT_BUDGET = 10
FEED_PRODUCT_BATCH_SIZE = 5
