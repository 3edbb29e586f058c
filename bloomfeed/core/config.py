from functools import lru_cache
from typing import Literal
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["development", "production"]

def _env_file_for(app_env: EnvName) -> str:
    return ".env.development" if app_env == "development" else ".env.production"

class Settings(BaseSettings):

    # Core
    APP_ENV: EnvName = "development"
    APP_NAME: str = "BloomFeed"
    DEBUG: bool
    GIT_SHA: str = "unknown"

    # Mongo
    MONGO_URI: str
    MONGO_DB: str

    # Redis (optional: single-flight falls back to in-process only)
    REDIS_URL: str = ""

    # OpenAI ranking oracle
    OPENAI_API_KEY: str
    OPENAI_RANKING_MODEL: str = "gpt-4o-mini"
    scorer_timeout_s: float = 30.0
    scorer_parse_retries: int = 1
    scorer_min_items: int = 12
    scorer_max_items: int = 15

    # Candidate aggregation
    marketplace_candidate_limit: int = 50
    affiliate_candidate_limit: int = 50

    # Recommendation cache
    freshness_window_s: int = 24 * 3600       # 24h
    regen_lock_ttl: int = 60                  # seconds; dogpile protection across workers

    # Batch refresher
    refresh_batch_size: int = 50
    # Per-user sweep budget; must exceed scorer_timeout_s, which bounds a whole ranking exchange
    refresh_item_timeout_s: float = 45.0
    refresh_failure_backoff_s: int = 3600     # a failed user sits out this long
    refresh_sweep_interval_s: int = 0         # 0 = no background loop

    # Feed
    feed_slot_budget: int = 10
    feed_product_batch_size: int = 5
    postal_prefix_len: int = 3

    model_config = SettingsConfigDict(env_file=None, case_sensitive=True)

@lru_cache
def get_settings() -> Settings:
    """
    Factory that chooses the right .env file based on APP_ENV.
    Cache makes it cheap to inject via FastAPI dependencies.
    """
    app_env: EnvName = os.getenv("APP_ENV", "development")  # earliest switch
    env_file = _env_file_for(app_env)
    return Settings(
                _env_file=env_file,  # load .env.development or .env.production
                _env_file_encoding="utf-8"
    )
