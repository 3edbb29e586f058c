# bloomfeed/db/mongo.py
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from bloomfeed.core.config import get_settings
import certifi

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None
_db: AsyncIOMotorDatabase | None = None


def get_db() -> AsyncIOMotorDatabase:
    assert _db is not None, "Mongo DB not initialized"
    return _db


async def connect():
    """
    Create Motor client with explicit CA bundle.
    Do not crash the app if the initial ping fails: keep a lazy client so
    requests can retry once the cluster is reachable.
    """
    global _client, _db
    settings = get_settings()

    def _new_client() -> AsyncIOMotorClient:
        opts = {}
        if settings.MONGO_URI.startswith("mongodb+srv"):
            # SRV implies TLS; containers often lack a system CA bundle
            opts["tlsCAFile"] = certifi.where()
        return AsyncIOMotorClient(
            settings.MONGO_URI,
            uuidRepresentation="standard",
            tz_aware=True,                      # freshness math compares aware datetimes
            serverSelectionTimeoutMS=6000,
            connectTimeoutMS=6000,
            **opts,
        )

    try:
        _client = _new_client()
        _db = _client[settings.MONGO_DB]
        await _client.admin.command("ping")
        logger.info("Mongo connected (ping ok)")
        await ensure_indexes(_db)
    except Exception as e:
        logger.warning(f"Mongo ping at startup failed: {e}")
        try:
            _client = _new_client()
            _db = _client[settings.MONGO_DB]
            logger.warning("Mongo will attempt lazy connection on first query")
        except Exception as e2:
            _client = None
            _db = None
            logger.error(f"Mongo client init failed: {e2}")


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Indexes backing the stable range queries and the single-doc batch store."""
    await db["recommendation_batches"].create_index("user_id", unique=True)
    await db["recommendation_batches"].create_index("records.id")
    await db["marketplace_listings"].create_index([("status", ASCENDING), ("updated_at", DESCENDING)])
    await db["affiliate_products"].create_index([("stock_status", ASCENDING), ("updated_at", DESCENDING)])
    await db["profiles"].create_index("user_id", unique=True)
    await db["profiles"].create_index("last_recommendation_generated")
    await db["profiles"].create_index("last_refresh_failed_at")
    await db["progress_events"].create_index([("user_id", ASCENDING), ("achieved_at", DESCENDING), ("id", DESCENDING)])
    await db["community_posts"].create_index([("created_at", DESCENDING), ("id", DESCENDING)])
    await db["tips"].create_index([("stage", ASCENDING), ("priority", DESCENDING), ("id", ASCENDING)])


async def disconnect():
    global _client, _db
    if _client:
        _client.close()
    _client = None
    _db = None
