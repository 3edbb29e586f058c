# bloomfeed/core/lifespan.py
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from bloomfeed.db import mongo, redis as r
from bloomfeed.core.config import get_settings
from bloomfeed.api.deps import build_refresher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # --- Startup ---
    # Mongo is required
    try:
        await mongo.connect()
    except Exception as e:
        logger.error(f"Mongo connection failed: {e}")
        raise

    # Redis is optional
    if settings.REDIS_URL:
        try:
            await r.connect()
        except Exception as e:
            logger.warning(f"Redis connection failed (ignored): {e}")
    else:
        logger.warning("No REDIS_URL provided, skipping Redis connection")

    sweep_task = None
    if settings.refresh_sweep_interval_s > 0:
        refresher = build_refresher(mongo.get_db(), r.get_redis(), settings)
        sweep_task = asyncio.create_task(refresher.run_forever(settings.refresh_sweep_interval_s))
        logger.info(f"Background refresh sweep every {settings.refresh_sweep_interval_s}s")

    yield

    # --- Shutdown ---
    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task

    if settings.REDIS_URL:
        try:
            await r.disconnect()
        except Exception as e:
            logger.warning(f"Redis disconnect failed: {e}")

    try:
        await mongo.disconnect()
        logger.info("Mongo disconnected")
    except Exception as e:
        logger.warning(f"Mongo disconnect failed: {e}")
