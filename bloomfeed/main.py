from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from bloomfeed.core.config import get_settings
from bloomfeed.core.lifespan import lifespan
from bloomfeed.core.logging import configure_logging
from bloomfeed.api.v1.routers.health import router as health_router
from bloomfeed.api.v1.routers.recommendations import router as recommendations_router
from bloomfeed.api.v1.routers.feed import router as feed_router
from bloomfeed.api.v1.routers.engagement import router as engagement_router
from bloomfeed.api.v1.routers.refresh import router as refresh_router
from bloomfeed.domain.errors import RecommendationError, ViewerNotFound

import logging, os

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(level=logging.DEBUG if settings.DEBUG else logging.INFO)

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# ------- CORS -------
# ALLOWED_ORIGINS is a CSV, e.g. "https://app.example.com,https://www.example.com"
allowed_origins_env = os.getenv("ALLOWED_ORIGINS", "")
allowed_origins = [o.strip() for o in allowed_origins_env.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)

# ------- Errors -------
@app.exception_handler(ViewerNotFound)
async def viewer_not_found_handler(request: Request, exc: ViewerNotFound):
    return JSONResponse(status_code=404, content={"error": "viewer_not_found", "detail": str(exc)})


@app.exception_handler(RecommendationError)
async def recommendation_error_handler(request: Request, exc: RecommendationError):
    logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    if exc.retryable:
        return JSONResponse(
            status_code=503,
            content={"error": type(exc).__name__, "detail": str(exc), "retryable": True},
            headers={"Retry-After": "30"},
        )
    return JSONResponse(status_code=502, content={"error": type(exc).__name__, "detail": str(exc), "retryable": False})

# ------- Routes -------
app.include_router(health_router)
app.include_router(recommendations_router)   # cached recommendations + invalidation
app.include_router(feed_router)              # interleaved dashboard feed
app.include_router(engagement_router)        # click tracking
app.include_router(refresh_router)           # stale batch sweep
