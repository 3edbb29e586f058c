from __future__ import annotations
from fastapi import APIRouter, Depends, Query

from bloomfeed.api.deps import feed_compositor
from bloomfeed.domain.models.feed import FeedPage
from bloomfeed.domain.services.feed_svc import FeedCompositor

import logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["feed"])


@router.get("/users/{user_id}/feed", response_model=FeedPage)
async def get_feed_page(
    user_id: str,
    page: int = Query(0, ge=0, description="Page to fetch; use cursor.page from the previous response"),
    compositor: FeedCompositor = Depends(feed_compositor),
):
    """
    One page of the dashboard feed: milestone, products, community, tip, repeated.
    Re-fetching a page over unchanged data returns the same items.
    """
    logger.info(f"Request: feed user_id={user_id}, page={page}")
    res = await compositor.get_page(user_id, page)
    logger.info(f"Response: feed user_id={user_id} page={page} items={len(res.items)} has_more={res.cursor.has_more}")
    return res
