"""
Aggregated search API routes.

Searches eBay and Craigslist together and returns merged listings.
"""
from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from partscout.api.dependencies import (
    get_aggregator,
    get_relevance_filter,
    get_search_logger,
)
from partscout.core.database import get_session_factory
from partscout.models.schemas import SearchPreferences, SearchResponse
from partscout.repositories.listings import store_listings_in_background
from partscout.repositories.profiles import ProfileRepository
from partscout.services.aggregator import CRAIGSLIST, EBAY, SearchAggregator
from partscout.services.relevance import RelevanceFilter
from partscout.services.search_log import SearchLogger

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["search"])


async def _load_preferences(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: Optional[str],
) -> SearchPreferences:
    """Stored preferences for ``user_id``; defaults when absent or unreadable."""
    if not user_id:
        return SearchPreferences()
    try:
        async with session_factory() as session:
            stored = await ProfileRepository(session).get_preferences(user_id)
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Could not load preferences, using defaults", user_id=user_id, error=str(e))
        return SearchPreferences()
    try:
        return SearchPreferences.from_stored(stored)
    except ValidationError as e:
        logger.warning("Stored preferences invalid, using defaults", user_id=user_id, errors=e.error_count())
        return SearchPreferences()


@router.get("/search", response_model=SearchResponse)
async def search_listings(
    background_tasks: BackgroundTasks,
    q: Optional[str] = Query(None, description="Search keywords, e.g. 'ford f150 headlight'"),
    user_id: Optional[str] = Query(None, description="Apply this user's stored preferences"),
    aggregator: SearchAggregator = Depends(get_aggregator),
    relevance_filter: RelevanceFilter = Depends(get_relevance_filter),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    search_logger: SearchLogger = Depends(get_search_logger),
):
    """
    Search eBay and Craigslist simultaneously.

    Results are sorted newest first; Craigslist results (no posting date)
    follow. A failed source is reported in ``sources`` and the other
    source's results are still returned.
    """
    if not q or not q.strip():
        return JSONResponse(status_code=400, content={"error": 'Query parameter "q" is required'})

    query = q.strip()
    logger.info("Search request", query=query, user_id=user_id)

    try:
        preferences = await _load_preferences(session_factory, user_id)
        aggregated = await aggregator.aggregate(query, preferences)
        filtered = await relevance_filter.filter(aggregated.results, query)
    except Exception as e:
        logger.exception("Search failed", query=query)
        return JSONResponse(status_code=500, content={"error": f"Search failed: {e}"})

    # Runs after the response is sent
    background_tasks.add_task(store_listings_in_background, session_factory, aggregated.results)
    background_tasks.add_task(
        search_logger.log_search,
        user=user_id,
        query=query,
        ebay_url=aggregated.sources[EBAY].url,
        craigslist_url=aggregated.sources[CRAIGSLIST].url,
        ebay_count=aggregated.sources[EBAY].count,
        craigslist_count=aggregated.sources[CRAIGSLIST].count,
    )

    return SearchResponse(
        results=filtered.results,
        query=query,
        sources=aggregated.sources,
        filtered=filtered.filtered,
    )
