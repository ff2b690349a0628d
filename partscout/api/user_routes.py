"""
User preference and listing-action routes.
"""
from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, Path
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from partscout.core.database import get_db
from partscout.models.schemas import UserActionRequest, UserActionResponse
from partscout.repositories.listings import ListingRepository, PersistenceError
from partscout.repositories.profiles import ProfileRepository

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["users"])


@router.get("/preferences/{user_id}")
async def get_preferences(
    user_id: str = Path(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    """
    Stored search preferences for a user.

    Returns 404 when the user has no profile.
    """
    preferences = await ProfileRepository(db).get_preferences(user_id)
    if preferences is None:
        return JSONResponse(status_code=404, content={"error": "Profile not found"})
    return preferences


@router.put("/preferences/{user_id}")
async def put_preferences(
    user_id: str = Path(..., min_length=1),
    preferences: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """
    Store search preferences verbatim.

    **Example body:**
    ```json
    {
        "category_id": "33710",
        "condition_ids": ["3000", "7000"],
        "vehicle_make": "Ford",
        "max_price": "250",
        "craigslist_city": "newyork"
    }
    ```
    """
    try:
        saved = await ProfileRepository(db).save_preferences(user_id, preferences)
    except PersistenceError as e:
        logger.error("Failed to save preferences", user_id=user_id, error=e.message)
        return JSONResponse(status_code=500, content={"error": e.message})
    logger.info("Preferences saved", user_id=user_id)
    return saved


@router.put("/users/{user_id}/actions", response_model=UserActionResponse)
async def set_listing_action(
    request: UserActionRequest,
    user_id: str = Path(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    """Star or hide a stored listing."""
    repository = ListingRepository(db)
    try:
        action = await repository.set_action(
            user_id,
            request.url,
            starred=request.starred,
            hidden=request.hidden,
        )
    except PersistenceError as e:
        logger.error("Failed to store listing action", user_id=user_id, error=e.message)
        return JSONResponse(status_code=500, content={"error": e.message})

    if action is None:
        return JSONResponse(status_code=404, content={"error": "Listing not found"})

    return UserActionResponse(url=request.url, starred=action.starred, hidden=action.hidden)


@router.get("/users/{user_id}/actions", response_model=list[UserActionResponse])
async def list_listing_actions(
    user_id: str = Path(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    """All starred or hidden listings for a user."""
    actions = await ListingRepository(db).list_actions(user_id)
    return [
        UserActionResponse(url=url, starred=action.starred, hidden=action.hidden)
        for action, url in actions
    ]
