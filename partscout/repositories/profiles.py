"""
Profile repository for stored search preferences.
"""
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from partscout.models.database import Profile
from partscout.repositories.listings import PersistenceError


class ProfileRepository:
    """Read and write a user's search preferences document."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_preferences(self, user_id: str) -> Optional[dict[str, Any]]:
        """Stored preferences, ``{}`` for a profile without any, None without a profile."""
        profile = await self.session.get(Profile, user_id)
        if profile is None:
            return None
        return profile.search_preferences or {}

    async def save_preferences(self, user_id: str, preferences: dict[str, Any]) -> dict[str, Any]:
        """Store the preferences document verbatim, creating the profile if needed."""
        try:
            profile = await self.session.get(Profile, user_id)
            if profile is None:
                profile = Profile(user_id=user_id)
                self.session.add(profile)
            profile.search_preferences = preferences
            await self.session.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to save preferences: {e}", code="WRITE_FAILED") from e
        return preferences
