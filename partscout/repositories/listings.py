"""
Listing persistence: URL-keyed upserts and per-user star/hide actions.
"""
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from partscout.models.database import ListingRecord, UserListingAction
from partscout.models.schemas import Listing

logger = structlog.get_logger()

# Optional listing fields: a NULL from a later search never erases a stored value
UPSERT_COALESCED_COLUMNS = [
    "external_id",
    "price_cents",
    "price_text",
    "location",
    "seller_name",
    "image_url",
    "condition",
    "listing_date",
]


class PersistenceError(Exception):
    """Storage write failed."""
    def __init__(self, message: str, code: str = None):
        self.message = message
        self.code = code
        super().__init__(message)


def _record_values(listing: Listing) -> dict[str, Any]:
    return {
        "source": listing.source,
        "external_id": listing.external_id,
        "title": listing.title,
        "price_cents": listing.price_cents,
        "price_text": listing.price_display,
        "location": listing.location,
        "seller_name": listing.seller_name,
        "image_url": listing.image,
        "condition": listing.condition,
        "listing_date": listing.listing_date,
    }


class ListingRepository:
    """Repository for stored listings."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_url(self, url: str) -> Optional[ListingRecord]:
        result = await self.session.execute(
            select(ListingRecord).where(ListingRecord.url == url)
        )
        return result.scalar_one_or_none()

    def _upsert_statement(self, rows: list[dict[str, Any]]):
        """
        ``INSERT ... ON CONFLICT (url) DO UPDATE`` for the session's dialect.

        Conflicting rows keep their stored value wherever the incoming one
        is NULL.
        """
        dialect = self.session.get_bind().dialect.name
        insert = sqlite_insert if dialect == "sqlite" else pg_insert

        stmt = insert(ListingRecord).values(rows)
        table = ListingRecord.__table__
        set_ = {
            column: func.coalesce(stmt.excluded[column], table.c[column])
            for column in UPSERT_COALESCED_COLUMNS
        }
        set_["source"] = stmt.excluded.source
        set_["title"] = stmt.excluded.title
        set_["scraped_at"] = stmt.excluded.scraped_at
        set_["updated_at"] = func.now()

        return stmt.on_conflict_do_update(index_elements=[ListingRecord.url], set_=set_)

    async def upsert_listings(self, listings: Iterable[Listing]) -> int:
        """
        Insert or update listings keyed by URL.

        Within one call the last listing for a URL wins. Existing rows keep
        their values for fields the new listing leaves empty.

        Returns:
            Number of distinct URLs written

        Raises:
            PersistenceError: the write failed
        """
        by_url: dict[str, Listing] = {}
        for listing in listings:
            by_url[listing.link] = listing
        if not by_url:
            return 0

        now = datetime.now(timezone.utc)
        rows = [
            {"url": url, "scraped_at": now, **_record_values(listing)}
            for url, listing in by_url.items()
        ]

        try:
            await self.session.execute(self._upsert_statement(rows))
            await self.session.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to store listings: {e}", code="WRITE_FAILED") from e

        return len(by_url)

    async def set_action(
        self,
        user_id: str,
        url: str,
        starred: Optional[bool] = None,
        hidden: Optional[bool] = None,
    ) -> Optional[UserListingAction]:
        """
        Star or hide a stored listing for a user.

        Returns:
            The updated action row, or None when the listing is not stored
        """
        record = await self.get_by_url(url)
        if record is None:
            return None

        try:
            result = await self.session.execute(
                select(UserListingAction).where(
                    UserListingAction.user_id == user_id,
                    UserListingAction.listing_id == record.id,
                )
            )
            action = result.scalar_one_or_none()
            if action is None:
                action = UserListingAction(
                    user_id=user_id,
                    listing_id=record.id,
                    starred=False,
                    hidden=False,
                )
                self.session.add(action)

            if starred is not None:
                action.starred = starred
            if hidden is not None:
                action.hidden = hidden

            await self.session.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to store action: {e}", code="WRITE_FAILED") from e

        return action

    async def list_actions(self, user_id: str) -> list[tuple[UserListingAction, str]]:
        """Return ``(action, listing url)`` pairs for a user."""
        result = await self.session.execute(
            select(UserListingAction, ListingRecord.url)
            .join(ListingRecord, ListingRecord.id == UserListingAction.listing_id)
            .where(UserListingAction.user_id == user_id)
            .order_by(UserListingAction.id)
        )
        return [(action, url) for action, url in result.all()]


async def store_listings_in_background(
    session_factory: async_sessionmaker[AsyncSession],
    listings: list[Listing],
) -> None:
    """Fire-and-forget upsert; failures are logged and never raised."""
    if not listings:
        return
    try:
        async with session_factory() as session:
            stored = await ListingRepository(session).upsert_listings(listings)
    except PersistenceError as e:
        logger.error("Failed to store listings", error=e.message, count=len(listings))
        return
    logger.info("Listings stored", count=stored)
