"""
Database models for aggregated listings, user actions and profiles.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class ListingSource(str, Enum):
    """Upstream sources a listing can come from."""
    EBAY = "ebay"
    CRAIGSLIST = "craigslist"


class ListingRecord(Base):
    """
    Canonical listing row.
    The listing URL is the natural key; repeated searches upsert by it.
    """
    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[ListingSource] = mapped_column(SQLEnum(ListingSource), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    price_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    price_text: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    seller_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    condition: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    listing_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_listings_url", "url", unique=True),
        Index("idx_listings_source", "source"),
        Index("idx_listings_listing_date", "listing_date"),
    )


class UserListingAction(Base):
    """Per-user star/hide state for a listing."""
    __tablename__ = "user_listing_actions"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    listing_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False
    )
    starred: Mapped[bool] = mapped_column(Boolean, default=False)
    hidden: Mapped[bool] = mapped_column(Boolean, default=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_user_listing_actions_user_listing", "user_id", "listing_id", unique=True),
    )


class Profile(Base):
    """User profile holding stored search preferences."""
    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    search_preferences: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
