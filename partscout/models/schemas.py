"""
Pydantic schemas for listings, search preferences and API responses.
"""
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from partscout.models.database import ListingSource


# ==================== Canonical Listing ====================

class Listing(BaseModel):
    """
    Canonical listing produced by every source client.

    Two listings describe the same item iff their ``link`` values are equal.
    """
    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1)
    price_display: Optional[str] = None
    price_cents: Optional[int] = None
    link: str = Field(..., min_length=1)
    image: Optional[str] = None
    source: ListingSource
    external_id: Optional[str] = None
    condition: Optional[str] = None
    listing_date: Optional[datetime] = None
    location: Optional[str] = None
    seller_name: Optional[str] = None

    @field_validator("title", "link")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


# ==================== Search Preferences ====================

DEFAULT_EXCLUDED_KEYWORDS = ["parting out", "whole car", "complete vehicle"]
DEFAULT_BUYING_OPTIONS = ["FIXED_PRICE", "BEST_OFFER", "AUCTION"]

# Craigslist site subdomain, e.g. "sfbay"
REGION_PATTERN = re.compile(r"[a-z0-9][a-z0-9-]{0,62}")


def validate_region(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.lower()
    if not REGION_PATTERN.fullmatch(value):
        raise ValueError(f"invalid Craigslist region: {value!r}")
    return value


class SearchPreferences(BaseModel):
    """
    User search preferences.

    Keys missing from a stored document fall back to these defaults; keys
    present with an empty value switch the corresponding filter off.
    """
    model_config = ConfigDict(extra="ignore")

    category_id: Optional[str] = "33710"
    condition_ids: list[str] = Field(default_factory=lambda: ["3000"])
    excluded_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_KEYWORDS)
    )
    buying_options: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BUYING_OPTIONS)
    )
    vehicle_year: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    sort: str = "newlyListed"
    max_price: Optional[Decimal] = Decimal("500")
    brand_type_oem: bool = True
    origin_us: bool = True

    craigslist_enabled: bool = True
    craigslist_city: Optional[str] = None
    craigslist_lat: Optional[float] = None
    craigslist_lon: Optional[float] = None
    craigslist_radius: Optional[int] = None

    @field_validator(
        "category_id",
        "vehicle_year",
        "vehicle_make",
        "vehicle_model",
        "craigslist_city",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("max_price", "craigslist_lat", "craigslist_lon", "craigslist_radius", mode="before")
    @classmethod
    def blank_number_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("condition_ids", "excluded_keywords", "buying_options", mode="before")
    @classmethod
    def none_to_empty_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(item).strip() for item in v if str(item).strip()]

    @field_validator("sort", mode="before")
    @classmethod
    def default_sort(cls, v: Any) -> str:
        return v or "newlyListed"

    @field_validator("craigslist_city")
    @classmethod
    def city_is_region(cls, v: Optional[str]) -> Optional[str]:
        return validate_region(v)

    @field_validator("brand_type_oem", "origin_us", "craigslist_enabled", mode="before")
    @classmethod
    def null_flag_to_default(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return cls.model_fields[info.field_name].default
        return v

    @classmethod
    def from_stored(cls, data: Optional[dict[str, Any]]) -> "SearchPreferences":
        """Build preferences from a stored document, defaults for missing keys."""
        return cls.model_validate(data or {})


class CraigslistOptions(BaseModel):
    """Region selection for a classifieds search."""
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius: Optional[int] = None

    @field_validator("city")
    @classmethod
    def city_is_region(cls, v: Optional[str]) -> Optional[str]:
        return validate_region(v)

    @classmethod
    def from_preferences(cls, prefs: SearchPreferences) -> "CraigslistOptions":
        return cls(
            city=prefs.craigslist_city,
            latitude=prefs.craigslist_lat,
            longitude=prefs.craigslist_lon,
            radius=prefs.craigslist_radius,
        )


# ==================== API Responses ====================

SettleStatus = Literal["fulfilled", "rejected", "skipped"]


class SourceStatus(BaseModel):
    """Per-source outcome of an aggregated search."""
    count: int = 0
    status: SettleStatus
    url: Optional[str] = None
    error: Optional[str] = None


class FilterStats(BaseModel):
    """Counts reported by the relevance filter."""
    original: int
    kept: int


class SearchResponse(BaseModel):
    """Aggregated search response."""
    results: list[Listing]
    query: str
    sources: dict[str, SourceStatus]
    filtered: Optional[FilterStats] = None


class UserActionRequest(BaseModel):
    """Star or hide a listing for a user."""
    url: str = Field(..., min_length=1)
    starred: Optional[bool] = None
    hidden: Optional[bool] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"url": "https://www.ebay.com/itm/256123456789", "starred": True},
                {"url": "https://sfbay.craigslist.org/pts/d/x/7712345678.html", "hidden": True},
            ]
        }
    }


class UserActionResponse(BaseModel):
    """Stored star/hide state."""
    url: str
    starred: bool
    hidden: bool


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    database: str
    ebay_api: str
    agent: str
