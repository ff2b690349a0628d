"""
eBay Browse API search client.

Builds the item_summary/search request from a query and the user's search
preferences, and maps item summaries onto canonical listings.
https://developer.ebay.com/api-docs/buy/browse/resources/item_summary/methods/search
"""
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from partscout.collectors.base import BaseSearchClient, SearchError, SearchOutcome
from partscout.collectors.ebay.auth import CredentialCache
from partscout.core.config import Settings, get_settings
from partscout.models.database import ListingSource
from partscout.models.schemas import Listing, SearchPreferences

logger = structlog.get_logger()

SEARCH_PATH = "/buy/browse/v1/item_summary/search"

OEM_ASPECT = "Brand Type:{Genuine OEM}"
US_ORIGIN_ASPECT = "Country/Region of Manufacture:{United States}"


# ==================== Request building ====================

def build_query(query: str, prefs: SearchPreferences) -> str:
    """Append negated phrases for every excluded keyword."""
    if not prefs.excluded_keywords:
        return query
    exclusions = " ".join(f'-"{kw}"' for kw in prefs.excluded_keywords)
    return f"{query} {exclusions}"


def build_filter(prefs: SearchPreferences) -> Optional[str]:
    """Build the comma-joined ``filter`` clause, or None when empty."""
    filters = []

    if prefs.condition_ids:
        filters.append(f"conditionIds:{{{'|'.join(prefs.condition_ids)}}}")

    if prefs.buying_options:
        filters.append(f"buyingOptions:{{{'|'.join(prefs.buying_options)}}}")

    if prefs.max_price is not None:
        filters.append(f"price:[..{prefs.max_price}],priceCurrency:USD")

    return ",".join(filters) if filters else None


def build_compatibility_filter(prefs: SearchPreferences) -> Optional[str]:
    parts = []
    if prefs.vehicle_year:
        parts.append(f"Year:{prefs.vehicle_year}")
    if prefs.vehicle_make:
        parts.append(f"Make:{prefs.vehicle_make}")
    if prefs.vehicle_model:
        parts.append(f"Model:{prefs.vehicle_model}")
    return ",".join(parts) if parts else None


def build_aspect_filter(prefs: SearchPreferences) -> Optional[str]:
    # Aspect filters are only valid together with a category
    if not prefs.category_id:
        return None
    aspects = []
    if prefs.brand_type_oem:
        aspects.append(OEM_ASPECT)
    if prefs.origin_us:
        aspects.append(US_ORIGIN_ASPECT)
    if not aspects:
        return None
    return f"categoryId:{prefs.category_id},{','.join(aspects)}"


# ==================== Response mapping ====================

def price_to_cents(value: Decimal) -> int:
    """Convert a decimal amount to integer cents (half-up)."""
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_price(value: Decimal, currency: str = "USD") -> str:
    """Format a decimal amount for display, e.g. ``$1,250`` or ``$19.99``."""
    if value == value.to_integral_value():
        amount = f"{value:,.0f}"
    else:
        amount = f"{value:,.2f}"
    if currency == "USD":
        return f"${amount}"
    return f"{currency} {amount}"


def _parse_price(price_info: Any) -> tuple[Optional[str], Optional[int]]:
    if not isinstance(price_info, dict) or price_info.get("value") in (None, ""):
        return None, None
    try:
        value = Decimal(str(price_info["value"]))
    except InvalidOperation:
        return None, None
    currency = price_info.get("currency") or "USD"
    return format_price(value, currency), price_to_cents(value)


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_location(location_info: Any) -> Optional[str]:
    if not isinstance(location_info, dict):
        return None
    parts = [location_info.get("city"), location_info.get("stateOrProvince")]
    joined = ", ".join(p for p in parts if p)
    return joined or None


def parse_item_summary(item: dict[str, Any]) -> Optional[Listing]:
    """Map one Browse API item summary to a Listing, None if unusable."""
    title = (item.get("title") or "").strip()
    link = (item.get("itemWebUrl") or "").strip()
    if not title or not link:
        return None

    price_display, price_cents = _parse_price(item.get("price"))
    image = (item.get("image") or {}).get("imageUrl")
    seller = item.get("seller") or {}

    return Listing(
        title=title,
        price_display=price_display,
        price_cents=price_cents,
        link=link,
        image=image or None,
        source=ListingSource.EBAY,
        external_id=item.get("itemId"),
        condition=item.get("condition") or None,
        listing_date=_parse_date(item.get("itemCreationDate")),
        location=_parse_location(item.get("itemLocation")),
        seller_name=seller.get("username") or None,
    )


def parse_search_response(data: dict[str, Any]) -> list[Listing]:
    """Map a search response body; a body without itemSummaries is empty."""
    listings = []
    for item in data.get("itemSummaries") or []:
        listing = parse_item_summary(item)
        if listing is None:
            logger.debug("Skipping eBay item without title or url", item_id=item.get("itemId"))
            continue
        listings.append(listing)
    return listings


# ==================== Client ====================

class EbaySearchClient(BaseSearchClient):
    """
    eBay keyword search for auto parts.

    Uses the application token from ``CredentialCache`` and the stored
    search preferences to compose Browse API filters.
    """

    def __init__(
        self,
        credentials: CredentialCache,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.credentials = credentials
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def source(self) -> ListingSource:
        return ListingSource.EBAY

    @property
    def search_url(self) -> str:
        return f"{self.credentials.base_url}{SEARCH_PATH}"

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.settings.upstream_timeout_seconds
            )
            self._owns_client = True
        return self._http_client

    async def close(self):
        """Close HTTP client if this client created it."""
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def build_search_params(self, query: str, prefs: SearchPreferences) -> dict[str, Any]:
        """Compose Browse API query parameters."""
        params: dict[str, Any] = {
            "q": build_query(query, prefs),
            "limit": self.settings.ebay_search_limit,
            "sort": prefs.sort,
        }

        if prefs.category_id:
            params["category_ids"] = prefs.category_id

        filter_clause = build_filter(prefs)
        if filter_clause:
            params["filter"] = filter_clause

        compatibility = build_compatibility_filter(prefs)
        if compatibility:
            params["compatibility_filter"] = compatibility

        aspect_filter = build_aspect_filter(prefs)
        if aspect_filter:
            params["aspect_filter"] = aspect_filter

        return params

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _send(self, request: httpx.Request) -> httpx.Response:
        client = await self._get_http_client()
        return await client.send(request)

    async def search(
        self,
        query: str,
        options: Optional[SearchPreferences] = None,
    ) -> SearchOutcome:
        """
        Search eBay for listings.

        Raises:
            AuthError: token exchange failed
            SearchError: search request failed or returned an unusable body
        """
        prefs = options or SearchPreferences()
        token = await self.credentials.get_token()

        client = await self._get_http_client()
        request = client.build_request(
            "GET",
            self.search_url,
            params=self.build_search_params(query, prefs),
            headers={
                "Authorization": f"Bearer {token}",
                "X-EBAY-C-MARKETPLACE-ID": self.settings.ebay_marketplace_id,
            },
        )
        request_url = str(request.url)

        try:
            response = await self._send(request)
        except httpx.HTTPError as e:
            raise SearchError(
                f"eBay search request failed: {e}",
                code="NETWORK_ERROR"
            ) from e

        if response.status_code != 200:
            raise SearchError(
                f"eBay search returned status {response.status_code}: {response.text[:200]}",
                code="API_ERROR",
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SearchError("eBay search returned invalid JSON", code="PARSE_ERROR") from e

        if not isinstance(data, dict):
            raise SearchError("eBay search returned unexpected body", code="PARSE_ERROR")

        items = parse_search_response(data)
        logger.info("eBay search completed", query=query, count=len(items), url=request_url)
        return SearchOutcome(items=items, request_url=request_url, request_urls=[request_url])
