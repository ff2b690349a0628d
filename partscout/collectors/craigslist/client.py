"""
Craigslist auto-parts search client.

Searches one configured city (geo-biased) or a fixed set of metro regions
concurrently, and maps parsed rows onto canonical listings.
"""
import asyncio
from typing import Optional
from urllib.parse import urlencode

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from partscout.collectors.base import BaseSearchClient, SearchError, SearchOutcome
from partscout.collectors.craigslist.parser import (
    SearchRow,
    enrich_rows,
    extract_posting_id,
    parse_price_cents,
    parse_search_rows,
    parse_structured_data,
)
from partscout.core.config import Settings, get_settings
from partscout.models.database import ListingSource
from partscout.models.schemas import REGION_PATTERN, CraigslistOptions, Listing

logger = structlog.get_logger()

# Major metro areas searched when no city is configured
DEFAULT_REGIONS = [
    "sfbay",
    "newyork",
    "losangeles",
    "chicago",
    "seattle",
    "boston",
    "atlanta",
    "phoenix",
]

# "pta" is the auto parts category
SEARCH_PATH = "/search/pta"


def region_origin(region: str) -> str:
    return f"https://{region}.craigslist.org"


def build_search_url(query: str, region: str, options: CraigslistOptions) -> str:
    """Build the search URL for one region, with geo params when known."""
    if not REGION_PATTERN.fullmatch(region):
        raise SearchError(f"Invalid Craigslist region: {region!r}", code="INVALID_REGION")
    params: dict[str, object] = {"query": query, "sort": "rel"}
    if options.latitude is not None and options.longitude is not None:
        params["lat"] = options.latitude
        params["lon"] = options.longitude
        if options.radius:
            params["search_distance"] = options.radius
    return f"{region_origin(region)}{SEARCH_PATH}?{urlencode(params)}"


def row_to_listing(row: SearchRow, region: str) -> Listing:
    """Normalize a parsed search row into a canonical listing."""
    return Listing(
        title=row.title,
        price_display=row.price_text,
        price_cents=parse_price_cents(row.price_text),
        link=row.link,
        image=row.image,
        source=ListingSource.CRAIGSLIST,
        external_id=extract_posting_id(row.link),
        condition=None,
        # Posting dates are only on the detail page
        listing_date=None,
        location=row.location_text or f"{region} area",
        seller_name=None,
    )


class CraigslistClient(BaseSearchClient):
    """
    HTML scraper for Craigslist search results.

    Note: only a realistic browser user-agent is sent; no other anti-bot
    handling is attempted.
    """

    HEADERS = {
        "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
    }

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        regions: Optional[list[str]] = None,
    ):
        self.settings = settings or get_settings()
        self.regions = regions or DEFAULT_REGIONS
        self.max_results = self.settings.craigslist_max_results
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def source(self) -> ListingSource:
        return ListingSource.CRAIGSLIST

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.settings.upstream_timeout_seconds,
                follow_redirects=True,
                headers=self.HEADERS
            )
            self._owns_client = True
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def fetch_page(self, url: str) -> str:
        """Fetch a search results page."""
        client = await self._get_http_client()
        response = await client.get(url, headers=self.HEADERS)

        if response.status_code != 200:
            raise SearchError(
                f"Craigslist returned status {response.status_code}",
                code="FETCH_ERROR",
                status_code=response.status_code
            )

        return response.text

    def parse_page(self, html: str, region: str) -> list[Listing]:
        """Parse one region's page, enriching rows from embedded JSON-LD."""
        rows = parse_search_rows(html, region_origin(region))
        rows = enrich_rows(rows, parse_structured_data(html))
        listings = [row_to_listing(row, region) for row in rows]
        return listings[:self.max_results]

    async def search_region(self, query: str, region: str, options: CraigslistOptions) -> list[Listing]:
        url = build_search_url(query, region, options)
        try:
            html = await self.fetch_page(url)
        except httpx.HTTPError as e:
            raise SearchError(
                f"Craigslist {region} request failed: {e}",
                code="NETWORK_ERROR"
            ) from e

        listings = self.parse_page(html, region)
        logger.debug("Craigslist region parsed", region=region, count=len(listings), html_length=len(html))
        return listings

    async def search(
        self,
        query: str,
        options: Optional[CraigslistOptions] = None,
    ) -> SearchOutcome:
        """
        Search Craigslist.

        A configured city is searched alone; otherwise every default region
        is searched concurrently and failed regions are dropped.

        Raises:
            SearchError: every region failed
        """
        options = options or CraigslistOptions()
        regions = [options.city] if options.city else list(self.regions)
        urls = [build_search_url(query, region, options) for region in regions]

        results = await asyncio.gather(
            *(self.search_region(query, region, options) for region in regions),
            return_exceptions=True,
        )

        items: list[Listing] = []
        errors: list[BaseException] = []
        for region, result in zip(regions, results):
            if isinstance(result, BaseException):
                logger.warning("Craigslist region failed", region=region, error=str(result))
                errors.append(result)
                continue
            items.extend(result)

        if errors and len(errors) == len(regions):
            first = errors[0]
            if isinstance(first, SearchError):
                raise first
            raise SearchError(f"Craigslist search failed: {first}", code="UNKNOWN_ERROR") from first

        logger.info(
            "Craigslist search completed",
            query=query,
            regions=len(regions),
            failed_regions=len(errors),
            count=len(items),
        )
        return SearchOutcome(items=items, request_url=urls[0], request_urls=urls)
