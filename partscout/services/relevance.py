"""
Relevance filtering of aggregated listings.

The filter is a pluggable strategy. ``AgentRelevanceFilter`` asks the
external grading agent which listings match the query; any failure falls
back to returning every listing.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog

from partscout.core.config import Settings
from partscout.models.schemas import FilterStats, Listing

logger = structlog.get_logger()


class FilterError(Exception):
    """Relevance service failed or returned an unusable answer."""
    def __init__(self, message: str, code: str = None):
        self.message = message
        self.code = code
        super().__init__(message)


@dataclass
class FilterResult:
    results: list[Listing]
    filtered: Optional[FilterStats] = None


class RelevanceFilter(ABC):
    """Interface for post-aggregation relevance filters."""

    @abstractmethod
    async def filter(self, listings: list[Listing], query: str) -> FilterResult:
        """Return the listings relevant to ``query``; must not raise."""
        pass

    async def close(self) -> None:
        pass


class PassthroughFilter(RelevanceFilter):
    """Identity filter used when no relevance service is configured."""

    async def filter(self, listings: list[Listing], query: str) -> FilterResult:
        return FilterResult(results=list(listings))


class AgentRelevanceFilter(RelevanceFilter):
    """
    Relevance filter backed by the grading agent's ``POST /filter`` endpoint.

    Request: ``{"query": str, "listings": [{"index", "title", ...}]}``
    Response: ``{"keep": [index, ...]}``
    """

    FILTER_PATH = "/filter"

    def __init__(
        self,
        base_url: str,
        token: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 20.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> "AgentRelevanceFilter":
        return cls(
            base_url=settings.agent_url,
            token=settings.agent_token,
            timeout=settings.upstream_timeout_seconds,
        )

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._http_client

    async def close(self):
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    @staticmethod
    def _candidates(listings: list[Listing]) -> list[dict[str, Any]]:
        return [
            {
                "index": index,
                "title": listing.title,
                "price": listing.price_display,
                "condition": listing.condition,
                "location": listing.location,
                "source": listing.source.value,
            }
            for index, listing in enumerate(listings)
        ]

    async def _request_keep(self, listings: list[Listing], query: str) -> list[int]:
        client = await self._get_http_client()
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await client.post(
                f"{self.base_url}{self.FILTER_PATH}",
                json={"query": query, "listings": self._candidates(listings)},
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise FilterError(f"Relevance service unreachable: {e}", code="UNAVAILABLE") from e

        if response.status_code != 200:
            raise FilterError(
                f"Relevance service returned status {response.status_code}",
                code="API_ERROR"
            )

        try:
            keep = response.json()["keep"]
        except (ValueError, KeyError, TypeError) as e:
            raise FilterError("Malformed relevance response", code="PARSE_ERROR") from e

        if not isinstance(keep, list) or not all(isinstance(i, int) for i in keep):
            raise FilterError("Relevance response 'keep' must be a list of indices", code="PARSE_ERROR")
        if any(i < 0 or i >= len(listings) for i in keep):
            raise FilterError("Relevance response index out of range", code="PARSE_ERROR")
        return keep

    async def filter(self, listings: list[Listing], query: str) -> FilterResult:
        if not listings:
            return FilterResult(results=[])

        try:
            keep = set(await self._request_keep(listings, query))
        except FilterError as e:
            logger.warning("Relevance filter failed, returning unfiltered results", error=e.message, code=e.code)
            return FilterResult(results=list(listings))

        results = [listing for index, listing in enumerate(listings) if index in keep]
        logger.info("Relevance filter applied", query=query, original=len(listings), kept=len(results))
        return FilterResult(
            results=results,
            filtered=FilterStats(original=len(listings), kept=len(results)),
        )
