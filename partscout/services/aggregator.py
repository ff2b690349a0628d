"""
Multi-source search aggregation.

Runs the eBay and Craigslist clients concurrently, keeps whatever succeeded,
and orders the merged listings newest first.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Generic, Optional, TypeVar

import structlog

from partscout.collectors.base import BaseSearchClient, SearchOutcome
from partscout.models.schemas import (
    CraigslistOptions,
    Listing,
    SearchPreferences,
    SourceStatus,
)

logger = structlog.get_logger()

T = TypeVar("T")

EBAY = "ebay"
CRAIGSLIST = "craigslist"


@dataclass
class Settled(Generic[T]):
    """Outcome of one awaitable in a settle-all join."""
    status: str
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def fulfilled(self) -> bool:
        return self.status == "fulfilled"


async def settle(aw: Awaitable[T], timeout: Optional[float] = None) -> Settled[T]:
    """Await ``aw`` and capture its result or failure instead of raising."""
    try:
        if timeout is not None:
            value = await asyncio.wait_for(aw, timeout=timeout)
        else:
            value = await aw
    except Exception as e:
        return Settled(status="rejected", error=e)
    return Settled(status="fulfilled", value=value)


async def settle_all(*aws: Awaitable[Any], timeout: Optional[float] = None) -> list[Settled[Any]]:
    """Run awaitables concurrently; one failure never cancels the others."""
    return list(await asyncio.gather(*(settle(aw, timeout) for aw in aws)))


def _sort_key(listing: Listing) -> datetime:
    listing_date = listing.listing_date
    if listing_date.tzinfo is None:
        return listing_date.replace(tzinfo=timezone.utc)
    return listing_date


def sort_by_recency(listings: list[Listing]) -> list[Listing]:
    """
    Newest first; listings without a date go last in their original order.
    """
    dated = [listing for listing in listings if listing.listing_date is not None]
    undated = [listing for listing in listings if listing.listing_date is None]
    return sorted(dated, key=_sort_key, reverse=True) + undated


def _describe(error: Optional[BaseException]) -> Optional[str]:
    if error is None:
        return None
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    return getattr(error, "message", None) or str(error) or type(error).__name__


@dataclass
class AggregateResult:
    results: list[Listing] = field(default_factory=list)
    sources: dict[str, SourceStatus] = field(default_factory=dict)


class SearchAggregator:
    """
    Fan a query out to eBay and Craigslist and merge the results.

    Failures are isolated per source: a failed source contributes no items
    and is reported as ``rejected`` in ``sources``.
    """

    def __init__(
        self,
        ebay_client: BaseSearchClient,
        craigslist_client: BaseSearchClient,
        timeout: Optional[float] = None,
    ):
        self.ebay_client = ebay_client
        self.craigslist_client = craigslist_client
        self.timeout = timeout

    @staticmethod
    def _status(settled: Settled[SearchOutcome]) -> SourceStatus:
        if settled.fulfilled:
            return SourceStatus(
                count=len(settled.value.items),
                status="fulfilled",
                url=settled.value.request_url,
            )
        return SourceStatus(count=0, status="rejected", error=_describe(settled.error))

    async def aggregate(
        self,
        query: str,
        preferences: Optional[SearchPreferences] = None,
    ) -> AggregateResult:
        prefs = preferences or SearchPreferences()
        craigslist_enabled = prefs.craigslist_enabled is not False

        calls = [self.ebay_client.search(query, prefs)]
        if craigslist_enabled:
            calls.append(
                self.craigslist_client.search(query, CraigslistOptions.from_preferences(prefs))
            )

        settled = await settle_all(*calls, timeout=self.timeout)
        ebay_settled = settled[0]
        craigslist_settled = settled[1] if craigslist_enabled else None

        sources = {EBAY: self._status(ebay_settled)}
        if craigslist_settled is not None:
            sources[CRAIGSLIST] = self._status(craigslist_settled)
        else:
            sources[CRAIGSLIST] = SourceStatus(count=0, status="skipped")

        merged: list[Listing] = []
        for name, outcome in ((EBAY, ebay_settled), (CRAIGSLIST, craigslist_settled)):
            if outcome is None:
                continue
            if outcome.fulfilled:
                merged.extend(outcome.value.items)
            else:
                logger.error(
                    "Source search failed",
                    source=name,
                    query=query,
                    error=_describe(outcome.error),
                    error_type=type(outcome.error).__name__,
                )

        results = sort_by_recency(merged)
        logger.info(
            "Aggregated search",
            query=query,
            total=len(results),
            ebay=sources[EBAY].count,
            craigslist=sources[CRAIGSLIST].count,
        )
        return AggregateResult(results=results, sources=sources)
