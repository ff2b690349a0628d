"""
Tests for multi-source search aggregation.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from partscout.collectors.base import BaseSearchClient, SearchError, SearchOutcome
from partscout.models.database import ListingSource
from partscout.models.schemas import Listing, SearchPreferences
from partscout.services.aggregator import (
    CRAIGSLIST,
    EBAY,
    SearchAggregator,
    settle_all,
    sort_by_recency,
)


def make_listing(title, listing_date=None, source=ListingSource.EBAY):
    return Listing(
        title=title,
        link=f"https://example.com/{title}",
        source=source,
        listing_date=listing_date,
    )


class StubClient(BaseSearchClient):
    """Search client returning a fixed outcome, or raising."""

    def __init__(self, source, items=None, error=None, delay=0.0, url=None):
        self._source = source
        self.items = items or []
        self.error = error
        self.delay = delay
        self.url = url
        self.calls = []

    @property
    def source(self):
        return self._source

    async def search(self, query, options=None):
        self.calls.append((query, options))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SearchOutcome(items=list(self.items), request_url=self.url)


class TestSortByRecency:

    def test_newest_first_undated_last(self):
        a = make_listing("A", datetime(2024, 1, 1, tzinfo=timezone.utc))
        b = make_listing("B", datetime(2024, 1, 5, tzinfo=timezone.utc))
        c = make_listing("C", datetime(2024, 1, 10, tzinfo=timezone.utc))
        d = make_listing("D", source=ListingSource.CRAIGSLIST)

        result = sort_by_recency([a, b, c, d])

        assert [listing.title for listing in result] == ["C", "B", "A", "D"]

    def test_undated_keep_input_order(self):
        x = make_listing("X")
        y = make_listing("Y")
        dated = make_listing("Z", datetime(2024, 1, 1, tzinfo=timezone.utc))

        result = sort_by_recency([x, dated, y])

        assert [listing.title for listing in result] == ["Z", "X", "Y"]

    def test_naive_dates_compare_as_utc(self):
        naive = make_listing("naive", datetime(2024, 1, 2))
        aware = make_listing("aware", datetime(2024, 1, 1, tzinfo=timezone.utc))

        assert [listing.title for listing in sort_by_recency([aware, naive])] == ["naive", "aware"]


class TestSettleAll:

    @pytest.mark.asyncio
    async def test_failure_does_not_cancel_others(self):
        async def ok():
            await asyncio.sleep(0.01)
            return "done"

        async def fail():
            raise ValueError("boom")

        first, second = await settle_all(fail(), ok())

        assert first.status == "rejected"
        assert isinstance(first.error, ValueError)
        assert second.fulfilled
        assert second.value == "done"

    @pytest.mark.asyncio
    async def test_timeout_rejects(self):
        (settled,) = await settle_all(asyncio.sleep(1), timeout=0.01)

        assert settled.status == "rejected"
        assert isinstance(settled.error, asyncio.TimeoutError)


class TestSearchAggregator:
    """Test cases for aggregate()."""

    @pytest.fixture
    def craigslist_items(self):
        return [make_listing(f"CL {i}", source=ListingSource.CRAIGSLIST) for i in range(3)]

    @pytest.mark.asyncio
    async def test_merges_and_sorts(self, craigslist_items):
        ebay = StubClient(ListingSource.EBAY, items=[
            make_listing("old", datetime(2024, 1, 1, tzinfo=timezone.utc)),
            make_listing("new", datetime(2024, 2, 1, tzinfo=timezone.utc)),
        ], url="https://api.ebay.com/search?q=x")
        craigslist = StubClient(
            ListingSource.CRAIGSLIST,
            items=craigslist_items,
            url="https://sfbay.craigslist.org/search/pta?query=x",
        )

        result = await SearchAggregator(ebay, craigslist).aggregate("x")

        assert [listing.title for listing in result.results] == ["new", "old", "CL 0", "CL 1", "CL 2"]
        assert result.sources[EBAY].status == "fulfilled"
        assert result.sources[EBAY].count == 2
        assert result.sources[EBAY].url == "https://api.ebay.com/search?q=x"
        assert result.sources[CRAIGSLIST].count == 3

    @pytest.mark.asyncio
    async def test_ebay_failure_keeps_craigslist(self, craigslist_items):
        ebay = StubClient(ListingSource.EBAY, error=SearchError("upstream 500", code="API_ERROR"))
        craigslist = StubClient(ListingSource.CRAIGSLIST, items=craigslist_items)

        result = await SearchAggregator(ebay, craigslist).aggregate("x")

        assert len(result.results) == 3
        assert result.sources[EBAY].status == "rejected"
        assert result.sources[EBAY].count == 0
        assert result.sources[EBAY].error == "upstream 500"
        assert result.sources[CRAIGSLIST].status == "fulfilled"

    @pytest.mark.asyncio
    async def test_both_failed_is_empty(self):
        ebay = StubClient(ListingSource.EBAY, error=SearchError("down"))
        craigslist = StubClient(ListingSource.CRAIGSLIST, error=RuntimeError("parse"))

        result = await SearchAggregator(ebay, craigslist).aggregate("x")

        assert result.results == []
        assert result.sources[EBAY].status == "rejected"
        assert result.sources[CRAIGSLIST].status == "rejected"

    @pytest.mark.asyncio
    async def test_craigslist_disabled_is_skipped(self, craigslist_items):
        ebay = StubClient(ListingSource.EBAY, items=[make_listing("e")])
        craigslist = StubClient(ListingSource.CRAIGSLIST, items=craigslist_items)
        prefs = SearchPreferences(craigslist_enabled=False)

        result = await SearchAggregator(ebay, craigslist).aggregate("x", prefs)

        assert craigslist.calls == []
        assert result.sources[CRAIGSLIST].status == "skipped"
        assert result.sources[CRAIGSLIST].count == 0
        assert [listing.title for listing in result.results] == ["e"]

    @pytest.mark.asyncio
    async def test_craigslist_receives_region_options(self):
        ebay = StubClient(ListingSource.EBAY)
        craigslist = StubClient(ListingSource.CRAIGSLIST)
        prefs = SearchPreferences(craigslist_city="seattle", craigslist_radius=25)

        await SearchAggregator(ebay, craigslist).aggregate("x", prefs)

        _, options = craigslist.calls[0]
        assert options.city == "seattle"
        assert options.radius == 25
        assert ebay.calls[0] == ("x", prefs)

    @pytest.mark.asyncio
    async def test_slow_source_times_out(self, craigslist_items):
        ebay = StubClient(ListingSource.EBAY, items=[make_listing("e")], delay=1.0)
        craigslist = StubClient(ListingSource.CRAIGSLIST, items=craigslist_items)

        result = await SearchAggregator(ebay, craigslist, timeout=0.05).aggregate("x")

        assert result.sources[EBAY].status == "rejected"
        assert result.sources[EBAY].error == "timed out"
        assert len(result.results) == 3
