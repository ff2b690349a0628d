"""
Tests for the eBay Browse API search client.
"""
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from partscout.collectors.base import SearchError
from partscout.collectors.ebay.search_client import (
    EbaySearchClient,
    build_aspect_filter,
    build_compatibility_filter,
    build_filter,
    build_query,
    format_price,
    parse_item_summary,
    parse_search_response,
)
from partscout.core.config import Settings
from partscout.models.database import ListingSource
from partscout.models.schemas import SearchPreferences


class StubCredentials:
    base_url = "https://api.ebay.com"

    async def get_token(self) -> str:
        return "test-token"


class TestRequestBuilding:
    """Query and filter composition from preferences."""

    def test_build_query_appends_exclusions(self):
        prefs = SearchPreferences(excluded_keywords=["parting out", "whole car"])

        assert build_query("f150 headlight", prefs) == 'f150 headlight -"parting out" -"whole car"'

    def test_build_query_without_exclusions(self):
        prefs = SearchPreferences(excluded_keywords=[])

        assert build_query("f150 headlight", prefs) == "f150 headlight"

    def test_build_filter_defaults(self):
        assert build_filter(SearchPreferences()) == (
            "conditionIds:{3000},"
            "buyingOptions:{FIXED_PRICE|BEST_OFFER|AUCTION},"
            "price:[..500],priceCurrency:USD"
        )

    def test_build_filter_empty(self):
        prefs = SearchPreferences(condition_ids=[], buying_options=[], max_price=None)

        assert build_filter(prefs) is None

    def test_build_filter_multiple_conditions(self):
        prefs = SearchPreferences(condition_ids=["3000", "7000"], buying_options=[], max_price="250")

        assert build_filter(prefs) == "conditionIds:{3000|7000},price:[..250],priceCurrency:USD"

    def test_compatibility_filter(self):
        prefs = SearchPreferences(vehicle_year="2015", vehicle_make="Ford", vehicle_model="F-150")

        assert build_compatibility_filter(prefs) == "Year:2015,Make:Ford,Model:F-150"
        assert build_compatibility_filter(SearchPreferences()) is None

    def test_aspect_filter(self):
        assert build_aspect_filter(SearchPreferences()) == (
            "categoryId:33710,"
            "Brand Type:{Genuine OEM},"
            "Country/Region of Manufacture:{United States}"
        )

    def test_aspect_filter_requires_category(self):
        prefs = SearchPreferences(category_id="")

        assert build_aspect_filter(prefs) is None

    def test_aspect_filter_all_aspects_off(self):
        prefs = SearchPreferences(brand_type_oem=False, origin_us=False)

        assert build_aspect_filter(prefs) is None


class TestResponseMapping:
    """Item summary to Listing mapping."""

    @pytest.fixture
    def item_summary(self):
        return {
            "itemId": "v1|256123456789|0",
            "title": "2015-2017 Ford F-150 Left Headlight OEM",
            "price": {"value": "189.99", "currency": "USD"},
            "itemWebUrl": "https://www.ebay.com/itm/256123456789",
            "image": {"imageUrl": "https://i.ebayimg.com/images/g/abc/s-l500.jpg"},
            "condition": "Used",
            "itemCreationDate": "2024-03-01T12:30:00.000Z",
            "itemLocation": {"city": "Dallas", "stateOrProvince": "TX", "country": "US"},
            "seller": {"username": "parts_yard_tx"},
        }

    def test_parse_item_summary(self, item_summary):
        listing = parse_item_summary(item_summary)

        assert listing.source == ListingSource.EBAY
        assert listing.title == "2015-2017 Ford F-150 Left Headlight OEM"
        assert listing.link == "https://www.ebay.com/itm/256123456789"
        assert listing.external_id == "v1|256123456789|0"
        assert listing.price_display == "$189.99"
        assert listing.price_cents == 18999
        assert listing.image == "https://i.ebayimg.com/images/g/abc/s-l500.jpg"
        assert listing.condition == "Used"
        assert listing.listing_date == datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)
        assert listing.location == "Dallas, TX"
        assert listing.seller_name == "parts_yard_tx"

    def test_parse_item_summary_minimal(self):
        listing = parse_item_summary({
            "title": "Door handle",
            "itemWebUrl": "https://www.ebay.com/itm/1",
        })

        assert listing.price_display is None
        assert listing.price_cents is None
        assert listing.listing_date is None
        assert listing.location is None
        assert listing.seller_name is None

    def test_parse_item_summary_without_url(self, item_summary):
        item_summary["itemWebUrl"] = ""

        assert parse_item_summary(item_summary) is None

    def test_parse_search_response_without_items(self):
        assert parse_search_response({"total": 0}) == []

    def test_parse_search_response_skips_unusable(self, item_summary):
        data = {"itemSummaries": [item_summary, {"itemId": "x"}]}

        assert len(parse_search_response(data)) == 1

    def test_format_price(self):
        test_cases = [
            (Decimal("1250.00"), "USD", "$1,250"),
            (Decimal("19.99"), "USD", "$19.99"),
            (Decimal("45"), "CAD", "CAD 45"),
        ]

        for value, currency, expected in test_cases:
            assert format_price(value, currency) == expected, f"Value: {value}"


class TestEbaySearchClient:
    """Search requests against a mocked Browse API."""

    @pytest.fixture
    def requests(self):
        return []

    @pytest.fixture
    def settings(self):
        return Settings(ebay_app_id="MyApp-PRD-123", ebay_cert_id="PRD-secret", ebay_search_limit=25)

    def make_client(self, settings, requests, response):
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return response

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return EbaySearchClient(StubCredentials(), settings=settings, http_client=http_client)

    @pytest.mark.asyncio
    async def test_search_request(self, settings, requests):
        client = self.make_client(settings, requests, httpx.Response(200, json={
            "itemSummaries": [{
                "title": "F-150 headlight",
                "itemWebUrl": "https://www.ebay.com/itm/1",
                "price": {"value": "50.00", "currency": "USD"},
            }]
        }))

        outcome = await client.search("f150 headlight", SearchPreferences(vehicle_make="Ford"))

        request = requests[0]
        assert request.url.path == "/buy/browse/v1/item_summary/search"
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["X-EBAY-C-MARKETPLACE-ID"] == "EBAY_US"

        params = request.url.params
        assert params["q"].startswith('f150 headlight -"parting out"')
        assert params["limit"] == "25"
        assert params["sort"] == "newlyListed"
        assert params["category_ids"] == "33710"
        assert params["compatibility_filter"] == "Make:Ford"
        assert "conditionIds:{3000}" in params["filter"]

        assert outcome.request_url == str(request.url)
        assert outcome.request_urls == [outcome.request_url]
        assert len(outcome.items) == 1
        assert outcome.items[0].price_display == "$50"

    @pytest.mark.asyncio
    async def test_search_omits_empty_filters(self, settings, requests):
        client = self.make_client(settings, requests, httpx.Response(200, json={}))
        prefs = SearchPreferences(
            category_id="",
            condition_ids=[],
            buying_options=[],
            max_price="",
            excluded_keywords=[],
        )

        outcome = await client.search("mirror", prefs)

        params = requests[0].url.params
        assert params["q"] == "mirror"
        assert "filter" not in params
        assert "category_ids" not in params
        assert "aspect_filter" not in params
        assert outcome.items == []

    @pytest.mark.asyncio
    async def test_search_api_error(self, settings, requests):
        client = self.make_client(settings, requests, httpx.Response(500, text="Internal error"))

        with pytest.raises(SearchError) as exc_info:
            await client.search("mirror")

        assert exc_info.value.code == "API_ERROR"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_search_invalid_json(self, settings, requests):
        client = self.make_client(settings, requests, httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(SearchError) as exc_info:
            await client.search("mirror")

        assert exc_info.value.code == "PARSE_ERROR"
