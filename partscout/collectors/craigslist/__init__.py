"""
Craigslist search client module.
"""
from partscout.collectors.craigslist.client import (
    DEFAULT_REGIONS,
    CraigslistClient,
    build_search_url,
    row_to_listing,
)
from partscout.collectors.craigslist.parser import (
    extract_posting_id,
    parse_price_cents,
    parse_search_rows,
    parse_structured_data,
)

__all__ = [
    "CraigslistClient",
    "DEFAULT_REGIONS",
    "build_search_url",
    "extract_posting_id",
    "parse_price_cents",
    "parse_search_rows",
    "parse_structured_data",
    "row_to_listing",
]
