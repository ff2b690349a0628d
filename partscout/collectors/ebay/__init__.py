"""
eBay search client module.
"""
from partscout.collectors.ebay.auth import AuthError, CredentialCache
from partscout.collectors.ebay.search_client import (
    EbaySearchClient,
    parse_item_summary,
    parse_search_response,
)

__all__ = [
    "AuthError",
    "CredentialCache",
    "EbaySearchClient",
    "parse_item_summary",
    "parse_search_response",
]
