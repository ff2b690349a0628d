"""
Base search client interface for multi-source listing aggregation.
All source-specific clients should implement this interface.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from partscout.models.database import ListingSource
from partscout.models.schemas import Listing


class SearchError(Exception):
    """Upstream search failed (non-2xx, network failure or unparseable body)."""
    def __init__(self, message: str, code: str = None, status_code: int = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


@dataclass
class SearchOutcome:
    """Listings returned by one source plus the request that produced them."""
    items: list[Listing] = field(default_factory=list)
    request_url: Optional[str] = None
    request_urls: list[str] = field(default_factory=list)


class BaseSearchClient(ABC):
    """
    Abstract base class for source-specific search clients.

    Each source (eBay, Craigslist, ...) implements ``search`` and maps its
    own response shape onto the canonical ``Listing``.
    """

    @property
    @abstractmethod
    def source(self) -> ListingSource:
        """Return the source this client queries."""
        pass

    @abstractmethod
    async def search(self, query: str, options: Any = None) -> SearchOutcome:
        """
        Search the source for listings matching a query.

        Args:
            query: Free-text search query
            options: Source-specific search options

        Returns:
            SearchOutcome with canonical listings

        Raises:
            SearchError: when the upstream call fails
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass
