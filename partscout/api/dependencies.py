"""
Process-wide service instances, exposed as FastAPI dependencies.
"""
from functools import lru_cache

from partscout.collectors.craigslist import CraigslistClient
from partscout.collectors.ebay import CredentialCache, EbaySearchClient
from partscout.collectors.ebay.public_keys import PublicKeyCache
from partscout.core.config import get_settings
from partscout.services.agent_client import AgentClient
from partscout.services.aggregator import SearchAggregator
from partscout.services.relevance import (
    AgentRelevanceFilter,
    PassthroughFilter,
    RelevanceFilter,
)
from partscout.services.search_log import SearchLogger


@lru_cache
def get_credential_cache() -> CredentialCache:
    return CredentialCache.from_settings(get_settings())


@lru_cache
def get_ebay_client() -> EbaySearchClient:
    return EbaySearchClient(get_credential_cache(), settings=get_settings())


@lru_cache
def get_craigslist_client() -> CraigslistClient:
    return CraigslistClient(settings=get_settings())


@lru_cache
def get_aggregator() -> SearchAggregator:
    return SearchAggregator(
        get_ebay_client(),
        get_craigslist_client(),
        timeout=get_settings().upstream_timeout_seconds,
    )


@lru_cache
def get_relevance_filter() -> RelevanceFilter:
    settings = get_settings()
    if settings.relevance_filter_enabled and settings.agent_configured:
        return AgentRelevanceFilter.from_settings(settings)
    return PassthroughFilter()


@lru_cache
def get_search_logger() -> SearchLogger:
    return SearchLogger(get_settings().search_log_path)


@lru_cache
def get_agent_client() -> AgentClient:
    return AgentClient.from_settings(get_settings())


@lru_cache
def get_public_key_cache() -> PublicKeyCache:
    settings = get_settings()
    return PublicKeyCache(
        get_credential_cache(),
        ttl=settings.ebay_public_key_ttl_seconds,
        timeout=settings.upstream_timeout_seconds,
    )


CLIENT_FACTORIES = [
    get_ebay_client,
    get_craigslist_client,
    get_relevance_filter,
    get_agent_client,
    get_public_key_cache,
    get_credential_cache,
]


async def close_clients() -> None:
    """Close HTTP clients that were created during the app's lifetime."""
    for factory in CLIENT_FACTORIES:
        if factory.cache_info().currsize:
            await factory().close()
        factory.cache_clear()
    get_aggregator.cache_clear()
    get_search_logger.cache_clear()
