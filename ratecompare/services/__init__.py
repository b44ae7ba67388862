"""Services: caching, comparison and orchestration of channel fetches."""

from ratecompare.services.cache_service import (
    CachedRates,
    InMemoryRateCache,
    RateCache,
    RedisRateCache,
    cache_key_for_rates,
    get_rate_cache,
)
from ratecompare.services.comparison import ComparisonEngine
from ratecompare.services.rate_service import RateComparisonService

__all__ = [
    "CachedRates",
    "RateCache",
    "InMemoryRateCache",
    "RedisRateCache",
    "cache_key_for_rates",
    "get_rate_cache",
    "ComparisonEngine",
    "RateComparisonService",
]
