"""FastAPI dependency injection providers."""

from fastapi import Request

from ratecompare.services.cache_service import RateCache
from ratecompare.services.rate_service import RateComparisonService


def get_rate_service(request: Request) -> RateComparisonService:
    """Return the service created during application startup.

    Usage:
        @router.get("/rates")
        async def rates(service: RateComparisonService = Depends(get_rate_service)):
            ...
    """
    return request.app.state.rate_service


def get_cache(request: Request) -> RateCache:
    return get_rate_service(request).cache
