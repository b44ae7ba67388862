"""Health check endpoint."""

from fastapi import APIRouter, Depends

from ratecompare import __version__
from ratecompare.dependencies import get_cache
from ratecompare.scrapers.utils.browser_manager import get_browser_manager
from ratecompare.schemas import HealthCheckResponse
from ratecompare.services.cache_service import RateCache

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(cache: RateCache = Depends(get_cache)):
    """Return service health status.

    Checks the rate cache backend (Redis when configured) and reports
    whether the shared browser is running.
    """
    try:
        cache_status = "ok" if await cache.health_check() else "error: ping failed"
    except Exception as e:
        cache_status = f"error: {e}"

    services = {
        "cache": cache_status,
        "cache_backend": type(cache).__name__,
        "browser": "running" if get_browser_manager().is_running else "idle",
    }

    return HealthCheckResponse(
        status="ok" if cache_status == "ok" else "degraded",
        version=__version__,
        cache=cache_status,
        services=services,
    )
