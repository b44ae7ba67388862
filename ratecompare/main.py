"""Rate comparison API -- FastAPI application entry point."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ratecompare import __version__
from ratecompare.api.v1.router import api_v1_router
from ratecompare.config import load_rate_compare_config, settings
from ratecompare.core.exceptions import (
    AllChannelsFailedError,
    InvalidRequestError,
    PropertyNotFound,
    RateCompareError,
)
from ratecompare.core.logging import configure_logging
from ratecompare.schemas import ErrorDetail, ErrorResponse
from ratecompare.scrapers.register_adapters import register_all_adapters
from ratecompare.scrapers.utils.browser_manager import get_browser_manager
from ratecompare.services.rate_service import RateComparisonService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
    logger.info(
        "api_starting",
        environment=settings.ENVIRONMENT,
        debug=settings.DEBUG,
        version=__version__,
    )

    config = load_rate_compare_config()
    factory = register_all_adapters()

    service = RateComparisonService(config, factory=factory)
    app.state.rate_service = service

    cache_healthy = await service.cache.health_check()
    if not cache_healthy:
        logger.warning("cache_unavailable", backend=type(service.cache).__name__)

    await service.start()

    yield

    logger.info("api_shutting_down")
    await service.close()

    browser_manager = get_browser_manager()
    if browser_manager.is_running:
        await browser_manager.stop()


def _status_for(error: RateCompareError) -> int:
    if isinstance(error, PropertyNotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, InvalidRequestError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, AllChannelsFailedError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def rate_compare_error_handler(request: Request, exc: RateCompareError) -> JSONResponse:
    code = _status_for(exc)
    log = logger.warning if code < 500 else logger.error
    log("request_failed", path=request.url.path, status_code=code, error_code=exc.code)
    body = ErrorResponse(
        error=ErrorDetail(code=exc.code, message=exc.message, context=exc.context)
    )
    return JSONResponse(status_code=code, content=body.model_dump(mode="json"))


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    loc = first.get("loc") or ()
    body = ErrorResponse(
        error=ErrorDetail(
            code=InvalidRequestError.code,
            message=first.get("msg", "Invalid request"),
            field=str(loc[-1]) if loc else None,
        )
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json")
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Rate Compare API",
        description="Nightly-rental rate comparison across booking channels",
        version=__version__,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RateCompareError, rate_compare_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Rate Compare API",
            "version": __version__,
            "docs": "/docs" if settings.DEBUG else None,
            "health": "/api/v1/health",
        }

    return app


app = create_app()
