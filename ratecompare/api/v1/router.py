"""API v1 router -- aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from ratecompare.api.v1 import health, rates

api_v1_router = APIRouter()

api_v1_router.include_router(health.router, tags=["health"])
api_v1_router.include_router(rates.router, prefix="/rates", tags=["rates"])
