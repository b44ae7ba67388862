"""Pydantic schemas for the rate comparison API.

All request/response models are defined here for easy import.
"""

from ratecompare.schemas.common import ApiResponse, ErrorDetail, ErrorResponse
from ratecompare.schemas.health import HealthCheckResponse
from ratecompare.schemas.rates import (
    FeesResponse,
    QuoteResponse,
    RateComparisonResponse,
    SavingsResponse,
)

__all__ = [
    # Common
    "ApiResponse",
    "ErrorDetail",
    "ErrorResponse",
    # Health
    "HealthCheckResponse",
    # Rates
    "FeesResponse",
    "QuoteResponse",
    "RateComparisonResponse",
    "SavingsResponse",
]
