"""Rate comparison endpoint."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ratecompare.core.models import PartyComposition
from ratecompare.dependencies import get_rate_service
from ratecompare.schemas import ApiResponse, RateComparisonResponse
from ratecompare.services.rate_service import RateComparisonService

router = APIRouter()


@router.get("", response_model=ApiResponse[RateComparisonResponse])
async def get_rates(
    property_id: str = Query(..., min_length=1, description="Configured property id"),
    check_in: date = Query(..., description="Arrival date (YYYY-MM-DD)"),
    check_out: date = Query(..., description="Departure date (YYYY-MM-DD)"),
    channels: Optional[str] = Query(
        None, description="Comma-separated channels; defaults to every listed channel"
    ),
    adults: int = Query(2, ge=1, le=32),
    children: int = Query(0, ge=0, le=16),
    infants: int = Query(0, ge=0, le=8),
    pets: int = Query(0, ge=0, le=8),
    service: RateComparisonService = Depends(get_rate_service),
):
    """Compare a property's rates across booking channels.

    Errors use the standard envelope: 400 for invalid requests, 404 for
    unknown properties and 502 when every channel failed.
    """
    channel_list = (
        [c for c in (part.strip() for part in channels.split(",")) if c]
        if channels
        else None
    )
    party = PartyComposition(adults=adults, children=children, infants=infants, pets=pets)

    result = await service.fetch_rates(
        property_id,
        check_in,
        check_out,
        channels=channel_list,
        party=party,
    )
    return ApiResponse(data=RateComparisonResponse.from_result(result))
