"""Rate comparison response schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from ratecompare.core.models import RateComparisonResult, RateQuote


class FeesResponse(BaseModel):
    cleaning: Decimal
    service: Decimal
    taxes: Decimal
    other: Decimal


class QuoteResponse(BaseModel):
    """One channel's normalized quote."""

    channel: str
    property_id: str
    check_in: date
    check_out: date
    nights: int
    base_price: Decimal
    fees: FeesResponse
    total_price: Decimal
    currency: str
    availability: bool
    estimated: bool
    listing_id: Optional[str] = None
    source: Optional[str] = None
    last_updated: datetime

    @classmethod
    def from_quote(cls, quote: RateQuote) -> "QuoteResponse":
        return cls(
            channel=quote.channel,
            property_id=quote.property_id,
            check_in=quote.check_in,
            check_out=quote.check_out,
            nights=quote.nights,
            base_price=quote.base_price,
            fees=FeesResponse(
                cleaning=quote.fees.cleaning,
                service=quote.fees.service,
                taxes=quote.fees.taxes,
                other=quote.fees.other,
            ),
            total_price=quote.total_price,
            currency=quote.currency,
            availability=quote.availability,
            estimated=quote.estimated,
            listing_id=quote.listing_id,
            source=quote.source,
            last_updated=quote.last_updated,
        )


class SavingsResponse(BaseModel):
    amount: Decimal
    percentage: Decimal


class RateComparisonResponse(BaseModel):
    """Comparison of one property's quotes across channels."""

    property_id: str
    check_in: date
    check_out: date
    quotes: List[QuoteResponse]
    best_channel: Optional[str] = None
    best_quote: Optional[QuoteResponse] = None
    savings: Optional[SavingsResponse] = None
    failures: Dict[str, str] = {}
    from_cache: bool = False
    last_updated: datetime

    @classmethod
    def from_result(cls, result: RateComparisonResult) -> "RateComparisonResponse":
        best = result.best_quote
        return cls(
            property_id=result.property_id,
            check_in=result.check_in,
            check_out=result.check_out,
            quotes=[QuoteResponse.from_quote(q) for q in result.quotes],
            best_channel=best.channel if best else None,
            best_quote=QuoteResponse.from_quote(best) if best else None,
            savings=(
                SavingsResponse(amount=result.savings.amount, percentage=result.savings.percentage)
                if result.savings
                else None
            ),
            failures=dict(result.failures),
            from_cache=result.from_cache,
            last_updated=result.last_updated,
        )
