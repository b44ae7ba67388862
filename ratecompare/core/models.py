"""Domain data structures shared by adapters, services and the API.

Money is always :class:`~decimal.Decimal`; dates are :class:`datetime.date`
and timestamps are timezone-aware UTC datetimes.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class Channel(str, Enum):
    """External booking platforms a property can be listed on."""

    AIRBNB = "airbnb"
    VRBO = "vrbo"
    BOOKING = "booking"
    EXPEDIA = "expedia"

    @classmethod
    def values(cls) -> List[str]:
        return [c.value for c in cls]


class FetchStrategy(str, Enum):
    """How an adapter obtains raw pricing data."""

    API = "api"
    PAGE = "page"
    RENDERED = "rendered"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Fees:
    """Fee components of a stay price. All amounts are non-negative."""

    cleaning: Decimal = Decimal("0")
    service: Decimal = Decimal("0")
    taxes: Decimal = Decimal("0")
    other: Decimal = Decimal("0")

    def total(self) -> Decimal:
        return self.cleaning + self.service + self.taxes + self.other

    def to_dict(self) -> Dict[str, str]:
        return {
            "cleaning": str(self.cleaning),
            "service": str(self.service),
            "taxes": str(self.taxes),
            "other": str(self.other),
        }


@dataclass
class PartyComposition:
    """Guests included in a quote request."""

    adults: int = 2
    children: int = 0
    infants: int = 0
    pets: int = 0

    def __post_init__(self):
        if self.adults < 1:
            raise ValueError("adults must be at least 1")
        if min(self.children, self.infants, self.pets) < 0:
            raise ValueError("guest counts must be non-negative")

    @property
    def guests(self) -> int:
        """Guests counted toward occupancy (infants and pets excluded)."""
        return self.adults + self.children


@dataclass
class PriceBreakdown:
    """Price components recovered from one raw channel response.

    ``None`` marks a component that was not present in the response.
    """

    base: Optional[Decimal] = None
    cleaning: Optional[Decimal] = None
    service: Optional[Decimal] = None
    taxes: Optional[Decimal] = None
    other: Optional[Decimal] = None
    total: Optional[Decimal] = None
    currency: str = "USD"
    nights: Optional[int] = None
    available: bool = True
    estimated: bool = False

    def matched_fields(self) -> List[str]:
        return [
            name
            for name in ("base", "cleaning", "service", "taxes", "other", "total")
            if getattr(self, name) is not None
        ]


@dataclass
class RateQuote:
    """A validated, normalized price quote for one channel and stay."""

    channel: str
    property_id: str
    check_in: date
    check_out: date
    base_price: Decimal
    fees: Fees
    total_price: Decimal
    currency: str = "USD"
    availability: bool = True
    last_updated: datetime = field(default_factory=utcnow)
    estimated: bool = False
    listing_id: Optional[str] = None
    source: Optional[str] = None

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation; money is serialized as strings."""
        return {
            "channel": self.channel,
            "property_id": self.property_id,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "base_price": str(self.base_price),
            "fees": self.fees.to_dict(),
            "total_price": str(self.total_price),
            "currency": self.currency,
            "availability": self.availability,
            "last_updated": self.last_updated.isoformat(),
            "estimated": self.estimated,
            "listing_id": self.listing_id,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateQuote":
        fees = data.get("fees") or {}
        return cls(
            channel=data["channel"],
            property_id=data["property_id"],
            check_in=date.fromisoformat(data["check_in"]),
            check_out=date.fromisoformat(data["check_out"]),
            base_price=Decimal(data["base_price"]),
            fees=Fees(**{k: Decimal(v) for k, v in fees.items()}),
            total_price=Decimal(data["total_price"]),
            currency=data.get("currency", "USD"),
            availability=data.get("availability", True),
            last_updated=datetime.fromisoformat(data["last_updated"]),
            estimated=data.get("estimated", False),
            listing_id=data.get("listing_id"),
            source=data.get("source"),
        )


@dataclass
class Savings:
    """How much cheaper the best channel is than the runner-up."""

    amount: Decimal
    percentage: Decimal


@dataclass
class RateComparisonResult:
    """Outcome of comparing quotes across channels for one stay."""

    property_id: str
    check_in: date
    check_out: date
    quotes: List[RateQuote]
    best_quote: Optional[RateQuote] = None
    savings: Optional[Savings] = None
    last_updated: datetime = field(default_factory=utcnow)
    failures: Dict[str, str] = field(default_factory=dict)
    from_cache: bool = False


@dataclass
class Identity:
    """User agent and header set presented on one outbound request."""

    user_agent: str
    headers: Dict[str, str] = field(default_factory=dict)

    def as_headers(self) -> Dict[str, str]:
        return {**self.headers, "User-Agent": self.user_agent}


@dataclass
class ChannelRequest:
    """A fully built outbound request for one channel.

    ``url`` is the navigable page (or API endpoint); ``params`` and
    ``headers`` are sent with it. ``listing_id`` is kept for attribution.
    """

    url: str
    listing_id: str
    strategy: FetchStrategy
    params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
