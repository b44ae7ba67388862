"""Price parsing and quote validation.

:class:`PriceNormalizer` turns raw price strings and micro-unit amounts into
:class:`~decimal.Decimal` values. :class:`QuoteValidator` is the single gate
every candidate quote passes through before it is cached or compared.
"""

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional

import structlog

from ratecompare.core.exceptions import ValidationError
from ratecompare.core.models import Channel, Fees, RateQuote, utcnow

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
SUM_TOLERANCE = Decimal("0.01")


class PriceNormalizer:
    """Price string parsing and currency symbol handling."""

    CURRENCY_SYMBOLS = {
        "$": "USD",
        "US$": "USD",
        "€": "EUR",
        "£": "GBP",
        "¥": "JPY",
    }

    @staticmethod
    def clean_price_string(raw: Optional[str]) -> Optional[Decimal]:
        """Parse a price string and extract its numeric value.

        Handles formats such as "$1,234.56", "€ 89", "£1,000" and "1234.5".

        Returns:
            Decimal price value, or None if parsing fails
        """
        if not raw:
            return None

        cleaned = raw.strip()
        for symbol in ("US$", "$", "€", "£", "¥"):
            cleaned = cleaned.replace(symbol, "")

        # Thousand separators
        cleaned = cleaned.replace(",", "")
        cleaned = re.sub(r"[^\d.]", "", cleaned)

        if not cleaned:
            return None

        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return None

    @classmethod
    def currency_for_symbol(cls, symbol: Optional[str], default: str = "USD") -> str:
        """Map a currency symbol (or ISO code) to an ISO 4217 code."""
        if not symbol:
            return default
        symbol = symbol.strip()
        if symbol in cls.CURRENCY_SYMBOLS:
            return cls.CURRENCY_SYMBOLS[symbol]
        if re.fullmatch(r"[A-Za-z]{3}", symbol):
            return symbol.upper()
        return default

    @staticmethod
    def from_micros(micros: Any) -> Optional[Decimal]:
        """Convert an ``amountMicros`` value (1e-6 units) to a cent amount."""
        if micros is None or isinstance(micros, bool):
            return None
        try:
            return (Decimal(str(micros)) / Decimal(1_000_000)).quantize(CENT, ROUND_HALF_UP)
        except InvalidOperation:
            return None

    @staticmethod
    def quantize(amount: Decimal) -> Decimal:
        return amount.quantize(CENT, ROUND_HALF_UP)


class QuoteValidator:
    """Validates candidate quote mappings and builds :class:`RateQuote` objects.

    Any violation raises :class:`ValidationError`, which is permanent: a
    malformed quote does not become valid by asking again.
    """

    REQUIRED_FIELDS = (
        "channel",
        "property_id",
        "check_in",
        "check_out",
        "base_price",
        "total_price",
        "currency",
        "availability",
    )
    FEE_FIELDS = ("cleaning", "service", "taxes", "other")

    def validate(self, candidate: Mapping[str, Any]) -> RateQuote:
        """Validate ``candidate`` and return the normalized quote.

        Raises:
            ValidationError: On the first violated rule
        """
        if not isinstance(candidate, Mapping):
            raise ValidationError("Quote candidate must be a mapping")

        missing = [f for f in self.REQUIRED_FIELDS if candidate.get(f) is None]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}", field=missing[0]
            )

        channel = str(candidate["channel"]).lower()
        if channel not in Channel.values():
            raise ValidationError(f"Unknown channel: {candidate['channel']}", field="channel")

        property_id = candidate["property_id"]
        if not isinstance(property_id, str) or not property_id.strip():
            raise ValidationError("property_id must be a non-empty string", field="property_id")

        check_in = self._date(candidate["check_in"], "check_in")
        check_out = self._date(candidate["check_out"], "check_out")
        if check_out <= check_in:
            raise ValidationError("check_out must be after check_in", field="check_out")

        base_price = self._money(candidate["base_price"], "base_price")
        total_price = self._money(candidate["total_price"], "total_price")

        raw_fees = candidate.get("fees") or {}
        if not isinstance(raw_fees, Mapping):
            raise ValidationError("fees must be a mapping", field="fees")
        unknown = set(raw_fees) - set(self.FEE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fee fields: {', '.join(sorted(unknown))}", field="fees")
        fees = Fees(
            **{
                name: self._money(raw_fees.get(name, 0), f"fees.{name}")
                for name in self.FEE_FIELDS
            }
        )

        if total_price < base_price:
            raise ValidationError("total_price must be >= base_price", field="total_price")

        currency = candidate["currency"]
        if not isinstance(currency, str) or not re.fullmatch(r"[A-Z]{3}", currency):
            raise ValidationError(f"Invalid currency code: {currency!r}", field="currency")

        availability = candidate["availability"]
        if not isinstance(availability, bool):
            raise ValidationError("availability must be a boolean", field="availability")

        estimated = bool(candidate.get("estimated", False))
        if not estimated:
            expected = base_price + fees.total()
            if abs(total_price - expected) > SUM_TOLERANCE:
                raise ValidationError(
                    f"total_price {total_price} does not equal base_price plus fees ({expected})",
                    field="total_price",
                )

        last_updated = candidate.get("last_updated") or utcnow()
        if not isinstance(last_updated, datetime):
            raise ValidationError("last_updated must be a datetime", field="last_updated")

        return RateQuote(
            channel=channel,
            property_id=property_id.strip(),
            check_in=check_in,
            check_out=check_out,
            base_price=base_price,
            fees=fees,
            total_price=total_price,
            currency=currency,
            availability=availability,
            last_updated=last_updated,
            estimated=estimated,
            listing_id=candidate.get("listing_id"),
            source=candidate.get("source"),
        )

    @staticmethod
    def _date(value: Any, field: str) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value)
            except ValueError:
                pass
        raise ValidationError(f"{field} must be an ISO date", field=field)

    @staticmethod
    def _money(value: Any, field: str) -> Decimal:
        if isinstance(value, bool):
            raise ValidationError(f"{field} must be numeric", field=field)
        try:
            amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
        except InvalidOperation:
            raise ValidationError(f"{field} must be numeric", field=field)
        if not amount.is_finite():
            raise ValidationError(f"{field} must be finite", field=field)
        if amount < 0:
            raise ValidationError(f"{field} must be non-negative", field=field)
        return amount
