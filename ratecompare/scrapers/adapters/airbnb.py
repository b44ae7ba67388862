"""Airbnb pricing via the stayCheckout persisted GraphQL query.

The endpoint returns a structured price breakdown for a listing, stay dates
and guest counts, so no page text has to be matched.
"""

import base64
import json
import re
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ratecompare.core.exceptions import NoPricingDataFound
from ratecompare.core.models import (
    Channel,
    ChannelRequest,
    FetchStrategy,
    PartyComposition,
    PriceBreakdown,
)
from ratecompare.scrapers.base import BaseAPIAdapter
from ratecompare.scrapers.utils.extraction import backfill_from_total, settle_components
from ratecompare.scrapers.utils.normalizer import PriceNormalizer

STAY_CHECKOUT_HASH = "417c0620877e4b93402f5b88a2471ef8683a42b66775578dffee68ad9def7816"

_NIGHTS = re.compile(r"(\d+)\s+nights?", re.IGNORECASE)


class AirbnbAdapter(BaseAPIAdapter):
    """Airbnb adapter using the private stayCheckout endpoint."""

    channel = Channel.AIRBNB
    DEFAULT_BASE_URL = "https://www.airbnb.com"
    LISTING_URL_PATTERN = re.compile(r"/rooms/(?:plus/)?(?P<listing_id>\d+)")

    def build_request(
        self,
        listing_id: str,
        check_in: date,
        check_out: date,
        party: PartyComposition,
    ) -> ChannelRequest:
        product_id = base64.b64encode(f"StayListing:{listing_id}".encode()).decode()
        variables = {
            "input": {
                "businessTravel": {"workTrip": False},
                "checkinDate": check_in.isoformat(),
                "checkoutDate": check_out.isoformat(),
                "expectedPlacementType": "WIDE",
                "guestCounts": {
                    "numberOfAdults": party.adults,
                    "numberOfChildren": party.children,
                    "numberOfInfants": party.infants,
                    "numberOfPets": party.pets,
                },
                "guestCurrencyOverride": self.config.currency,
                "listingDetail": {},
                "lux": {},
                "metadata": {"internalFlags": ["LAUNCH_LOGIN_PHONE_AUTH"]},
                "org": {},
                "productId": product_id,
                "addOn": {"carbonOffsetParams": {"isSelected": False}},
                "quickPayData": None,
            }
        }
        extensions = {"persistedQuery": {"version": 1, "sha256Hash": STAY_CHECKOUT_HASH}}

        return ChannelRequest(
            url=f"{self.base_url}/api/v3/stayCheckout/{STAY_CHECKOUT_HASH}",
            listing_id=listing_id,
            strategy=FetchStrategy.API,
            params={
                "operationName": "stayCheckout",
                "locale": "en",
                "currency": self.config.currency,
                "variables": json.dumps(variables, separators=(",", ":")),
                "extensions": json.dumps(extensions, separators=(",", ":")),
            },
            headers={
                "Accept": "application/json",
                "Referer": f"{self.base_url}/",
                "Origin": self.base_url,
            },
        )

    def extract_quote(self, raw: Any) -> PriceBreakdown:
        """Walk the stayCheckout price breakdown.

        ``ACCOMMODATION`` items carry the nightly subtotal plus nested
        service fee, cleaning fee and discount lines; ``TAXES`` carries taxes.
        """
        breakdown = _dig(
            raw,
            "data",
            "presentation",
            "stayCheckout",
            "temporaryQuickPayData",
            "productPriceBreakdown",
            "priceBreakdown",
        )
        if not isinstance(breakdown, dict):
            raise NoPricingDataFound("stayCheckout response has no price breakdown")

        items: List[Dict[str, Any]] = breakdown.get("priceItems") or []
        total_block = _dig(breakdown, "total", "total")
        if not items and not total_block:
            raise NoPricingDataFound("stayCheckout price breakdown is empty")

        fields: Dict[str, Decimal] = {}
        nights: Optional[int] = None

        def add(name: str, amount: Optional[Decimal]) -> None:
            if amount is not None:
                fields[name] = fields.get(name, Decimal("0")) + abs(amount)

        for item in items:
            item_type = (item.get("type") or "").upper()
            nested = item.get("nestedPriceItems") or []

            if item_type == "ACCOMMODATION":
                lines = nested or [item]
                for line in lines:
                    title = (line.get("localizedTitle") or "").lower()
                    amount = _amount(line.get("total"))
                    if "service fee" in title:
                        add("service", amount)
                    elif "cleaning" in title:
                        add("cleaning", amount)
                    elif "discount" in title:
                        add("discount", amount)
                    elif "night" in title or line is item:
                        add("base", amount)
                        match = _NIGHTS.search(title)
                        if match:
                            nights = int(match.group(1))
                    else:
                        add("other", amount)
            elif item_type == "TAXES":
                add("taxes", _amount(item.get("total")))
            elif "CLEANING" in item_type:
                add("cleaning", _amount(item.get("total")))
            elif "SERVICE" in item_type or "GUEST_FEE" in item_type:
                add("service", _amount(item.get("total")))
            elif "DISCOUNT" in item_type:
                add("discount", _amount(item.get("total")))
            else:
                add("other", _amount(item.get("total")))

        currency = (total_block or {}).get("currency") or self.config.currency
        total = _amount(total_block)

        if "base" not in fields:
            if total is None:
                raise NoPricingDataFound("stayCheckout response has no accommodation price")
            return backfill_from_total(total, currency)

        base = max(fields["base"] - fields.get("discount", Decimal("0")), Decimal("0"))
        return settle_components(
            PriceBreakdown(
                base=base,
                cleaning=fields.get("cleaning"),
                service=fields.get("service"),
                taxes=fields.get("taxes"),
                other=fields.get("other"),
                total=total,
                currency=currency,
                nights=nights,
            )
        )


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _amount(block: Optional[Dict[str, Any]]) -> Optional[Decimal]:
    """Read a price block, preferring exact micros over the formatted string."""
    if not block:
        return None
    micros = PriceNormalizer.from_micros(block.get("amountMicros"))
    if micros is not None:
        return micros
    return PriceNormalizer.clean_price_string(block.get("amountFormatted"))
