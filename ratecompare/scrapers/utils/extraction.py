"""Rule-driven price extraction from unstructured page text.

All text extraction runs off :data:`PRICE_RULES`, one ordered list of
``(pattern, field)`` pairs. The first rule that matches a field wins; later
rules for the same field are fallbacks. A ``nights`` group in a pattern
turns the matched amount into a per-night rate.
"""

import re
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog
from bs4 import BeautifulSoup

from ratecompare.core.exceptions import NoPricingDataFound
from ratecompare.core.models import PriceBreakdown
from ratecompare.scrapers.utils.normalizer import CENT, PriceNormalizer

logger = structlog.get_logger(__name__)

MONEY = r"(?P<symbol>US\$|[$€£¥])\s*(?P<amount>\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)"


def _rule(pattern: str) -> "re.Pattern[str]":
    return re.compile(pattern.replace("{MONEY}", MONEY), re.IGNORECASE)


PRICE_RULES: List[Tuple["re.Pattern[str]", str]] = [
    (_rule(r"(?P<nights>\d+)\s+nights?\s*[x×]\s*{MONEY}"), "base"),
    (_rule(r"(?:accommodation|room)\s+(?:subtotal|total|price)\s*{MONEY}"), "base"),
    (_rule(r"long\s+stay\s+discount\s*[-−]?\s*{MONEY}"), "discount"),
    (_rule(r"(?:weekly|monthly|early\s+bird)\s+discount\s*[-−]?\s*{MONEY}"), "discount"),
    (_rule(r"cleaning\s+fee\s*{MONEY}"), "cleaning"),
    (_rule(r"(?:airbnb\s+|host\s+)?service\s+fee\s*{MONEY}"), "service"),
    (_rule(r"(?:booking|platform)\s+fee\s*{MONEY}"), "service"),
    # "Total before taxes $X" is a pre-tax subtotal, not a tax line.
    (_rule(r"(?<!before\s)taxes(?:\s+(?:and|&)\s+fees)?\s*{MONEY}"), "taxes"),
    (_rule(r"(?:occupancy|lodging|city|local|vat)\s+tax(?:es)?\s*{MONEY}"), "taxes"),
    (_rule(r"(?<!before\s)\btax\s*{MONEY}"), "taxes"),
    (_rule(r"(?:resort|pet|damage\s+protection)\s+fee\s*{MONEY}"), "other"),
    (_rule(r"\btotal\s+(?:\(?[a-z]{3}\)?\s+)?{MONEY}"), "total"),
    (_rule(r"\btotal\s+(?:price|cost|amount)\s*{MONEY}"), "total"),
    (_rule(r"\bsubtotal\s*{MONEY}"), "base"),
]

UNAVAILABLE_MARKERS = (
    "not available",
    "sold out",
    "no availability",
    "dates are unavailable",
)

# Share of the total assigned to each component when only the total is known.
BACKFILL_RATIOS = {
    "service": Decimal("0.12"),
    "taxes": Decimal("0.08"),
    "cleaning": Decimal("0.05"),
}

# Regions with fewer matched fields than this are not considered.
MIN_REGION_LABELS = 2


def match_fields(text: str) -> Dict[str, Tuple[Decimal, str, Optional[int]]]:
    """Apply :data:`PRICE_RULES` to ``text``.

    Returns:
        ``field -> (amount, currency symbol, nights)`` for every field that
        matched. ``amount`` is already multiplied out for per-night rules.
    """
    found: Dict[str, Tuple[Decimal, str, Optional[int]]] = {}
    for pattern, field in PRICE_RULES:
        if field in found:
            continue
        match = pattern.search(text)
        if not match:
            continue
        amount = PriceNormalizer.clean_price_string(match.group("amount"))
        if amount is None:
            continue
        nights = match.groupdict().get("nights")
        if nights:
            amount = amount * int(nights)
        found[field] = (amount, match.group("symbol"), int(nights) if nights else None)
    return found


def html_regions(html: str) -> Tuple[List[str], str]:
    """Split an HTML document into candidate region texts and the body text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()

    regions = [
        node.get_text(" ", strip=True)
        for node in soup.find_all(["div", "section", "aside"])
    ]
    root = soup.body or soup
    return [r for r in regions if r], root.get_text(" ", strip=True)


def select_region(regions: Iterable[str], fallback: str) -> str:
    """Pick the densest region holding at least two matched labels.

    Density favours more matched fields, then shorter text. Falls back to
    ``fallback`` (normally the whole page text) when no region qualifies.
    """
    best: Optional[Tuple[int, int]] = None
    best_text = fallback
    for text in regions:
        labels = len(match_fields(text))
        if labels < MIN_REGION_LABELS:
            continue
        score = (labels, -len(text))
        if best is None or score > best:
            best, best_text = score, text
    return best_text


def is_unavailable(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in UNAVAILABLE_MARKERS)


def backfill_from_total(total: Decimal, currency: str) -> PriceBreakdown:
    """Estimate components from a bare total (75/12/8/5 %).

    Components are rounded to cents and the base absorbs the rounding
    remainder so the parts still add up to ``total``.
    """
    fees = {
        name: (total * ratio).quantize(CENT)
        for name, ratio in BACKFILL_RATIOS.items()
    }
    return PriceBreakdown(
        base=total - sum(fees.values()),
        cleaning=fees["cleaning"],
        service=fees["service"],
        taxes=fees["taxes"],
        other=Decimal("0"),
        total=total,
        currency=currency,
        estimated=True,
    )


def breakdown_from_fields(
    fields: Dict[str, Tuple[Decimal, str, Optional[int]]],
    default_currency: str = "USD",
) -> PriceBreakdown:
    """Assemble a :class:`PriceBreakdown` from matched rule fields."""
    symbol = next((sym for _, sym, _ in fields.values() if sym), None)
    currency = PriceNormalizer.currency_for_symbol(symbol, default_currency)

    def amount(name: str) -> Optional[Decimal]:
        return fields[name][0] if name in fields else None

    base = amount("base")
    total = amount("total")
    nights = fields["base"][2] if "base" in fields else None

    if base is None:
        if total is None:
            raise NoPricingDataFound(
                "Matched price labels but neither a base price nor a total",
                context={"fields": sorted(fields)},
            )
        return backfill_from_total(total, currency)

    discount = amount("discount")
    if discount:
        base = max(base - discount, Decimal("0"))

    breakdown = PriceBreakdown(
        base=base,
        cleaning=amount("cleaning"),
        service=amount("service"),
        taxes=amount("taxes"),
        other=amount("other"),
        total=total,
        currency=currency,
        nights=nights,
    )
    return settle_components(breakdown)


def settle_components(breakdown: PriceBreakdown) -> PriceBreakdown:
    """Fill unknown components so the known total is fully accounted for.

    A missing total becomes the sum of the components. With a known total,
    a positive residual is the service fee when that is unknown, otherwise
    it is reported under ``other``.
    """
    zero = Decimal("0")
    known_fees = [
        getattr(breakdown, name) or zero
        for name in ("cleaning", "service", "taxes", "other")
    ]

    if breakdown.total is None:
        breakdown.total = breakdown.base + sum(known_fees)
    else:
        residual = breakdown.total - breakdown.base - sum(known_fees)
        if breakdown.service is None:
            breakdown.service = max(residual, zero)
        elif residual > CENT:
            breakdown.other = (breakdown.other or zero) + residual

    for name in ("cleaning", "service", "taxes", "other"):
        if getattr(breakdown, name) is None:
            setattr(breakdown, name, zero)
    return breakdown


def unavailable_breakdown(currency: str = "USD") -> PriceBreakdown:
    zero = Decimal("0")
    return PriceBreakdown(
        base=zero,
        cleaning=zero,
        service=zero,
        taxes=zero,
        other=zero,
        total=zero,
        currency=currency,
        available=False,
    )


def extract_from_text(
    regions: Sequence[str],
    full_text: str,
    default_currency: str = "USD",
) -> PriceBreakdown:
    """Extract a price breakdown from page text.

    Args:
        regions: Candidate region texts (e.g. one per ``div``)
        full_text: Whole-page text used when no region qualifies
        default_currency: Currency when no symbol is found

    Raises:
        NoPricingDataFound: If no price label matched and the page does
            not say the dates are unavailable
    """
    text = select_region(regions, full_text)
    fields = match_fields(text)

    if not fields:
        if is_unavailable(full_text):
            logger.info("listing_unavailable")
            return unavailable_breakdown(default_currency)
        raise NoPricingDataFound(
            "No pricing labels matched in page text",
            context={"text_length": len(full_text)},
        )

    logger.debug("price_fields_matched", fields=sorted(fields))
    return breakdown_from_fields(fields, default_currency)
