"""Best-channel selection and savings computation."""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence

import structlog

from ratecompare.core.models import Channel, RateComparisonResult, RateQuote, Savings

logger = structlog.get_logger(__name__)

DEFAULT_PRIORITY = list(Channel)


class ComparisonEngine:
    """Picks the cheapest available quote and how much it saves.

    Ties on total price go to the channel ranked first in
    ``channel_priority``.
    """

    def __init__(self, channel_priority: Optional[Sequence[Channel]] = None):
        self.channel_priority = list(channel_priority or DEFAULT_PRIORITY)

    def _rank(self, channel: str) -> int:
        for i, c in enumerate(self.channel_priority):
            if c.value == channel:
                return i
        return len(self.channel_priority)

    def compare(
        self,
        quotes: List[RateQuote],
        property_id: str,
        check_in: date,
        check_out: date,
    ) -> RateComparisonResult:
        available = sorted(
            (q for q in quotes if q.availability),
            key=lambda q: (q.total_price, self._rank(q.channel)),
        )

        result = RateComparisonResult(
            property_id=property_id,
            check_in=check_in,
            check_out=check_out,
            quotes=list(quotes),
        )
        if not available:
            return result

        if len({q.currency for q in available}) > 1:
            logger.warning(
                "mixed_currencies_compared",
                property_id=property_id,
                currencies=sorted({q.currency for q in available}),
            )

        best = available[0]
        result.best_quote = best
        if len(available) >= 2:
            result.savings = compute_savings(best, available[1])
        return result


def compute_savings(best: RateQuote, runner_up: RateQuote) -> Savings:
    amount = runner_up.total_price - best.total_price
    if runner_up.total_price > 0:
        percentage = (amount / runner_up.total_price * 100).quantize(
            Decimal("0.01"), ROUND_HALF_UP
        )
    else:
        percentage = Decimal("0.00")
    return Savings(amount=amount, percentage=percentage)
