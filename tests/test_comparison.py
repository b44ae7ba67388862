"""Tests for best-channel selection and savings."""

from decimal import Decimal

from ratecompare.core.models import Channel
from ratecompare.services.comparison import ComparisonEngine, compute_savings

from conftest import CHECK_IN, CHECK_OUT


def compare(engine, quotes):
    return engine.compare(quotes, "beach-house", CHECK_IN, CHECK_OUT)


class TestComparisonEngine:

    def test_cheapest_wins_with_savings(self, make_quote):
        result = compare(ComparisonEngine(), [make_quote("airbnb", "100"), make_quote("vrbo", "80")])

        assert result.best_quote.channel == "vrbo"
        assert result.savings.amount == Decimal("20")
        assert result.savings.percentage == Decimal("20.00")
        assert len(result.quotes) == 2

    def test_single_available_quote_has_no_savings(self, make_quote):
        result = compare(
            ComparisonEngine(),
            [make_quote("airbnb", "100"), make_quote("vrbo", "0", available=False)],
        )

        assert result.best_quote.channel == "airbnb"
        assert result.savings is None
        assert len(result.quotes) == 2

    def test_nothing_available(self, make_quote):
        result = compare(ComparisonEngine(), [make_quote("vrbo", "0", available=False)])

        assert result.best_quote is None
        assert result.savings is None

    def test_savings_use_second_cheapest(self, make_quote):
        quotes = [
            make_quote("expedia", "500.00"),
            make_quote("booking", "380.00"),
            make_quote("vrbo", "420.00"),
        ]

        result = compare(ComparisonEngine(), quotes)

        assert result.best_quote.channel == "booking"
        assert result.savings.amount == Decimal("40.00")
        assert result.savings.percentage == Decimal("9.52")

    def test_tie_goes_to_priority_order(self, make_quote):
        quotes = [make_quote("booking", "200"), make_quote("vrbo", "200")]

        default = compare(ComparisonEngine(), quotes)
        custom = compare(ComparisonEngine([Channel.BOOKING, Channel.VRBO]), quotes)

        assert default.best_quote.channel == "vrbo"
        assert custom.best_quote.channel == "booking"
        assert default.savings.amount == Decimal("0")

    def test_unavailable_quote_never_wins(self, make_quote):
        quotes = [make_quote("airbnb", "0", available=False), make_quote("vrbo", "300")]

        result = compare(ComparisonEngine(), quotes)

        assert result.best_quote.channel == "vrbo"


class TestComputeSavings:

    def test_percentage_is_rounded_half_up(self, make_quote):
        savings = compute_savings(make_quote("vrbo", "100.00"), make_quote("booking", "100.01"))

        assert savings.amount == Decimal("0.01")
        assert savings.percentage == Decimal("0.01")

    def test_zero_runner_up_total(self, make_quote):
        savings = compute_savings(make_quote("vrbo", "0"), make_quote("booking", "0"))

        assert savings.percentage == Decimal("0.00")
