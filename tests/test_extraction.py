"""Tests for rule-driven price extraction from page text."""

from decimal import Decimal

import pytest

from ratecompare.core.exceptions import NoPricingDataFound
from ratecompare.scrapers.utils.extraction import (
    extract_from_text,
    html_regions,
    match_fields,
    select_region,
)


class TestMatchFields:

    def test_per_night_rate_is_multiplied_out(self):
        fields = match_fields("4 nights x $125.50")

        amount, symbol, nights = fields["base"]
        assert amount == Decimal("502.00")
        assert symbol == "$"
        assert nights == 4

    def test_first_rule_per_field_wins(self):
        """'Taxes' is preferred over a later, looser tax rule."""
        fields = match_fields("Occupancy tax $5.00 Taxes $30.00")

        assert fields["taxes"][0] == Decimal("30.00")

    def test_thousands_separators_and_other_currencies(self):
        fields = match_fields("Cleaning fee €1,250.00 Total £2,000")

        assert fields["cleaning"][:2] == (Decimal("1250.00"), "€")
        assert fields["total"][:2] == (Decimal("2000"), "£")

    def test_subtotal_is_not_read_as_total(self):
        fields = match_fields("Subtotal $400.00")

        assert "total" not in fields
        assert fields["base"][0] == Decimal("400.00")


class TestExtractFromText:
    """Breakdown assembly from matched fields."""

    def test_nights_taxes_total_infers_zero_service_fee(self):
        text = "3 nights x $100.00 ... Taxes $24.00 ... Total USD $324.00"

        breakdown = extract_from_text([], text)

        assert breakdown.base == Decimal("300.00")
        assert breakdown.taxes == Decimal("24.00")
        assert breakdown.total == Decimal("324.00")
        assert breakdown.service == Decimal("0")
        assert breakdown.cleaning == Decimal("0")
        assert breakdown.currency == "USD"
        assert breakdown.nights == 3
        assert breakdown.estimated is False

    def test_total_before_taxes_is_not_a_tax_line(self):
        text = "3 nights x $100.00 Total before taxes $300.00 Taxes $24.00 Total USD $324.00"

        breakdown = extract_from_text([], text)

        assert breakdown.taxes == Decimal("24.00")
        assert breakdown.base == Decimal("300.00")
        assert breakdown.total == Decimal("324.00")
        assert breakdown.service == Decimal("0")
        parts = breakdown.base + breakdown.cleaning + breakdown.service + breakdown.taxes + breakdown.other
        assert parts == breakdown.total

    def test_total_before_tax_singular(self):
        fields = match_fields("Total before tax $300.00 Tax $24.00")

        assert fields["taxes"][0] == Decimal("24.00")

    def test_service_fee_inferred_from_residual(self):
        breakdown = extract_from_text([], "3 nights x $100.00 Taxes $24.00 Total $360.00")

        assert breakdown.service == Decimal("36.00")

    def test_residual_with_known_service_goes_to_other(self):
        text = "3 nights x $100.00 Service fee $30.00 Taxes $20.00 Total $400.00"

        breakdown = extract_from_text([], text)

        assert breakdown.service == Decimal("30.00")
        assert breakdown.other == Decimal("50.00")
        total = breakdown.base + breakdown.cleaning + breakdown.service + breakdown.taxes + breakdown.other
        assert total == breakdown.total

    def test_discount_is_subtracted_from_base(self):
        text = (
            "5 nights x $100.00 Weekly discount -$50.00 Cleaning fee $25.00 "
            "Service fee $60.00 Taxes $40.00 Total $575.00"
        )

        breakdown = extract_from_text([], text)

        assert breakdown.base == Decimal("450.00")
        assert breakdown.other == Decimal("0")
        assert breakdown.total == Decimal("575.00")

    def test_missing_total_is_sum_of_components(self):
        breakdown = extract_from_text([], "2 nights x $80.00 Cleaning fee $40.00")

        assert breakdown.total == Decimal("200.00")

    def test_total_only_is_backfilled_and_estimated(self):
        breakdown = extract_from_text([], "Total $1,000.00")

        assert breakdown.estimated is True
        assert breakdown.base == Decimal("750.00")
        assert breakdown.service == Decimal("120.00")
        assert breakdown.taxes == Decimal("80.00")
        assert breakdown.cleaning == Decimal("50.00")
        assert breakdown.total == Decimal("1000.00")

    def test_backfill_rounding_stays_in_base(self):
        breakdown = extract_from_text([], "Total $333.33")

        parts = breakdown.base + breakdown.cleaning + breakdown.service + breakdown.taxes
        assert parts == Decimal("333.33")

    def test_unavailable_dates(self):
        breakdown = extract_from_text([], "Those dates are not available. Try other dates.")

        assert breakdown.available is False
        assert breakdown.total == Decimal("0")
        assert breakdown.base == Decimal("0")

    def test_no_labels_raises(self):
        with pytest.raises(NoPricingDataFound):
            extract_from_text([], "A lovely beach house with ocean views")

    def test_labels_without_base_or_total_raise(self):
        with pytest.raises(NoPricingDataFound):
            extract_from_text([], "Cleaning fee $50.00 Service fee $20.00")

    def test_euro_page_currency(self):
        breakdown = extract_from_text([], "2 nights x €90.00 Taxes €18.00 Total €198.00")

        assert breakdown.currency == "EUR"
        assert breakdown.total == Decimal("198.00")


class TestRegionSelection:

    HTML = (
        "<html><body><div id='page'>"
        "<div class='promo'>Gift cards from $25.00 Total $9.99</div>"
        "<div class='price'>3 nights x $100.00 Taxes $24.00 Total $324.00</div>"
        "</div><script>var total = '$1';</script></body></html>"
    )

    def test_html_regions_strip_scripts(self):
        regions, body = html_regions(self.HTML)

        assert "var total" not in body
        assert any(r.startswith("3 nights") for r in regions)

    def test_densest_region_wins(self):
        regions, body = html_regions(self.HTML)

        assert select_region(regions, body) == "3 nights x $100.00 Taxes $24.00 Total $324.00"

    def test_extract_uses_selected_region(self):
        regions, body = html_regions(self.HTML)

        breakdown = extract_from_text(regions, body)

        assert breakdown.total == Decimal("324.00")

    def test_falls_back_to_full_text(self):
        assert select_region(["Total $5.00", "nothing"], "full text") == "full text"
