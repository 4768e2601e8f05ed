"""
Tests for the Calculation Engine.

Covers:
- The quotation scenario (two lines, 10% line discount, 11% tax)
- Grand-total identity and order independence (property tests)
- Percent and fixed discounts, clamping
- Inclusive tax, rounding modes and cash rounding
- Base-currency totals
- Rejected inputs returned as errors, never raised
"""

from decimal import ROUND_HALF_EVEN, Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from erp_engines.calculation import (
    DocumentAdjustments,
    RoundingPolicy,
    calculate_document,
    calculate_for,
    calculate_line,
)
from erp_kernel.domain.documents import DiscountType, DocumentType, TaxMode
from erp_kernel.domain.values import Currency
from erp_kernel.exceptions import CurrencyMismatchError, InvalidLineItemError
from tests.factories import document, line, money, quotation_lines

IDR = Currency("IDR")


def _adjustments(**kwargs) -> DocumentAdjustments:
    return DocumentAdjustments(currency=kwargs.pop("currency", IDR), **kwargs)


class TestQuotationScenario:
    """2 x 100,000 @ 10% off + 1 x 50,000, both at 11% tax."""

    def setup_method(self):
        self.result = calculate_document(quotation_lines(), _adjustments())

    def test_succeeds(self):
        assert self.result.is_success
        assert self.result.error is None
        assert self.result.warnings == ()

    def test_subtotal_is_post_line_discount(self):
        totals = self.result.totals
        assert totals.subtotal == money("230000")
        assert totals.line_discount_total == money("20000")

    def test_tax_is_rounded_per_line(self):
        first, second = self.result.lines
        assert first.net == money("180000")
        assert first.tax == money("19800")
        assert first.total == money("199800")
        assert second.tax == money("5500")
        assert self.result.totals.tax_amount == money("25300")

    def test_grand_total_identity(self):
        totals = self.result.totals
        assert totals.discount_amount.is_zero
        assert totals.rounding_adjustment.is_zero
        assert totals.grand_total == money("255300")
        assert totals.grand_total == (
            totals.subtotal - totals.discount_amount + totals.tax_amount
            + totals.rounding_adjustment
        )

    def test_tax_grouped_by_rate(self):
        assert self.result.totals.tax_by_rate == {Decimal("11"): money("25300")}

    def test_calculate_for_uses_document_settings(self):
        quotation = document(DocumentType.QUOTATION, "approved", quotation_lines())
        assert calculate_for(quotation).totals == self.result.totals


class TestDiscounts:
    """Line discounts come before the subtotal; the document discount after it."""

    def test_document_percent_discount(self):
        result = calculate_document(
            quotation_lines(), _adjustments(discount_value=Decimal("10"))
        )
        totals = result.totals
        assert totals.discount_amount == money("23000")
        # The document discount does not reduce line tax.
        assert totals.tax_amount == money("25300")
        assert totals.grand_total == money("232300")

    def test_document_fixed_discount_clamped_to_subtotal(self):
        result = calculate_document(
            quotation_lines(),
            _adjustments(discount_type=DiscountType.AMOUNT, discount_value=Decimal("500000")),
        )
        assert result.is_success
        assert result.totals.discount_amount == money("230000")
        assert result.totals.grand_total == money("25300")
        assert "document_discount_clamped" in result.warnings

    def test_fixed_line_discount(self):
        result = calculate_document(
            [line("L1", 2, "100", discount="50", tax_rate="10")],
            _adjustments(line_discount_type=DiscountType.AMOUNT),
        )
        calc = result.lines[0]
        assert calc.discount == money("50")
        assert calc.net == money("150")
        assert calc.tax == money("15")

    def test_fixed_line_discount_clamped_to_gross(self):
        result = calculate_document(
            [line("L1", 1, "100", discount="150")],
            _adjustments(line_discount_type=DiscountType.AMOUNT),
        )
        assert result.is_success
        assert result.lines[0].discount_clamped
        assert result.lines[0].net.is_zero
        assert result.warnings == ("line_discount_clamped:L1",)

    def test_full_percent_discount_is_allowed(self):
        result = calculate_document([line("L1", 3, "100", discount="100")], _adjustments())
        assert result.is_success
        assert result.totals.grand_total.is_zero


class TestTaxModesAndRounding:
    def test_inclusive_tax_backs_out_net(self):
        result = calculate_document(
            [line("L1", 1, "111000", tax_rate="11")],
            _adjustments(tax_mode=TaxMode.INCLUSIVE),
        )
        calc = result.lines[0]
        assert calc.total == money("111000")
        assert calc.net == money("100000")
        assert calc.tax == money("11000")
        assert result.totals.grand_total == money("111000")

    def test_half_up_is_the_default(self):
        result = calculate_document([line("L1", 1, "0.125")], _adjustments())
        assert result.totals.grand_total == money("0.13")

    def test_rounding_mode_is_configurable(self):
        result = calculate_document(
            [line("L1", 1, "0.125")],
            _adjustments(),
            RoundingPolicy(rounding=ROUND_HALF_EVEN),
        )
        assert result.totals.grand_total == money("0.12")

    def test_cash_rounding_reports_adjustment(self):
        result = calculate_document(
            [line("L1", 1, "10050")],
            _adjustments(),
            RoundingPolicy(cash_increment=Decimal("100")),
        )
        totals = result.totals
        assert totals.grand_total == money("10100")
        assert totals.rounding_adjustment == money("50")
        assert totals.grand_total == (
            totals.subtotal - totals.discount_amount + totals.tax_amount
            + totals.rounding_adjustment
        )

    def test_cash_increment_must_be_positive(self):
        with pytest.raises(ValueError):
            RoundingPolicy(cash_increment=Decimal("0"))

    def test_mixed_rates_grouped(self):
        result = calculate_document(
            [
                line("L1", 1, "1000", tax_rate="11"),
                line("L2", 1, "1000", tax_rate="12"),
                line("L3", 1, "1000", tax_rate="11"),
            ],
            _adjustments(),
        )
        assert result.totals.tax_by_rate == {
            Decimal("11"): money("220"),
            Decimal("12"): money("120"),
        }


class TestBaseCurrency:
    def test_foreign_document_reports_base_total(self):
        result = calculate_document(
            [line("L1", 1, "10.00", currency="USD")],
            _adjustments(
                currency=Currency("USD"),
                exchange_rate=Decimal("15000"),
                base_currency=Currency("IDR"),
            ),
        )
        assert result.totals.grand_total == money("10.00", "USD")
        assert result.totals.base_currency_total == money("150000.00", "IDR")

    def test_same_currency_has_no_base_total(self):
        result = calculate_document(quotation_lines(), _adjustments(base_currency=IDR))
        assert result.totals.base_currency_total is None


class TestRejectedInput:
    """Bad input comes back in the result; nothing is raised."""

    @pytest.mark.parametrize(
        "bad_line, field",
        [
            (line("L1", -1, "100"), "quantity"),
            (line("L1", 1, "-100"), "unit_price"),
            (line("L1", 1, "100", tax_rate="-1"), "tax_rate"),
            (line("L1", 1, "100", discount="-5"), "discount"),
            (line("L1", 1, "100", discount="101"), "discount"),
        ],
    )
    def test_invalid_line(self, bad_line, field):
        result = calculate_document([line("L0", 1, "100"), bad_line], _adjustments())

        assert not result.is_success
        assert result.totals is None
        assert isinstance(result.error, InvalidLineItemError)
        assert result.error.line_id == "L1"
        assert result.error.field == field

    @pytest.mark.parametrize("discount", ["-1", "100.01"])
    def test_invalid_document_percent_discount(self, discount):
        result = calculate_document(
            quotation_lines(), _adjustments(discount_value=Decimal(discount))
        )
        assert isinstance(result.error, InvalidLineItemError)
        assert result.error.line_id == "<document>"

    def test_line_in_other_currency(self):
        result = calculate_document([line("L1", 1, "5", currency="USD")], _adjustments())
        assert isinstance(result.error, CurrencyMismatchError)

    def test_calculate_line_raises_directly(self):
        with pytest.raises(InvalidLineItemError):
            calculate_line(line("L1", -1, "1"), IDR)

    def test_error_payload(self):
        result = calculate_document([line("L9", -2, "1")], _adjustments())
        payload = result.error.to_payload()
        assert payload["code"] == "INVALID_LINE_ITEM"
        assert payload["line_id"] == "L9"
        assert payload["field"] == "quantity"


class TestEmptyDocument:
    def test_no_lines_gives_zero_totals(self):
        result = calculate_document([], _adjustments())
        assert result.is_success
        assert result.totals.grand_total.is_zero
        assert result.totals.tax_by_rate == {}


class TestEngineTrace:
    def test_emits_engine_trace(self, captured_logs):
        calculate_document(quotation_lines(), _adjustments())
        traces = [r for r in captured_logs() if r["message"] == "ERP_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "calculation"
        assert len(traces[-1]["input_fingerprint"]) == 16


# =============================================================================
# Property tests
# =============================================================================

_line_values = st.tuples(
    st.integers(min_value=0, max_value=500),
    st.decimals(min_value=Decimal("0"), max_value=Decimal("1000000"), places=2),
    st.integers(min_value=0, max_value=100),
    st.sampled_from([Decimal("0"), Decimal("11"), Decimal("12")]),
)


def _lines(values):
    return [
        line(f"L{i}", qty, price, discount=disc, tax_rate=rate)
        for i, (qty, price, disc, rate) in enumerate(values)
    ]


class TestCalculationProperties:
    @given(
        values=st.lists(_line_values, min_size=1, max_size=8),
        doc_discount=st.integers(min_value=0, max_value=100),
    )
    @settings(max_examples=150)
    def test_grand_total_identity(self, values, doc_discount):
        result = calculate_document(
            _lines(values), _adjustments(discount_value=Decimal(doc_discount))
        )
        totals = result.totals
        assert totals.grand_total == (
            totals.subtotal - totals.discount_amount + totals.tax_amount
            + totals.rounding_adjustment
        )
        assert not totals.grand_total.is_negative

    @given(values=st.lists(_line_values, min_size=1, max_size=8), data=st.data())
    @settings(max_examples=150)
    def test_totals_independent_of_line_order(self, values, data):
        lines = _lines(values)
        shuffled = data.draw(st.permutations(lines))

        original = calculate_document(lines, _adjustments())
        reordered = calculate_document(shuffled, _adjustments())

        assert original.totals == reordered.totals
