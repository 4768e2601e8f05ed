"""
Tests for Money, Currency and ExchangeRate.

Covers:
- Construction and float rejection
- Same-currency arithmetic and comparison
- Minor-unit conversion
- Exact allocation with the December remainder rule
"""

from decimal import ROUND_HALF_EVEN, Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from erp_kernel.domain.values import Currency, ExchangeRate, Money, Quantity, sum_money
from erp_kernel.exceptions import CurrencyMismatchError, InvalidCurrencyError


class TestMoneyConstruction:
    """Money pairs a Decimal with a registered currency."""

    def test_of_parses_strings_and_ints(self):
        assert Money.of("100000.50", "IDR").amount == Decimal("100000.50")
        assert Money.of(5, "USD").amount == Decimal("5")

    def test_currency_code_is_normalized(self):
        assert Money.of("1", " idr ").currency == Currency("IDR")

    def test_float_amount_rejected(self):
        with pytest.raises(TypeError):
            Money.of(0.1, "IDR")

    def test_float_factor_rejected(self):
        with pytest.raises(TypeError):
            Money.of("10", "IDR") * 1.5

    def test_unknown_currency_rejected(self):
        with pytest.raises(InvalidCurrencyError) as exc_info:
            Money.of("1", "ZZZ")
        assert exc_info.value.currency == "ZZZ"
        assert exc_info.value.code == "INVALID_CURRENCY"

    def test_zero(self):
        zero = Money.zero("IDR")
        assert zero.is_zero
        assert not zero.is_positive
        assert not zero.is_negative


class TestMoneyArithmetic:
    """Arithmetic never mixes currencies."""

    def test_add_and_subtract(self):
        a = Money.of("100.00", "IDR")
        b = Money.of("30.50", "IDR")
        assert a + b == Money.of("130.50", "IDR")
        assert a - b == Money.of("69.50", "IDR")
        assert -a == Money.of("-100.00", "IDR")
        assert abs(-a) == a

    def test_multiply_by_decimal_and_int(self):
        price = Money.of("100000", "IDR")
        assert price * Decimal("2") == Money.of("200000", "IDR")
        assert 3 * price == Money.of("300000", "IDR")

    @pytest.mark.parametrize("op", ["add", "sub", "lt"])
    def test_currency_mismatch(self, op):
        idr = Money.of("1", "IDR")
        usd = Money.of("1", "USD")
        with pytest.raises(CurrencyMismatchError) as exc_info:
            if op == "add":
                idr + usd
            elif op == "sub":
                idr - usd
            else:
                idr < usd
        assert exc_info.value.left == "IDR"
        assert exc_info.value.right == "USD"

    def test_sum_money_starts_from_zero(self):
        values = [Money.of("1.10", "IDR"), Money.of("2.20", "IDR")]
        assert sum_money(values, "IDR") == Money.of("3.30", "IDR")
        assert sum_money([], "IDR") == Money.zero("IDR")

    def test_round_defaults_to_half_up(self):
        assert Money.of("0.125", "IDR").round() == Money.of("0.13", "IDR")
        assert Money.of("0.125", "IDR").round(ROUND_HALF_EVEN) == Money.of("0.12", "IDR")

    def test_round_respects_zero_decimal_currency(self):
        assert Money.of("1500.5", "JPY").round() == Money.of("1501", "JPY")


class TestMinorUnits:
    """Boundary representation: integer minor units plus currency code."""

    def test_from_minor_units(self):
        assert Money.from_minor_units(25530000, "IDR") == Money.of("255300.00", "IDR")
        assert Money.from_minor_units(1500, "JPY") == Money.of("1500", "JPY")

    def test_to_minor_units(self):
        assert Money.of("255300.00", "IDR").to_minor_units() == 25530000
        assert Money.of("-0.01", "USD").to_minor_units() == -1

    def test_sub_minor_precision_refused(self):
        with pytest.raises(ValueError):
            Money.of("1.005", "IDR").to_minor_units()

    def test_from_minor_units_requires_int(self):
        with pytest.raises(TypeError):
            Money.from_minor_units(Decimal("1"), "IDR")

    @given(units=st.integers(min_value=-10**15, max_value=10**15))
    def test_minor_units_round_trip(self, units):
        assert Money.from_minor_units(units, "IDR").to_minor_units() == units


class TestAllocate:
    """Money.allocate never loses or invents a minor unit."""

    def test_twelve_month_split_puts_remainder_in_december(self):
        months = Money.of("1000000.00", "IDR").allocate([1] * 12)

        assert months[:11] == (Money.of("83333.33", "IDR"),) * 11
        assert months[11] == Money.of("83333.37", "IDR")
        assert sum_money(months, "IDR") == Money.of("1000000.00", "IDR")

    def test_weighted_split(self):
        parts = Money.of("100.00", "IDR").allocate(["1", "2"])
        assert parts == (Money.of("33.33", "IDR"), Money.of("66.67", "IDR"))

    def test_zero_weight_bucket_gets_nothing(self):
        parts = Money.of("10.00", "IDR").allocate([1, 2, 0])
        assert parts[2].is_zero
        assert parts[0] + parts[1] == Money.of("10.00", "IDR")
        assert parts[1] == Money.of("6.67", "IDR")

    @pytest.mark.parametrize("weights", [[], [-1, 2], [0, 0]])
    def test_invalid_weights(self, weights):
        with pytest.raises(ValueError):
            Money.of("10.00", "IDR").allocate(weights)

    @given(
        units=st.integers(min_value=0, max_value=10**14),
        weights=st.lists(st.integers(min_value=0, max_value=1000), min_size=1, max_size=24).filter(
            lambda ws: sum(ws) > 0
        ),
    )
    @settings(max_examples=200)
    def test_allocation_conserves_total(self, units, weights):
        amount = Money.from_minor_units(units, "IDR")
        parts = amount.allocate(weights)

        assert len(parts) == len(weights)
        assert sum_money(parts, "IDR") == amount
        assert all(not p.is_negative for p in parts)
        assert all(p.is_zero for p, w in zip(parts, weights) if w == 0)
        for p in parts:
            p.to_minor_units()


class TestExchangeRate:
    """Explicit conversion only."""

    def test_convert(self):
        rate = ExchangeRate.of("USD", "IDR", "15000")
        assert rate.convert(Money.of("10.00", "USD")) == Money.of("150000.00", "IDR")

    def test_convert_wrong_currency(self):
        rate = ExchangeRate.of("USD", "IDR", "15000")
        with pytest.raises(CurrencyMismatchError):
            rate.convert(Money.of("10", "IDR"))

    def test_non_positive_rate_rejected(self):
        with pytest.raises(ValueError):
            ExchangeRate.of("USD", "IDR", "0")

    def test_inverse(self):
        inverse = ExchangeRate.of("USD", "IDR", "4").inverse()
        assert inverse.from_currency == Currency("IDR")
        assert inverse.rate == Decimal("0.25")

    def test_identity(self):
        assert ExchangeRate.of("IDR", "IDR", "1").is_identity
        assert not ExchangeRate.of("USD", "IDR", "1").is_identity
        assert not ExchangeRate.of("IDR", "IDR", "1.5").is_identity


class TestQuantity:
    def test_same_unit_arithmetic(self):
        assert Quantity.of("60", "pcs") + Quantity.of("40", "pcs") == Quantity.of("100", "pcs")

    def test_unit_mismatch(self):
        with pytest.raises(ValueError):
            Quantity.of("1", "pcs") - Quantity.of("1", "kg")
