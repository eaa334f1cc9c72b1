"""Tests for decimal money helpers."""

from datetime import date
from decimal import Decimal

import pytest

from app.core import money


class TestToDecimal:
    def test_none_is_zero(self):
        assert money.to_decimal(None) == money.ZERO

    def test_string_and_int(self):
        assert money.to_decimal("1.25") == Decimal("1.25")
        assert money.to_decimal(3) == Decimal("3")

    def test_floats_are_refused(self):
        with pytest.raises(TypeError):
            money.to_decimal(0.1)

    def test_garbage_is_refused(self):
        with pytest.raises(ValueError):
            money.to_decimal("abc")


class TestRounding:
    def test_quantize_to_eight_places(self):
        assert money.quantize("1.123456789") == Decimal("1.12345679")

    def test_bankers_rounding(self):
        assert money.quantize("0.000000005") == Decimal("0E-8")
        assert money.quantize("0.000000015") == Decimal("0.00000002")

    def test_div_rounds(self):
        assert money.div(1, 3) == Decimal("0.33333333")
        assert money.div(2, 3) == Decimal("0.66666667")

    def test_div_by_zero_is_zero(self):
        assert money.div(10, 0) == money.ZERO

    def test_mul_rounds_back_to_scale(self):
        assert money.mul("0.33333333", "0.5") == Decimal("0.16666666")


class TestPredicates:
    def test_zero_negative_positive(self):
        assert money.is_zero("0.00000000")
        assert money.is_negative("-0.00000001")
        assert money.is_positive("0.00000001")
        assert not money.is_positive(0)

    def test_total(self):
        assert money.total(["0.1", "0.2", Decimal("0.3")]) == Decimal("0.6")
        assert money.total([]) == money.ZERO

    def test_percent(self):
        assert money.percent(25, 200) == Decimal("12.5")
        assert money.percent(5, 0) == money.ZERO


class TestHoldingPeriod:
    def test_exact_anniversary_is_long(self):
        assert money.is_long_term(date(2023, 3, 15), date(2024, 3, 15))

    def test_day_before_anniversary_is_short(self):
        assert not money.is_long_term(date(2023, 3, 15), date(2024, 3, 14))

    def test_leap_day_purchase(self):
        assert money.add_years(date(2024, 2, 29), 1) == date(2025, 2, 28)
        assert money.is_long_term(date(2024, 2, 29), date(2025, 2, 28))
        assert not money.is_long_term(date(2024, 2, 29), date(2025, 2, 27))
