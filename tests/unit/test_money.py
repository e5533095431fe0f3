"""Tests for pm_common.money — micro-unit fixed point."""

from decimal import Decimal

import pytest

from src.pm_common.errors import InvalidAmountError
from src.pm_common.money import (
    UNITS_PER_DOLLAR,
    ceil_div,
    from_units,
    isqrt_ceil,
    positive_units,
    shares_to_display,
    to_units,
    units_to_display,
)


class TestToUnits:
    def test_integer(self) -> None:
        assert to_units(50) == 50 * UNITS_PER_DOLLAR

    def test_decimal_string(self) -> None:
        assert to_units("994.504902") == 994_504_902

    def test_decimal(self) -> None:
        assert to_units(Decimal("0.000001")) == 1

    def test_float_uses_shortest_repr(self) -> None:
        assert to_units(0.1) == 100_000

    def test_sub_unit_rounds_half_even(self) -> None:
        assert to_units("0.0000005") == 0
        assert to_units("0.0000015") == 2

    def test_negative_allowed(self) -> None:
        assert to_units("-1") == -UNITS_PER_DOLLAR

    @pytest.mark.parametrize(
        "bad", ["abc", "", "NaN", "Infinity", None, "1e999999", "-1e999999", "1e16"]
    )
    def test_rejects_non_numbers(self, bad: object) -> None:
        with pytest.raises(InvalidAmountError):
            to_units(bad)  # type: ignore[arg-type]

    def test_largest_accepted_amount(self) -> None:
        assert to_units("9999999999999999") == 9_999_999_999_999_999 * UNITS_PER_DOLLAR


class TestPositiveUnits:
    def test_accepts_positive(self) -> None:
        assert positive_units("10") == 10_000_000

    @pytest.mark.parametrize("bad", ["0", "-3", "0.0000001"])
    def test_rejects_zero_and_negative(self, bad: str) -> None:
        with pytest.raises(InvalidAmountError, match="positive"):
            positive_units(bad)


class TestFromUnits:
    def test_exact(self) -> None:
        assert from_units(994_504_902) == Decimal("994.504902")

    def test_zero_renders_plainly(self) -> None:
        assert str(from_units(0)) == "0.000000"

    def test_negative(self) -> None:
        assert from_units(-5_495_098) == Decimal("-5.495098")


class TestDisplay:
    def test_balance_rounds_down_to_cents(self) -> None:
        assert units_to_display(994_504_902) == "$994.50"

    def test_thousands_separator(self) -> None:
        assert units_to_display(1_500_000 * UNITS_PER_DOLLAR) == "$1,500,000.00"

    def test_zero(self) -> None:
        assert units_to_display(0) == "$0.00"

    def test_negative(self) -> None:
        assert units_to_display(-1_250_000) == "-$1.25"

    def test_shares(self) -> None:
        assert shares_to_display(10_000_000) == "10.00"
        assert shares_to_display(9_999_999) == "9.99"


class TestIntegerHelpers:
    def test_ceil_div(self) -> None:
        assert ceil_div(10, 5) == 2
        assert ceil_div(11, 5) == 3
        assert ceil_div(0, 7) == 0

    def test_isqrt_ceil(self) -> None:
        assert isqrt_ceil(0) == 0
        assert isqrt_ceil(16) == 4
        assert isqrt_ceil(17) == 5
        assert isqrt_ceil(2600 * 10**12) == 50_990_196

    def test_isqrt_ceil_negative(self) -> None:
        with pytest.raises(ValueError):
            isqrt_ceil(-1)
