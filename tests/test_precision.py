"""
Tests for tierstake_core.precision: fixed-point helpers.

Covers:
  - checked_mul / mul_div floor semantics and the 256-bit ceiling
  - require_int rejecting floats and bools
  - Decimal-exact multiplier parsing and display
"""

import pytest

from tierstake_core.errors import ArithmeticOverflow, InvalidParameter
from tierstake_core.precision import (
    MAX_WORD,
    PRECISION,
    checked_mul,
    format_ratio,
    mul_div,
    multiplier_from_ratio,
    require_int,
)


class TestCheckedArithmetic:
    def test_mul_div_floors(self):
        assert mul_div(10, 1, 3) == 3
        assert mul_div(1000, 3, 7) == 428

    def test_mul_div_by_precision_is_identity_for_unit(self):
        assert mul_div(12345, PRECISION, PRECISION) == 12345

    def test_checked_mul_at_boundary(self):
        assert checked_mul(MAX_WORD, 1) == MAX_WORD

    def test_checked_mul_overflow(self):
        with pytest.raises(ArithmeticOverflow):
            checked_mul(2 ** 200, 2 ** 60)

    def test_mul_div_zero_denominator(self):
        with pytest.raises(ArithmeticOverflow):
            mul_div(1, 1, 0)


class TestRequireInt:
    def test_accepts_int(self):
        assert require_int(5, "x") == 5

    @pytest.mark.parametrize("bad", [1.0, True, "5", None])
    def test_rejects_non_int(self, bad):
        with pytest.raises(InvalidParameter):
            require_int(bad, "x")

    def test_invalid_parameter_is_value_error(self):
        with pytest.raises(ValueError):
            require_int(1.5, "x")


class TestMultipliers:
    def test_whole_ratio(self):
        assert multiplier_from_ratio("2") == 2 * PRECISION
        assert multiplier_from_ratio(3) == 3 * PRECISION

    def test_fractional_ratio_is_exact(self):
        assert multiplier_from_ratio("1.25") == 1_250_000_000_000
        assert multiplier_from_ratio("0.000000000001") == 1

    def test_float_input_goes_through_str(self):
        assert multiplier_from_ratio(1.5) == 1_500_000_000_000

    @pytest.mark.parametrize("bad", ["abc", "-1", "1.2.3", "1.0000000000001"])
    def test_rejects_malformed(self, bad):
        with pytest.raises(InvalidParameter):
            multiplier_from_ratio(bad)

    def test_format_ratio(self):
        assert format_ratio(PRECISION) == "1x"
        assert format_ratio(1_500_000_000_000) == "1.5x"
