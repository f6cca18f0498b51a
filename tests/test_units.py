"""Tests for numeric answer parsing and unit conversion."""

import math

import pytest

from stepgrade.grading.units import convert_to_base, parse_unit_and_value


class TestParseUnitAndValue:
    """Test splitting answers into value and unit."""

    def test_value_with_unit(self):
        assert parse_unit_and_value("12.5 kN") == (12.5, "kN")

    def test_exponent_without_unit(self):
        assert parse_unit_and_value("-3e2") == (-300.0, "")

    def test_percent_sign(self):
        assert parse_unit_and_value("50%") == (50.0, "%")

    def test_leading_decimal_point(self):
        assert parse_unit_and_value(".5 m") == (0.5, "m")

    def test_surrounding_whitespace_is_trimmed(self):
        assert parse_unit_and_value("   7  m/s  ") == (7.0, "m/s")

    @pytest.mark.parametrize("text", ["", "   ", "abc", "kN 5", "e5", "-"])
    def test_unparsable_text(self, text):
        assert parse_unit_and_value(text) is None

    @pytest.mark.parametrize("value", [None, 12, 1.5, ["1"]])
    def test_non_string_input(self, value):
        assert parse_unit_and_value(value) is None

    def test_overflowing_number(self):
        assert parse_unit_and_value("1e999 N") is None


class TestConvertToBase:
    """Test unit conversion into the base unit."""

    def test_same_unit(self):
        assert convert_to_base(5, "N", "N") == 5

    def test_same_unit_ignores_case(self):
        assert convert_to_base(5, "n", "N") == 5

    def test_bare_number_for_unitless(self):
        assert convert_to_base(5, "", "") == 5
        assert convert_to_base(5, "", "unitless") == 5

    def test_bare_number_for_percent(self):
        assert convert_to_base(50, "", "%") == 50
        assert convert_to_base(50, "", "percent") == 50

    def test_percent_symbol_matches_word(self):
        assert convert_to_base(50, "%", "percent") == 50

    def test_prefixed_student_unit(self):
        assert convert_to_base(0.1, "kN", "N") == pytest.approx(100)

    def test_prefixed_base_unit(self):
        assert convert_to_base(100, "N", "kN") == pytest.approx(0.1)

    def test_lowercase_m_is_mega(self):
        assert convert_to_base(1, "mN", "N") == pytest.approx(1e6)

    @pytest.mark.parametrize("prefix,multiplier", [
        ("g", 1e9), ("k", 1e3), ("d", 1e-1), ("c", 1e-2), ("µ", 1e-6), ("u", 1e-6), ("n", 1e-9),
    ])
    def test_known_prefixes(self, prefix, multiplier):
        assert convert_to_base(2, f"{prefix}J", "J") == pytest.approx(2 * multiplier)

    def test_incompatible_units(self):
        assert math.isnan(convert_to_base(5, "kg", "N"))

    def test_unknown_prefix(self):
        assert math.isnan(convert_to_base(5, "xN", "N"))

    def test_missing_unit_for_dimensioned_base(self):
        assert math.isnan(convert_to_base(5, "", "N"))

    def test_no_prefix_matching_on_percent(self):
        assert math.isnan(convert_to_base(5, "kpercent", "percent"))
