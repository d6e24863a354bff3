"""
Tests for the unit registry, composite units and conversions.
"""

import pytest

from linecalc.errors import UnitError
from linecalc.units import CompositeUnit, convert_value, default_registry, simplify


@pytest.fixture
def registry():
    return default_registry()


class TestRegistry:
    """Symbol, alias and prefix lookup."""

    def test_symbols_and_aliases(self, registry):
        assert registry.get("m").name == "meter"
        assert registry.get("meters").symbol == "m"
        assert registry.get("hours").symbol == "h"

    def test_prefixed_unit(self, registry):
        unit = registry.get("km")
        assert unit.base_multiplier == pytest.approx(1000)

    def test_derived_prefix(self, registry):
        unit = registry.get("kN")
        assert unit is not None
        assert unit.dimension == registry.get("N").dimension
        assert unit.base_multiplier == pytest.approx(1000)

    def test_double_prefix_rejected(self, registry):
        assert registry.get("kkm") is None

    def test_offset_units_take_no_prefix(self, registry):
        assert registry.get("m°C") is None

    def test_unknown(self, registry):
        assert registry.get("zorkmid") is None
        assert "zorkmid" not in registry

    def test_constants_come_from_pint(self, registry):
        assert registry.get("mi").base_multiplier == pytest.approx(1609.344)
        assert registry.get("lb").base_multiplier == pytest.approx(0.45359237)


class TestParse:
    def test_composite_matches_derived_dimension(self, registry):
        assert registry.parse("kg*m/s^2").dimension() == registry.parse("N").dimension()

    def test_superscript_power(self, registry):
        assert registry.parse("m²") == registry.parse("m^2")

    def test_parenthesized_denominator(self, registry):
        unit = registry.parse("kg/(m*s^2)")
        assert unit.dimension() == registry.parse("Pa").dimension()

    def test_unknown_unit_raises(self, registry):
        with pytest.raises(UnitError):
            registry.parse("m/zorkmid")

    def test_empty_raises(self, registry):
        with pytest.raises(UnitError):
            registry.parse("  ")


class TestCompositeUnit:
    def test_cancellation(self, registry):
        meters = registry.parse("m")
        assert meters.divide(meters).is_empty()

    def test_simplify_is_idempotent(self, registry):
        unit = registry.parse("m*m/s")
        assert simplify(simplify(unit)) == simplify(unit)
        assert unit.to_string() == "m^2/s"

    def test_base_factor_is_product_of_powers(self, registry):
        unit = registry.parse("km^2")
        assert unit.base_factor() == pytest.approx(1e6)

    def test_to_string(self, registry):
        assert registry.parse("km/s").to_string() == "km/s"
        assert registry.parse("km/h").to_string() == "kph"
        assert registry.parse("kg/(m*s^2)").to_string() == "kg/(m*s^2)"
        assert CompositeUnit().to_string() == ""


class TestConversion:
    def test_length(self, registry):
        assert convert_value(5, registry.parse("km"), registry.parse("m")) == pytest.approx(5000)

    def test_temperature_offsets(self, registry):
        celsius = registry.parse("°C")
        fahrenheit = registry.parse("°F")
        assert convert_value(0, celsius, fahrenheit) == pytest.approx(32)
        assert convert_value(100, celsius, registry.parse("K")) == pytest.approx(373.15)

    def test_round_trip(self, registry):
        mph = registry.parse("mi/h")
        ms = registry.parse("m/s")
        there = convert_value(60, mph, ms)
        assert convert_value(there, ms, mph) == pytest.approx(60)

    def test_incompatible_dimensions(self, registry):
        with pytest.raises(UnitError):
            convert_value(1, registry.parse("m"), registry.parse("kg"))


class TestUnitsInLines:
    """Powered units next to parentheses keep the parentheses balanced."""

    def test_power_before_closing_parenthesis(self, registry):
        assert registry.parse("(m*s^2)").to_string() == "m*s^2"

    def test_squared_unit_in_call(self, calc):
        assert calc("sqrt(16 m^2) =>").result == "4 m"

    def test_squared_unit_in_parentheses(self, calc):
        assert calc("(2 m^2) * 3 =>").result == "6 m^2"

    def test_parenthesized_exponent(self, registry):
        assert registry.parse("s^(-2)").to_string() == "1/s^2"

    def test_convert_to_parenthesized_denominator(self, calc):
        assert calc("10 Pa to kg/(m*s^2) =>").result == "10 kg/(m*s^2)"
