"""Tests for semantic values and their arithmetic rules."""

import pytest

from linecalc.config import DisplayOptions
from linecalc.errors import CircularDependencyError, TokenizerError
from linecalc.formatting import format_number, unit_label
from linecalc.values import (
    ErrorType,
    ErrorValue,
    NumberValue,
    PercentageValue,
    SymbolicValue,
    UnitValue,
)


class TestNumbers:
    def test_arithmetic(self):
        assert NumberValue(2).add(NumberValue(3)).value == 5
        assert NumberValue(2).power(NumberValue(10)).value == 1024

    def test_division_by_zero(self):
        result = NumberValue(1).divide(NumberValue(0))
        assert isinstance(result, ErrorValue)
        assert result.message == "Division by zero"

    def test_negative_fractional_power(self):
        assert NumberValue(-8).power(NumberValue(0.5)).message == "Result is not a real number"

    def test_errors_propagate(self):
        error = ErrorValue.runtime_error("boom")
        assert NumberValue(1).add(error) is error
        assert error.multiply(NumberValue(2)) is error


class TestPercentages:
    def test_decimal(self):
        assert PercentageValue(15).decimal == pytest.approx(0.15)

    def test_phrases(self):
        base = NumberValue(200)
        assert PercentageValue(10).of(base).value == pytest.approx(20)
        assert PercentageValue(10).on(base).value == pytest.approx(220)
        assert PercentageValue(10).off(base).value == pytest.approx(180)

    def test_number_plus_percent(self):
        assert NumberValue(100).add(PercentageValue(5)).value == pytest.approx(105)

    def test_percent_on_the_left_of_a_number_is_rejected(self):
        for result in (
            PercentageValue(10).add(NumberValue(5)),
            PercentageValue(10).subtract(NumberValue(5)),
        ):
            assert isinstance(result, ErrorValue)
            assert result.error_type == ErrorType.TYPE
        assert PercentageValue(10).add(NumberValue(5)).message == "Cannot add percentage and number"

    def test_percent_plus_percent(self):
        assert PercentageValue(10).add(PercentageValue(5)).to_string() == "15%"

    def test_what_percent_of(self):
        result = PercentageValue.what_percent_of(NumberValue(20), NumberValue(80))
        assert result.to_string() == "25%"


class TestUnitValues:
    def test_add_zero(self):
        meters = UnitValue.from_symbol(5, "m")
        assert meters.add(NumberValue(0)) is meters

    def test_add_plain_number_fails(self):
        result = UnitValue.from_symbol(5, "m").add(NumberValue(1))
        assert isinstance(result, ErrorValue)
        assert result.error_type == ErrorType.TYPE
        assert result.message == "Cannot add length and number"

    def test_number_then_unit_names_the_operation(self):
        meters = UnitValue.from_symbol(5, "m")
        assert NumberValue(3).subtract(meters).message == "Cannot subtract number and length"
        assert NumberValue(3).add(meters).message == "Cannot add number and length"

    def test_derived_display(self):
        force = UnitValue.from_symbol(2, "kg").multiply(UnitValue.from_symbol(3, "m/s^2"))
        assert force.to_string() == "6 N"

    def test_dimensionless_collapses(self):
        ratio = UnitValue.from_symbol(1, "km").divide(UnitValue.from_symbol(500, "m"))
        assert isinstance(ratio, NumberValue)
        assert ratio.value == pytest.approx(2)

    def test_fractional_power_of_unit(self):
        result = UnitValue.from_symbol(4, "m").power(NumberValue(0.5))
        assert result.message == "Cannot raise m to a fractional power"

    def test_equality_across_units(self):
        assert UnitValue.from_symbol(1, "km").equals(UnitValue.from_symbol(1000, "m"))


class TestSymbolicAndErrors:
    def test_symbolic_absorbs(self):
        result = NumberValue(2).multiply(SymbolicValue("x"))
        assert isinstance(result, SymbolicValue)
        assert result.to_string() == "2 * x"

    def test_error_categories(self):
        assert ErrorType.TYPE.category == "semantic"
        assert ErrorType.CONVERSION.category == "runtime"
        assert ErrorType.PARSE.category == "parse"

    def test_error_context(self):
        error = TokenizerError("Unexpected character: '~'", 2, "2 ~ 3")
        assert error.format_with_context().splitlines()[-1].strip() == "^"

    def test_cycle_error_keeps_path(self):
        error = CircularDependencyError(["a", "b", "a"])
        assert error.cycle == ["a", "b", "a"]


class TestFormatting:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (0, "0"),
            (5.0, "5"),
            (2.5, "2.5"),
            (1 / 3, "0.333333"),
            (1.5e12, "1.5e+12"),
            (0.00001, "1e-5"),
            (float("inf"), "Infinity"),
        ],
    )
    def test_format_number(self, value, expected):
        assert format_number(value) == expected

    def test_precision_option(self):
        assert format_number(1 / 3, DisplayOptions(precision=3)) == "0.333"

    def test_unit_label_pluralizes_calendar_units(self):
        assert unit_label(2, "day") == "days"
        assert unit_label(1, "day") == "day"
        assert unit_label(2, "km") == "km"
