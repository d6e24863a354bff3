"""Tests for list values, broadcasting, helpers, filtering and ranges."""

import pytest

from linecalc.builtins import build_range, call_builtin, filter_list, index_list
from linecalc.config import EngineLimits
from linecalc.values import ErrorValue, ListValue, NumberValue, UnitValue


def numbers(*values):
    return ListValue([NumberValue(v) for v in values])


class TestBroadcasting:
    """List * scalar and element-wise list operations."""

    def test_list_times_scalar(self):
        result = numbers(1, 2, 3).multiply(NumberValue(10))
        assert result.to_string() == "10, 20, 30"

    def test_scalar_on_left(self):
        result = NumberValue(10).subtract(numbers(1, 2, 3))
        assert result.to_string() == "9, 8, 7"

    def test_list_plus_list(self):
        assert numbers(1, 2, 3).add(numbers(4, 5, 6)).to_string() == "5, 7, 9"

    def test_list_times_list(self):
        assert numbers(1, 2, 3).multiply(numbers(4, 5, 6)).to_string() == "4, 10, 18"

    def test_length_mismatch(self):
        result = numbers(1, 2, 3).add(numbers(1, 2))
        assert isinstance(result, ErrorValue)
        assert result.message == "Cannot work with lists of different lengths (3 vs 2)"

    def test_division_by_zero_inside_list(self):
        result = numbers(1, 2).divide(numbers(1, 0))
        assert isinstance(result, ErrorValue)
        assert result.message == "Division by zero"

    def test_nested_lists_flatten(self):
        nested = ListValue([numbers(1, 2), NumberValue(3)])
        assert nested.nested
        assert nested.to_string() == "1, 2, 3"

    def test_mixed_dimensions_rejected(self):
        result = ListValue.create([UnitValue.from_symbol(1, "m"), UnitValue.from_symbol(1, "kg")])
        assert isinstance(result, ErrorValue)
        assert result.message == "Cannot create list: incompatible dimensions"


class TestHelpers:
    def test_aggregates(self):
        xs = numbers(1, 2, 3, 4)
        assert call_builtin("sum", [xs]).value == 10
        assert call_builtin("avg", [xs]).value == pytest.approx(2.5)
        assert call_builtin("median", [xs]).value == pytest.approx(2.5)
        assert call_builtin("min", [xs]).value == 1
        assert call_builtin("max", [xs]).value == 4
        assert call_builtin("count", [xs]).value == 4

    def test_sum_of_empty_list(self):
        assert call_builtin("sum", [ListValue([])]).value == 0

    def test_avg_of_empty_list(self):
        assert isinstance(call_builtin("avg", [ListValue([])]), ErrorValue)

    def test_sum_needs_a_list(self):
        result = call_builtin("sum", [NumberValue(5)])
        assert result.message == "sum() expects a list, got a number"

    def test_units_sum_in_largest_unit(self):
        xs = ListValue([UnitValue.from_symbol(1, "km"), UnitValue.from_symbol(500, "m")])
        assert call_builtin("sum", [xs]).to_string() == "1.5 km"

    def test_sort(self):
        assert call_builtin("sort", [numbers(3, 1, 2)]).to_string() == "1, 2, 3"

    def test_unknown_function(self):
        assert call_builtin("frobnicate", []).message == "Unknown function: frobnicate"


class TestFilteringAndIndexing:
    def test_where(self):
        assert filter_list(numbers(1, 2, 3), ">", NumberValue(1)).to_string() == "2, 3"

    def test_where_nothing_left(self):
        assert filter_list(numbers(1, 2, 3), ">", NumberValue(10)).to_string() == "()"

    def test_where_incomparable(self):
        result = filter_list(numbers(1, 2), ">", UnitValue.from_symbol(1, "m"))
        assert isinstance(result, ErrorValue)

    def test_one_based_index(self):
        assert index_list(numbers(1, 2, 3), NumberValue(2)).value == 2
        assert index_list(numbers(1, 2, 3), NumberValue(-1)).value == 3

    def test_index_out_of_range(self):
        result = index_list(numbers(1, 2, 3), NumberValue(4))
        assert result.message == "Index 4 is out of range for a list of 3 items"


class TestRanges:
    def test_inclusive_range(self):
        assert build_range(NumberValue(1), NumberValue(5)).to_string() == "1, 2, 3, 4, 5"

    def test_descending_with_step(self):
        result = build_range(NumberValue(10), NumberValue(1), NumberValue(3))
        assert result.to_string() == "10, 7, 4, 1"

    def test_range_limit(self):
        result = build_range(NumberValue(1), NumberValue(100), limits=EngineLimits(max_range_items=10))
        assert isinstance(result, ErrorValue)

    def test_fractional_bounds(self):
        assert build_range(NumberValue(1.5), NumberValue(3)).message == "Bounds must be whole numbers"


class TestListLines:
    """List syntax through sheet lines."""

    @pytest.fixture
    def lists(self, calc):
        calc("xs = 1, 2, 3")
        calc("ys = 4, 5, 6")
        return calc

    def test_scalar_broadcast(self, lists):
        assert lists("xs * 10 =>").result == "10, 20, 30"

    def test_list_plus_list(self, lists):
        assert lists("xs + ys =>").result == "5, 7, 9"

    def test_length_mismatch(self, lists):
        lists("zs = 1, 2")
        assert lists("xs + zs =>").message == "Cannot work with lists of different lengths (3 vs 2)"

    def test_where(self, lists):
        assert lists("xs where > 1 =>").result == "2, 3"
        assert lists("xs where > 10 =>").result == "()"

    def test_index(self, lists):
        assert lists("xs[2] =>").result == "2"

    def test_ranges(self, calc):
        assert calc("1..5 =>").result == "1, 2, 3, 4, 5"
        assert calc("sum(1..100) =>").result == "5050"

    def test_sum_of_scalar(self, calc):
        assert calc("sum(5) =>").message == "sum() expects a list, got a number"

    def test_nested_lists(self, lists):
        lists("ws = xs, 4")
        assert lists("sum(ws) =>").message == "sum() does not support nested lists"
