"""
Tests for line classification and syntax node construction.
"""

import pytest

from linecalc.ast import (
    CombinedAssignmentNode,
    CommentNode,
    ErrorNode,
    ExpressionNode,
    FunctionDefinitionNode,
    PlainTextNode,
    SolveNode,
    VariableAssignmentNode,
    ViewDirectiveNode,
)
from linecalc.config import EngineLimits
from linecalc.errors import ParseError
from linecalc.expression import EvaluationContext
from linecalc.parser import find_assignment, is_valid_name, parse_conversion_target, parse_line, split_conversion
from linecalc.values import NumberValue


class TestLineKinds:
    """Which node each kind of line becomes."""

    def test_empty_line(self):
        assert isinstance(parse_line(""), PlainTextNode)
        assert isinstance(parse_line("   "), PlainTextNode)

    @pytest.mark.parametrize("text", ["# note", "// note"])
    def test_comments(self, text):
        node = parse_line(text)
        assert isinstance(node, CommentNode)
        assert node.text == text

    def test_view_directive(self):
        node = parse_line("@view chart")
        assert isinstance(node, ViewDirectiveNode)
        assert node.arguments == "chart"

    def test_silent_assignment(self):
        node = parse_line("x = 5")
        assert isinstance(node, VariableAssignmentNode)
        assert node.name == "x"
        assert node.raw_value == "5"
        assert isinstance(node.parsed_value, NumberValue)
        assert node.parsed_value.value == 5

    def test_assignment_of_expression_has_no_parsed_value(self):
        node = parse_line("y = 2 + 3")
        assert isinstance(node, VariableAssignmentNode)
        assert node.parsed_value is None

    def test_combined_assignment(self):
        node = parse_line("total = 2 + 3 =>")
        assert isinstance(node, CombinedAssignmentNode)
        assert node.name == "total"
        assert node.expression == "2 + 3"

    def test_builtin_names_can_be_variables(self):
        for name in ("total", "count", "range", "mean"):
            node = parse_line(f"{name} = 5")
            assert isinstance(node, VariableAssignmentNode)
            assert node.name == name

    def test_reserved_constant_name_is_an_error(self):
        node = parse_line("PI = 3")
        assert isinstance(node, ErrorNode)
        assert node.message == "Invalid variable name: 'PI'"

    def test_multi_word_name(self):
        node = parse_line("base price = $120.50")
        assert isinstance(node, VariableAssignmentNode)
        assert node.name == "base price"

    def test_triggered_expression(self):
        node = parse_line("2 + 3 =>", line_number=4)
        assert isinstance(node, ExpressionNode)
        assert node.expression == "2 + 3"
        assert node.line_number == 4

    def test_function_definition(self):
        node = parse_line("f(x, n=2) = x^n")
        assert isinstance(node, FunctionDefinitionNode)
        assert node.name == "f"
        assert [param.name for param in node.params] == ["x", "n"]
        assert node.params[0].default is None
        assert node.params[1].default is not None
        assert node.signature == "f(x, n)"

    def test_solve(self):
        node = parse_line("solve x in 2x + 3 = 11 =>")
        assert isinstance(node, SolveNode)
        assert node.variable == "x"
        assert node.bindings == ()

    def test_solve_with_bindings(self):
        node = parse_line("solve x in a*x = b where a = 2, b = 8 =>")
        assert isinstance(node, SolveNode)
        assert [name for name, _ in node.bindings] == ["a", "b"]


class TestUntriggeredLines:
    """Lines without ``=>`` evaluate only when they read as math."""

    @pytest.mark.parametrize("text", ["Shopping list for Monday", "3 apples", "x + 1"])
    def test_prose_stays_plain_text(self, text):
        assert isinstance(parse_line(text), PlainTextNode)

    def test_arithmetic_reads_as_math(self):
        assert isinstance(parse_line("2 + 2"), ExpressionNode)

    def test_conversion_reads_as_math(self):
        assert isinstance(parse_line("5 km to m"), ExpressionNode)

    def test_known_variable_makes_math(self):
        context = EvaluationContext({"x": NumberValue(2)})
        assert isinstance(parse_line("x + 1", 0, context), ExpressionNode)


class TestErrors:
    def test_missing_expression_after_equals(self):
        node = parse_line("x = =>")
        assert isinstance(node, ErrorNode)
        assert node.kind == "syntax"
        assert node.message == "Missing expression after '='"

    def test_bare_trigger(self):
        node = parse_line("=>")
        assert isinstance(node, ErrorNode)
        assert node.message == "Missing expression before '=>'"

    def test_invalid_range(self):
        node = parse_line("1 ... 5=>")
        assert isinstance(node, ErrorNode)
        assert node.message == 'Invalid range expression near "1 ... 5"'

    def test_zero_denominator_target(self):
        node = parse_line("5 m to km/0=>")
        assert isinstance(node, ErrorNode)
        assert node.message == "Invalid conversion target: denominator must be non-zero"

    def test_incompatible_units_rejected_at_parse_time(self):
        node = parse_line("5 km + 3 kg=>")
        assert isinstance(node, ErrorNode)
        assert node.kind == "semantic"

    def test_duplicate_parameter(self):
        node = parse_line("g(a, a) = a")
        assert isinstance(node, ErrorNode)
        assert node.message == "Duplicate parameter: 'a'"

    def test_missing_function_body(self):
        node = parse_line("g(a) = ")
        assert isinstance(node, ErrorNode)
        assert node.message == "Missing body for function g()"

    def test_solve_without_equation(self):
        node = parse_line("solve x in 2x + 3 =>")
        assert isinstance(node, ErrorNode)
        assert node.message == "Solve needs an equation with '='"

    def test_line_too_long(self):
        context = EvaluationContext(limits=EngineLimits(max_line_length=10))
        node = parse_line("1 + 2 + 3 + 4 =>", 0, context)
        assert isinstance(node, ErrorNode)
        assert node.kind == "parse"


class TestHelpers:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("x = 5", 2),
            ("a == b", None),
            ("a <= b", None),
            ("a >= b", None),
            ("a != b", None),
            ("2 + 3 =>", None),
            ("total = x =>", 6),
        ],
    )
    def test_find_assignment(self, text, expected):
        assert find_assignment(text) == expected

    def test_valid_names(self):
        assert is_valid_name("price")
        assert is_valid_name("base price")
        assert not is_valid_name("2x")
        assert is_valid_name("total")
        assert not is_valid_name("price of item")
        assert not is_valid_name("PI")

    def test_conversion_targets(self):
        assert parse_conversion_target("%").kind == "percent"
        assert parse_conversion_target("EUR").kind == "currency"
        assert parse_conversion_target("km").kind == "unit"
        assert parse_conversion_target("zorkmids") is None

    def test_zero_denominator_raises(self):
        with pytest.raises(ParseError):
            parse_conversion_target("m/0")

    def test_split_conversion(self):
        text, target = split_conversion("5 km to m")
        assert text == "5 km"
        assert target.kind == "unit"

    def test_chained_conversion_is_rejected(self):
        with pytest.raises(ParseError):
            split_conversion("10 ft to m to cm")
        node = parse_line("10 ft to m to cm =>")
        assert isinstance(node, ErrorNode)
        assert node.message == "Only one conversion target is allowed per line: 'm' then 'cm'"

    def test_parenthesized_unit_target(self):
        text, target = split_conversion("10 Pa to kg/(m*s^2)")
        assert text == "10 Pa"
        assert target.unit.to_string() == "kg/(m*s^2)"

    def test_split_of_is_percent(self):
        text, target = split_conversion("20 of 80 is %")
        assert text == "(20) / (80)"
        assert target.kind == "percent"

    def test_split_leaves_plain_expression(self):
        assert split_conversion("2 + 3") == ("2 + 3", None)
