"""Tests for the line tokenizer."""

import pytest

from linecalc.config import EngineLimits
from linecalc.errors import LimitExceededError, TokenizerError
from linecalc.tokenizer import TokenType, tokenize
from linecalc.values import CurrencyValue, NumberValue, PercentageValue, UnitValue


def kinds(tokens):
    return [token.type for token in tokens]


class TestLiterals:
    def test_number(self):
        tokens = tokenize("42")
        assert kinds(tokens) == [TokenType.VALUE, TokenType.EOF]
        assert isinstance(tokens[0].semantic, NumberValue)

    def test_scientific_number(self):
        assert tokenize("1.5e3")[0].semantic.value == 1500

    def test_percentage(self):
        token = tokenize("15 %")[0]
        assert isinstance(token.semantic, PercentageValue)
        assert token.semantic.display == 15

    def test_currency_prefix_and_code(self):
        assert tokenize("$120.50")[0].semantic.amount == pytest.approx(120.5)
        code = tokenize("100 EUR")[0].semantic
        assert isinstance(code, CurrencyValue)
        assert code.symbol == "EUR"

    def test_unit(self):
        token = tokenize("5 km")[0]
        assert isinstance(token.semantic, UnitValue)
        assert token.semantic.unit.to_string() == "km"

    def test_composite_unit(self):
        token = tokenize("3 m/s^2")[0]
        assert token.semantic.unit.to_string() == "m/s^2"

    def test_builtin_name_as_unit(self):
        """``min`` is minutes after a number unless it is called."""
        token = tokenize("5 min", function_names={"min"})[0]
        assert isinstance(token.semantic, UnitValue)

    def test_unit_stops_at_keyword(self):
        tokens = tokenize("5 km to m")
        assert tokens[1].type == TokenType.KEYWORD
        assert tokens[1].value == "to"


class TestWords:
    def test_multi_word_identifier(self):
        tokens = tokenize("base price * 2")
        assert tokens[0].type == TokenType.IDENTIFIER
        assert tokens[0].value == "base price"

    def test_phrase_stops_at_keyword(self):
        tokens = tokenize("discount off base price")
        assert [t.value for t in tokens[:3]] == ["discount", "off", "base price"]

    def test_known_variable_wins(self):
        tokens = tokenize("tax rate total", variable_names={"tax rate"})
        assert tokens[0].value == "tax rate"
        assert tokens[1].value == "total"

    def test_function_name_stands_alone(self):
        tokens = tokenize("sum(xs)", function_names={"sum"})
        assert tokens[0].value == "sum"
        assert tokens[1].type == TokenType.LPAREN


class TestOperators:
    def test_double_star_is_power(self):
        tokens = tokenize("2 ** 3")
        assert tokens[1].type == TokenType.OPERATOR
        assert tokens[1].value == "^"

    def test_range(self):
        assert TokenType.RANGE in kinds(tokenize("1..5"))

    def test_comparators(self):
        tokens = tokenize("xs where >= 2")
        assert tokens[2].type == TokenType.COMPARATOR
        assert tokens[2].value == ">="

    def test_triple_dot_rejected(self):
        with pytest.raises(TokenizerError):
            tokenize("1 ... 5")

    def test_unexpected_character(self):
        with pytest.raises(TokenizerError):
            tokenize("2 ~ 3")

    def test_line_length_limit(self):
        with pytest.raises(LimitExceededError):
            tokenize("1 + 1", limits=EngineLimits(max_line_length=3))
