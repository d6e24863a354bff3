"""Tests for percentage phrase lowering."""

import pytest

from linecalc.components import build_components
from linecalc.expression import EvaluationContext, evaluate_components
from linecalc.lowering import has_percentage_phrase, lower
from linecalc.tokenizer import tokenize
from linecalc.values import CurrencyValue, NumberValue, PercentageValue


def components(text, variables=()):
    return build_components(tokenize(text, variable_names=variables), text)


def lowered_value(text, variables=None):
    variables = variables or {}
    result = lower(components(text, variables.keys()))
    return evaluate_components(result.components, EvaluationContext(variables))


class TestLowering:
    def test_detects_phrases(self):
        assert has_percentage_phrase(components("20% of 50"))
        assert not has_percentage_phrase(components("20% * 50"))

    def test_of_rewrite(self):
        result = lower(components("20% of 50"))
        assert result.expression == "((20 / 100)) * (50)"
        assert result.has_percentages

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("20% of 50", 10),
            ("10% on 200", 220),
            ("25% off 80", 60),
            ("10% on 20% off 200", 176),
        ],
    )
    def test_values(self, text, expected):
        value = lowered_value(text)
        assert isinstance(value, NumberValue)
        assert value.value == pytest.approx(expected)

    def test_required_variables(self):
        result = lower(components("discount off base price", ["discount", "base price"]))
        assert result.required_variables == {"discount", "base price"}

    def test_variables_keep_their_kind(self):
        value = lowered_value(
            "discount off base price",
            {"discount": PercentageValue(15), "base price": CurrencyValue("$", 120.5)},
        )
        assert isinstance(value, CurrencyValue)
        assert value.amount == pytest.approx(102.425)

    def test_without_phrase_is_unchanged(self):
        original = components("2 + 3")
        assert lower(original).components == original
