"""
Percentage phrase lowering.

Rewrites ``X of Y``, ``X on Y`` and ``X off Y`` into plain arithmetic so
the generic evaluator can handle them:

    X of Y   ->  (X) * (Y)
    X on Y   ->  (Y) + (X) * (Y)
    X off Y  ->  (Y) - (X) * (Y)

Percentage literals on the left of a phrase become ``(p / 100)``. The
phrase keywords bind loosest and associate to the right, so the right side
is lowered first; ``10% on 20% off 200`` lowers the inner ``20% off 200``
and substitutes it into the outer pattern.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Sequence

from .ast import (
    PHRASE_OPERATORS,
    Component,
    Components,
    FunctionComponent,
    LiteralComponent,
    OperatorComponent,
    ParenthesesComponent,
)
from .components import collect_variables, components_to_text, contains_operator
from .formatting import format_number
from .values import NumberValue, PercentageValue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoweringResult:
    expression: str
    components: Components
    required_variables: FrozenSet[str]
    has_percentages: bool


def has_percentage_phrase(components: Sequence[Component]) -> bool:
    return contains_operator(components, PHRASE_OPERATORS)


def lower(components: Sequence[Component]) -> LoweringResult:
    """Lower every percentage phrase in ``components``."""
    lowered = _lower_sequence(tuple(components))
    return LoweringResult(
        expression=components_to_text(lowered),
        components=lowered,
        required_variables=frozenset(collect_variables(lowered)),
        has_percentages=has_percentage_phrase(components),
    )


def _lower_sequence(components: Components) -> Components:
    for position, component in enumerate(components):
        if component.type == "operator" and component.operator in PHRASE_OPERATORS:
            left = _numeric_percentages(_lower_nested(components[:position]))
            right = _lower_sequence(components[position + 1:])
            return _rewrite(component.operator, left, right)
    return _lower_nested(components)


def _lower_nested(components: Components) -> Components:
    """Lower phrases inside groups and call arguments."""
    result: List[Component] = []
    for component in components:
        if component.type == "parentheses":
            result.append(ParenthesesComponent(_lower_sequence(component.children)))
        elif component.type == "function":
            args = tuple(_lower_sequence(arg) for arg in component.args)
            result.append(FunctionComponent(component.name, args, component.modifier))
        else:
            result.append(component)
    return tuple(result)


def _rewrite(operator: str, left: Components, right: Components) -> Components:
    x = ParenthesesComponent(left)
    y = ParenthesesComponent(right)
    scaled = (x, OperatorComponent("*"), y)
    if operator == "of":
        return scaled
    combine = "+" if operator == "on" else "-"
    return (y, OperatorComponent(combine)) + scaled


def _numeric_percentages(components: Components) -> Components:
    """Replace percentage literals with ``(p / 100)``."""
    result: List[Component] = []
    for component in components:
        if component.type == "literal" and isinstance(component.value, PercentageValue):
            display = component.value.display
            result.append(
                ParenthesesComponent(
                    (
                        LiteralComponent(NumberValue(display), format_number(display)),
                        OperatorComponent("/"),
                        LiteralComponent(NumberValue(100), "100"),
                    )
                )
            )
        elif component.type == "parentheses":
            result.append(ParenthesesComponent(_numeric_percentages(component.children)))
        else:
            result.append(component)
    return tuple(result)
