"""
Evaluation of component trees.

Each level of the tree is a flat infix sequence read by precedence climbing,
from loosest to tightest binding:

    of / on / off     (right-associative)
    + -
    * /
    unary -           (so -2^2 is -(2^2))
    ^                 (right-associative)
"""

import logging
from collections import ChainMap
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Set, Tuple

from .ast import (
    INDEX_FUNCTION,
    LIST_FUNCTION,
    RANGE_FUNCTION,
    WHERE_FUNCTION,
    Component,
    Components,
    ConversionTarget,
    FunctionComponent,
    FunctionDefinitionNode,
    FunctionParam,
)
from .builtins import (
    BUILTIN_NAMES,
    CONSTANTS,
    build_range,
    call_builtin,
    filter_list,
    index_list,
    sort_list,
)
from .components import components_to_text
from .config import DEFAULT_DISPLAY_OPTIONS, DEFAULT_LIMITS, DisplayOptions, EngineLimits
from .fx import RateProvider, convert_currency
from .temporal import DateValue, DurationValue
from .values import (
    CurrencyValue,
    ErrorValue,
    ListValue,
    NumberValue,
    PercentageValue,
    SemanticValue,
    SymbolicValue,
    UnitValue,
)

logger = logging.getLogger(__name__)

SORT_ORDERS = {"asc": False, "ascending": False, "desc": True, "descending": True}


@dataclass(frozen=True)
class UserFunction:
    """A function defined on a sheet line."""

    name: str
    params: Tuple[FunctionParam, ...]
    components: Components
    body: str

    @classmethod
    def from_node(cls, node: FunctionDefinitionNode) -> "UserFunction":
        return cls(node.name, node.params, node.components, node.body)


class EvaluationContext:
    """Everything an evaluation may read: variables, functions and settings."""

    def __init__(
        self,
        variables: Optional[Mapping[str, SemanticValue]] = None,
        functions: Optional[Mapping[str, UserFunction]] = None,
        options: Optional[DisplayOptions] = None,
        limits: Optional[EngineLimits] = None,
        rates: Optional[RateProvider] = None,
        symbolic_unknowns: bool = False,
        depth: int = 0,
    ):
        self.variables: Mapping[str, SemanticValue] = variables if variables is not None else {}
        self.functions: Mapping[str, UserFunction] = functions if functions is not None else {}
        self.options = options or DEFAULT_DISPLAY_OPTIONS
        self.limits = limits or DEFAULT_LIMITS
        self.rates = rates
        self.symbolic_unknowns = symbolic_unknowns
        self.depth = depth

    def lookup(self, name: str) -> Optional[SemanticValue]:
        return self.variables.get(name)

    def function_names(self) -> Set[str]:
        # A variable named like a builtin shadows it
        return (set(BUILTIN_NAMES) - set(self.variables)) | set(self.functions)

    def child(self, bindings: Mapping[str, SemanticValue]) -> "EvaluationContext":
        """Context for a function body: parameters shadow variables."""
        return EvaluationContext(
            ChainMap(dict(bindings), self.variables),
            self.functions,
            self.options,
            self.limits,
            self.rates,
            self.symbolic_unknowns,
            self.depth + 1,
        )

    def symbolic(self) -> "EvaluationContext":
        """Same context, but unknown names evaluate to symbolic values."""
        return EvaluationContext(
            self.variables,
            self.functions,
            self.options,
            self.limits,
            self.rates,
            True,
            self.depth,
        )


class ComponentEvaluator:
    """Precedence-climbing evaluator for one component sequence."""

    def __init__(self, components: Sequence[Component], context: EvaluationContext):
        self._components = list(components)
        self._context = context
        self._index = 0

    def evaluate(self) -> SemanticValue:
        if not self._components:
            return ErrorValue.syntax_error("Missing expression")
        result = self._parse_phrase()
        if self._index < len(self._components):
            text = components_to_text(self._components[self._index:])
            return ErrorValue.syntax_error(f"Unexpected '{text}'")
        return result

    # --- Helpers ---

    def _peek_operator(self, operators: Sequence[str]) -> Optional[str]:
        if self._index >= len(self._components):
            return None
        component = self._components[self._index]
        if component.type == "operator" and component.operator in operators:
            return component.operator
        return None

    def _match_operator(self, operators: Sequence[str]) -> Optional[str]:
        operator = self._peek_operator(operators)
        if operator is not None:
            self._index += 1
        return operator

    # --- Precedence levels ---

    def _parse_phrase(self) -> SemanticValue:
        left = self._parse_additive()
        operator = self._match_operator(("of", "on", "off"))
        if operator is None:
            return left
        right = self._parse_phrase()
        return apply_phrase(operator, left, right)

    def _parse_additive(self) -> SemanticValue:
        left = self._parse_multiplicative()
        while True:
            operator = self._match_operator(("+", "-"))
            if operator is None:
                return left
            right = self._parse_multiplicative()
            left = left.add(right) if operator == "+" else left.subtract(right)

    def _parse_multiplicative(self) -> SemanticValue:
        left = self._parse_unary()
        while True:
            operator = self._match_operator(("*", "/"))
            if operator is None:
                return left
            right = self._parse_unary()
            left = left.multiply(right) if operator == "*" else left.divide(right)

    def _parse_unary(self) -> SemanticValue:
        operator = self._match_operator(("-", "+"))
        if operator == "-":
            return self._parse_unary().negate()
        if operator == "+":
            return self._parse_unary()
        return self._parse_power()

    def _parse_power(self) -> SemanticValue:
        base = self._parse_primary()
        if self._match_operator(("^",)) is None:
            return base
        exponent = self._parse_unary()
        return base.power(exponent)

    def _parse_primary(self) -> SemanticValue:
        if self._index >= len(self._components):
            return ErrorValue.syntax_error("Missing operand")
        component = self._components[self._index]
        self._index += 1

        kind = component.type
        if kind == "literal":
            return component.value
        if kind == "variable":
            return self._lookup(component.name)
        if kind == "parentheses":
            if not component.children:
                return ErrorValue.syntax_error("Empty parentheses")
            return evaluate_components(component.children, self._context)
        if kind == "function":
            return self._call(component)
        return ErrorValue.syntax_error(f"Unexpected operator '{component.operator}'")

    # --- Names ---

    def _lookup(self, name: str) -> SemanticValue:
        value = self._context.lookup(name)
        if value is not None:
            if isinstance(value, ErrorValue):
                return ErrorValue.runtime_error(f"Source value has an error: {name}")
            return value
        if name in CONSTANTS:
            return NumberValue(CONSTANTS[name])
        if self._context.symbolic_unknowns:
            return SymbolicValue(name)
        return ErrorValue.runtime_error(f"Undefined variable: {name}")

    # --- Calls ---

    def _evaluate(self, components: Components) -> SemanticValue:
        return evaluate_components(components, self._context)

    def _call(self, component: FunctionComponent) -> SemanticValue:
        name = component.name
        if name == LIST_FUNCTION:
            return ListValue.create([self._evaluate(arg) for arg in component.args])
        if name == RANGE_FUNCTION:
            return self._range(component)
        if name == INDEX_FUNCTION:
            return self._index_into(component)
        if name == WHERE_FUNCTION:
            value = self._evaluate(component.args[0])
            threshold = self._evaluate(component.args[1])
            if _any_symbolic((value, threshold)):
                return SymbolicValue(components_to_text((component,)))
            return filter_list(value, component.modifier, threshold)

        function = self._context.functions.get(name)
        if function is not None:
            return self._call_user(function, component.args)

        if name == "sort" and len(component.args) == 2:
            order = component.args[1]
            if len(order) == 1 and order[0].type == "variable" and order[0].name in SORT_ORDERS:
                return sort_list(self._evaluate(component.args[0]), SORT_ORDERS[order[0].name])

        args = [self._evaluate(arg) for arg in component.args]
        if _any_symbolic(args):
            return SymbolicValue(components_to_text((component,)))
        if name not in BUILTIN_NAMES:
            return ErrorValue.runtime_error(f"Unknown function: {name}")
        return call_builtin(name, args)

    def _call_user(self, function: UserFunction, arg_components: Tuple[Components, ...]) -> SemanticValue:
        limit = self._context.limits.max_call_depth
        if self._context.depth >= limit:
            return ErrorValue.runtime_error(
                f"Maximum call depth exceeded ({limit}) in {function.name}()"
            )
        if len(arg_components) > len(function.params):
            return ErrorValue.runtime_error(
                f"{function.name}() takes at most {len(function.params)} arguments "
                f"({len(arg_components)} given)"
            )

        bindings = {}
        for position, param in enumerate(function.params):
            if position < len(arg_components):
                value = self._evaluate(arg_components[position])
            elif param.default is not None:
                value = evaluate_components(param.default, self._context.child(bindings))
            else:
                return ErrorValue.runtime_error(
                    f"{function.name}() missing argument '{param.name}'"
                )
            if isinstance(value, ErrorValue):
                return value
            bindings[param.name] = value
        return evaluate_components(function.components, self._context.child(bindings))

    def _range(self, component: FunctionComponent) -> SemanticValue:
        bounds = [self._evaluate(arg) for arg in component.args]
        if _any_symbolic(bounds):
            return SymbolicValue(components_to_text((component,)))
        step = bounds[2] if len(bounds) > 2 else None
        result = build_range(bounds[0], bounds[1], step, self._context.limits)
        if isinstance(result, ErrorValue):
            message = result.message.lower()
            if "range" not in message and "step" not in message:
                text = components_to_text((component,))
                return ErrorValue(result.error_type, f'Invalid range expression near "{text}"')
        return result

    def _index_into(self, component: FunctionComponent) -> SemanticValue:
        target = self._evaluate(component.args[0])
        inner = component.args[1]
        if len(inner) == 1 and inner[0].type == "function" and inner[0].name == RANGE_FUNCTION:
            bounds = [self._evaluate(arg) for arg in inner[0].args[:2]]
            if all(isinstance(bound, NumberValue) for bound in bounds):
                if bounds[0].value > bounds[1].value:
                    return ErrorValue.runtime_error("Range can't go downwards")
        index = self._evaluate(inner)
        if _any_symbolic((target, index)):
            return SymbolicValue(components_to_text((component,)))
        return index_list(target, index)


def _any_symbolic(values: Sequence[SemanticValue]) -> bool:
    return any(isinstance(value, SymbolicValue) for value in values)


def apply_phrase(operator: str, left: SemanticValue, right: SemanticValue) -> SemanticValue:
    """``left of/on/off right``; the left side is normally a percentage."""
    for value in (left, right):
        if isinstance(value, ErrorValue):
            return value
    if isinstance(left, SymbolicValue) or isinstance(right, SymbolicValue):
        return SymbolicValue(f"{left.to_string()} {operator} {right.to_string()}")
    if isinstance(left, PercentageValue):
        return getattr(left, operator)(right)
    if isinstance(left, ListValue):
        return left.map(lambda item: apply_phrase(operator, item, right))
    if operator == "of":
        return left.multiply(right)
    return ErrorValue.type_error(
        f"'{operator}' needs a percentage on the left, got {left.description}"
    )


def evaluate_components(components: Sequence[Component], context: EvaluationContext) -> SemanticValue:
    """Evaluates a component sequence to a semantic value."""
    return ComponentEvaluator(components, context).evaluate()


def apply_conversion(
    value: SemanticValue, target: Optional[ConversionTarget], context: EvaluationContext
) -> SemanticValue:
    """Applies a ``to``/``in``/``as`` suffix to an evaluated value."""
    if target is None or isinstance(value, (ErrorValue, SymbolicValue)):
        return value
    if isinstance(value, ListValue):
        return value.map(lambda item: apply_conversion(item, target, context))

    if target.kind == "percent":
        if isinstance(value, PercentageValue):
            return value
        if isinstance(value, NumberValue):
            return PercentageValue.from_decimal(value.value)
        return ErrorValue.type_error(f"Cannot express {value.description} as a percentage")

    if isinstance(value, DateValue):
        if target.kind != "zone":
            return ErrorValue.semantic_error("Expected time zone after 'to'")
        return value.with_zone(target.zone)

    if target.kind == "unit":
        if isinstance(value, UnitValue):
            return value.convert_to(target.unit)
        if isinstance(value, DurationValue):
            return value.to_unit(target.unit)
    elif target.kind == "currency":
        if isinstance(value, CurrencyValue):
            return convert_currency(value, target.currency, context.rates)

    return ErrorValue.conversion_error(f"Cannot convert {value.description} to {target.text}")


def evaluate_expression(
    components: Sequence[Component],
    target: Optional[ConversionTarget],
    context: EvaluationContext,
) -> SemanticValue:
    return apply_conversion(evaluate_components(components, context), target, context)
