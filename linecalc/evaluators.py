"""
Evaluator registry.

Evaluators are tried in a fixed priority order. Each one says whether it
can handle a node; when it can, it returns one of three outcomes:

    Match(node)   the evaluator produced the render node
    DEFER         the node needs handling this evaluator does not own;
                  try the next candidate
    NO_MATCH      the evaluator does not apply after all

The registry returns the render node of the first Match.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union

from .ast import (
    EXPRESSION_NODES,
    ASTNode,
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
from .components import collect_function_calls, walk_literals
from .errors import LineCalcError
from .expression import EvaluationContext, evaluate_components, evaluate_expression
from .lowering import has_percentage_phrase, lower
from .render import (
    AssignmentNode,
    CombinedNode,
    ErrorRenderNode,
    MathResultNode,
    RenderNode,
    TextNode,
)
from .temporal import DateValue, DurationValue, TimeValue
from .values import ErrorValue, NumberValue, SemanticValue, UnitValue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Match:
    node: RenderNode


class Signal(Enum):
    DEFER = "defer"
    NO_MATCH = "no_match"


DEFER = Signal.DEFER
NO_MATCH = Signal.NO_MATCH

Outcome = Union[Match, Signal]


def render_value(
    node: ASTNode, value: SemanticValue, context: EvaluationContext, column: int = 0
) -> RenderNode:
    """Render node for an evaluated expression line."""
    line_number = node.line_number
    if isinstance(value, ErrorValue):
        return ErrorRenderNode.from_value(value, line_number, column)

    result = value.to_string(context.options)
    if isinstance(node, CombinedAssignmentNode):
        return CombinedNode(node.name, node.expression, result, value, line_number, column)
    if isinstance(node, VariableAssignmentNode):
        return AssignmentNode(node.name, result, value, line_number, column)
    return MathResultNode(node.expression, result, value, line_number, column)


class Evaluator(ABC):
    """Interface for one evaluator in the chain."""

    name = "evaluator"

    @abstractmethod
    def can_handle(self, node: ASTNode) -> bool:
        pass

    @abstractmethod
    def evaluate(self, node: ASTNode, context: EvaluationContext, column: int = 0) -> Outcome:
        pass


# ============================================================
# Expression evaluators
# ============================================================


class PercentageEvaluator(Evaluator):
    """Lines with ``of``/``on``/``off`` phrases, evaluated through lowering."""

    name = "percentage"

    def can_handle(self, node):
        return isinstance(node, EXPRESSION_NODES) and has_percentage_phrase(node.components)

    def evaluate(self, node, context, column=0):
        lowered = lower(node.components)
        logger.debug(f"Lowered percentage expression to: {lowered.expression}")
        value = evaluate_expression(lowered.components, node.target, context)
        if isinstance(value, ErrorValue):
            # The phrase may not be a percentage at all (``half of x``)
            direct = evaluate_expression(node.components, node.target, context)
            if not isinstance(direct, ErrorValue):
                value = direct
        return Match(render_value(node, value, context, column))


class UnitsEvaluator(Evaluator):
    """Expressions carrying physical units or converting to one."""

    name = "units"

    def can_handle(self, node):
        if not isinstance(node, EXPRESSION_NODES):
            return False
        if node.target is not None and node.target.kind == "unit":
            return True
        return any(isinstance(literal.value, UnitValue) for literal in walk_literals(node.components))

    def evaluate(self, node, context, column=0):
        temporal = any(
            isinstance(literal.value, (DateValue, TimeValue, DurationValue))
            for literal in walk_literals(node.components)
        )
        if temporal or collect_function_calls(node.components) & set(context.functions):
            return DEFER
        value = evaluate_expression(node.components, node.target, context)
        return Match(render_value(node, value, context, column))


class VariableEvaluator(Evaluator):
    """Silent assignments: the value is computed but nothing is shown."""

    name = "variable"

    def can_handle(self, node):
        return isinstance(node, VariableAssignmentNode)

    def evaluate(self, node, context, column=0):
        if node.parsed_value is not None:
            value = node.parsed_value
        else:
            value = evaluate_expression(node.components, node.target, context)
        return Match(render_value(node, value, context, column))


class ExpressionEvaluator(Evaluator):
    """Generic arithmetic for every remaining expression line."""

    name = "expression"

    def can_handle(self, node):
        return isinstance(node, (ExpressionNode, CombinedAssignmentNode))

    def evaluate(self, node, context, column=0):
        value = evaluate_expression(node.components, node.target, context)
        return Match(render_value(node, value, context, column))


# ============================================================
# Definitions and solving
# ============================================================


class FunctionDefinitionEvaluator(Evaluator):
    name = "function"

    def can_handle(self, node):
        return isinstance(node, FunctionDefinitionNode)

    def evaluate(self, node, context, column=0):
        return Match(TextNode(node.signature, "function", node.line_number, column))


class SolveEvaluator(Evaluator):
    """Numeric root finding for ``solve x in lhs = rhs`` (secant method)."""

    name = "solve"
    tolerance = 1e-12

    def can_handle(self, node):
        return isinstance(node, SolveNode)

    def evaluate(self, node, context, column=0):
        bindings = {}
        for name, components in node.bindings:
            value = evaluate_components(components, context.child(bindings))
            if isinstance(value, ErrorValue):
                return Match(ErrorRenderNode.from_value(value, node.line_number, column))
            bindings[name] = value

        result = self._solve(node, context, bindings)
        if isinstance(result, ErrorValue):
            return Match(ErrorRenderNode.from_value(result, node.line_number, column))
        text = f"{node.variable} = {result.to_string(context.options)}"
        return Match(MathResultNode(f"solve {node.variable} in {node.expression}", text, result, node.line_number, column))

    def _residual(self, node: SolveNode, context: EvaluationContext, bindings, x: float):
        scope = dict(bindings)
        scope[node.variable] = NumberValue(x)
        inner = context.child(scope)
        difference = evaluate_components(node.left, inner).subtract(evaluate_components(node.right, inner))
        if isinstance(difference, ErrorValue):
            return difference
        if isinstance(difference, UnitValue) and difference.unit.is_dimensionless():
            return difference.to_base_value()
        if not isinstance(difference, NumberValue):
            return ErrorValue.type_error(f"solve works on plain numbers, got {difference.description}")
        return difference.value

    def _solve(self, node, context, bindings) -> Union[NumberValue, ErrorValue]:
        x0, x1 = 0.0, 1.0
        f0 = self._residual(node, context, bindings, x0)
        if isinstance(f0, ErrorValue):
            x0 = 2.0
            f0 = self._residual(node, context, bindings, x0)
        f1 = self._residual(node, context, bindings, x1)
        for value in (f0, f1):
            if isinstance(value, ErrorValue):
                return value

        for iteration in range(context.limits.max_solve_iterations):
            if abs(f1) <= self.tolerance:
                logger.debug(f"Solved for {node.variable} after {iteration} iterations")
                return NumberValue(_clean(x1))
            if f1 == f0:
                break
            x2 = x1 - f1 * (x1 - x0) / (f1 - f0)
            if not math.isfinite(x2):
                break
            f2 = self._residual(node, context, bindings, x2)
            if isinstance(f2, ErrorValue):
                return f2
            x0, f0, x1, f1 = x1, f1, x2, f2
            if abs(x1 - x0) <= self.tolerance * max(1.0, abs(x1)) and abs(f1) <= 1e-9 * max(1.0, abs(x1)):
                return NumberValue(_clean(x1))

        return ErrorValue.runtime_error(f"Could not solve for {node.variable}")


def _clean(x: float) -> float:
    """Snap values within rounding noise of an integer."""
    nearest = round(x)
    return float(nearest) if abs(x - nearest) < 1e-9 else x


# ============================================================
# Errors and text
# ============================================================


class ErrorEvaluator(Evaluator):
    name = "error"

    def can_handle(self, node):
        return isinstance(node, ErrorNode)

    def evaluate(self, node, context, column=0):
        return Match(ErrorRenderNode(node.message, node.kind, node.line_number, column))


class PlainTextEvaluator(Evaluator):
    name = "text"

    def can_handle(self, node):
        return isinstance(node, (PlainTextNode, CommentNode, ViewDirectiveNode))

    def evaluate(self, node, context, column=0):
        if isinstance(node, CommentNode):
            return Match(TextNode(node.text, "comment", node.line_number, column))
        if isinstance(node, ViewDirectiveNode):
            return Match(TextNode(node.arguments, "view", node.line_number, column))
        return Match(TextNode(node.text, "text", node.line_number, column))


def default_evaluators() -> List[Evaluator]:
    return [
        PercentageEvaluator(),
        UnitsEvaluator(),
        VariableEvaluator(),
        ExpressionEvaluator(),
        FunctionDefinitionEvaluator(),
        SolveEvaluator(),
        ErrorEvaluator(),
        PlainTextEvaluator(),
    ]


class EvaluatorRegistry:
    """Ordered evaluator chain; the first Match wins."""

    def __init__(self, evaluators: Optional[Sequence[Evaluator]] = None):
        self.evaluators: List[Evaluator] = list(evaluators) if evaluators is not None else default_evaluators()

    def register(self, evaluator: Evaluator, position: Optional[int] = None) -> None:
        if position is None:
            self.evaluators.append(evaluator)
        else:
            self.evaluators.insert(position, evaluator)

    def evaluate(self, node: ASTNode, context: EvaluationContext, column: int = 0) -> Optional[RenderNode]:
        for evaluator in self.evaluators:
            if not evaluator.can_handle(node):
                continue
            try:
                outcome = evaluator.evaluate(node, context, column)
            except LineCalcError as e:
                logger.warning(f"Evaluator {evaluator.name} failed on line {node.line_number}: {e.message}")
                return ErrorRenderNode(e.message, "runtime", node.line_number, column)
            except Exception as e:
                logger.error(
                    f"Unexpected error in evaluator {evaluator.name} on line {node.line_number}: {e}",
                    exc_info=True,
                )
                return ErrorRenderNode(f"Calculation failed: {e}", "runtime", node.line_number, column)

            if isinstance(outcome, Match):
                logger.debug(f"Line {node.line_number} handled by {evaluator.name} evaluator")
                return outcome.node
            if outcome is DEFER:
                logger.debug(f"Evaluator {evaluator.name} deferred line {node.line_number}")
        logger.debug(f"No evaluator matched line {node.line_number}")
        return None


def evaluate_node(node: ASTNode, context: EvaluationContext, column: int = 0) -> Optional[RenderNode]:
    """Evaluate one node with the default evaluator chain."""
    return EvaluatorRegistry().evaluate(node, context, column)
