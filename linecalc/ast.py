"""
Syntax tree types.

A line parses into exactly one node. Expression-bearing nodes carry a
component tree: each level is a flat infix sequence of literals, variables,
operators, function calls and parenthesized groups, which the evaluator
reads by precedence climbing. Literals always carry their resolved
``SemanticValue``.
"""

from dataclasses import dataclass
from typing import Literal, Optional, Tuple, Union

from .temporal import DateZone
from .units import CompositeUnit
from .values import SemanticValue

# ============================================================
# Expression components
# ============================================================

# Binary operators, plus the percentage phrase keywords
Operator = Literal["+", "-", "*", "/", "^", "of", "on", "off"]

PHRASE_OPERATORS = ("of", "on", "off")


@dataclass(frozen=True)
class LiteralComponent:
    """A literal with its parsed value."""

    value: SemanticValue
    text: str

    @property
    def type(self) -> Literal["literal"]:
        return "literal"


@dataclass(frozen=True)
class VariableComponent:
    """A reference to a variable or constant by (normalized) name."""

    name: str

    @property
    def type(self) -> Literal["variable"]:
        return "variable"


@dataclass(frozen=True)
class OperatorComponent:
    operator: str

    @property
    def type(self) -> Literal["operator"]:
        return "operator"


@dataclass(frozen=True)
class FunctionComponent:
    """
    A call. Lists, ranges, indexing and ``where`` filters are calls to the
    reserved names ``__list``, ``__range``, ``__index`` and ``__where``;
    ``modifier`` holds the comparator of a ``where`` filter.
    """

    name: str
    args: Tuple[Tuple["Component", ...], ...]
    modifier: str = ""

    @property
    def type(self) -> Literal["function"]:
        return "function"


@dataclass(frozen=True)
class ParenthesesComponent:
    children: Tuple["Component", ...]

    @property
    def type(self) -> Literal["parentheses"]:
        return "parentheses"


Component = Union[
    LiteralComponent,
    VariableComponent,
    OperatorComponent,
    FunctionComponent,
    ParenthesesComponent,
]

Components = Tuple[Component, ...]

LIST_FUNCTION = "__list"
RANGE_FUNCTION = "__range"
INDEX_FUNCTION = "__index"
WHERE_FUNCTION = "__where"


# ============================================================
# Conversion targets
# ============================================================


@dataclass(frozen=True)
class ConversionTarget:
    """Target of a ``to``/``in``/``as`` suffix."""

    kind: Literal["unit", "currency", "zone", "percent"]
    text: str
    unit: Optional[CompositeUnit] = None
    currency: Optional[str] = None
    zone: Optional[DateZone] = None


PERCENT_TARGET = ConversionTarget("percent", "%")


# ============================================================
# Line nodes
# ============================================================


@dataclass(frozen=True)
class PlainTextNode:
    text: str
    line_number: int = 0

    @property
    def type(self) -> Literal["PlainText"]:
        return "PlainText"


@dataclass(frozen=True)
class CommentNode:
    text: str
    line_number: int = 0

    @property
    def type(self) -> Literal["Comment"]:
        return "Comment"


@dataclass(frozen=True)
class ViewDirectiveNode:
    directive: str
    arguments: str
    line_number: int = 0

    @property
    def type(self) -> Literal["ViewDirective"]:
        return "ViewDirective"


@dataclass(frozen=True)
class VariableAssignmentNode:
    """``name = value`` without a trigger: stored, not rendered."""

    name: str
    raw_value: str
    components: Components
    parsed_value: Optional[SemanticValue] = None
    target: Optional[ConversionTarget] = None
    line_number: int = 0

    @property
    def type(self) -> Literal["VariableAssignment"]:
        return "VariableAssignment"


@dataclass(frozen=True)
class ExpressionNode:
    expression: str
    components: Components
    target: Optional[ConversionTarget] = None
    line_number: int = 0

    @property
    def type(self) -> Literal["Expression"]:
        return "Expression"


@dataclass(frozen=True)
class CombinedAssignmentNode:
    """``name = expression =>``: stored and rendered."""

    name: str
    expression: str
    components: Components
    target: Optional[ConversionTarget] = None
    line_number: int = 0

    @property
    def type(self) -> Literal["CombinedAssignment"]:
        return "CombinedAssignment"


@dataclass(frozen=True)
class FunctionParam:
    name: str
    default: Optional[Components] = None


@dataclass(frozen=True)
class FunctionDefinitionNode:
    name: str
    params: Tuple[FunctionParam, ...]
    body: str
    components: Components
    line_number: int = 0

    @property
    def type(self) -> Literal["FunctionDefinition"]:
        return "FunctionDefinition"

    @property
    def signature(self) -> str:
        params = ", ".join(param.name for param in self.params)
        return f"{self.name}({params})"


@dataclass(frozen=True)
class SolveNode:
    """``solve x in lhs = rhs [where a = 1, ...]``."""

    variable: str
    expression: str
    left: Components
    right: Components
    bindings: Tuple[Tuple[str, Components], ...] = ()
    line_number: int = 0

    @property
    def type(self) -> Literal["Solve"]:
        return "Solve"


ErrorKind = Literal["parse", "syntax", "semantic"]


@dataclass(frozen=True)
class ErrorNode:
    message: str
    kind: ErrorKind = "parse"
    line_number: int = 0

    @property
    def type(self) -> Literal["Error"]:
        return "Error"


ASTNode = Union[
    PlainTextNode,
    CommentNode,
    ViewDirectiveNode,
    VariableAssignmentNode,
    ExpressionNode,
    CombinedAssignmentNode,
    FunctionDefinitionNode,
    SolveNode,
    ErrorNode,
]

# Nodes whose right-hand side is evaluated as an expression
EXPRESSION_NODES = (VariableAssignmentNode, ExpressionNode, CombinedAssignmentNode)
