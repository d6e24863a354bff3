"""
Render nodes: what evaluating one line hands to the presentation layer.

Every node records the line it belongs to and the column where its result
decoration goes (the ``=>`` trigger, or the end of the line).
"""

from dataclasses import dataclass
from typing import Literal, Optional, Union

from .values import ErrorType, ErrorValue, SemanticValue

ErrorCategory = Literal["parse", "syntax", "semantic", "runtime"]


@dataclass(frozen=True)
class MathResultNode:
    """Result of an ``expression =>`` line."""

    expression: str
    result: str
    value: Optional[SemanticValue] = None
    line_number: int = 0
    column: int = 0

    @property
    def type(self) -> Literal["mathResult"]:
        return "mathResult"

    def display(self) -> str:
        return self.result


@dataclass(frozen=True)
class CombinedNode:
    """Result of a ``name = expression =>`` line."""

    name: str
    expression: str
    result: str
    value: Optional[SemanticValue] = None
    line_number: int = 0
    column: int = 0

    @property
    def type(self) -> Literal["combined"]:
        return "combined"

    def display(self) -> str:
        return f"{self.name} = {self.result}"


@dataclass(frozen=True)
class AssignmentNode:
    """A silent ``name = value`` line; nothing is shown."""

    name: str
    result: str
    value: Optional[SemanticValue] = None
    line_number: int = 0
    column: int = 0

    @property
    def type(self) -> Literal["assignment"]:
        return "assignment"

    def display(self) -> str:
        return ""


@dataclass(frozen=True)
class ErrorRenderNode:
    message: str
    category: ErrorCategory = "runtime"
    line_number: int = 0
    column: int = 0

    @property
    def type(self) -> Literal["error"]:
        return "error"

    @property
    def value(self) -> None:
        return None

    def display(self) -> str:
        return f"Error: {self.message}"

    @classmethod
    def from_value(cls, error: ErrorValue, line_number: int = 0, column: int = 0) -> "ErrorRenderNode":
        return cls(error.message, ErrorType(error.error_type).category, line_number, column)


@dataclass(frozen=True)
class TextNode:
    """Plain text, comments, view directives and function definitions."""

    text: str
    kind: str = "text"
    line_number: int = 0
    column: int = 0

    @property
    def type(self) -> Literal["text"]:
        return "text"

    @property
    def value(self) -> None:
        return None

    def display(self) -> str:
        return ""


RenderNode = Union[MathResultNode, CombinedNode, AssignmentNode, ErrorRenderNode, TextNode]
