"""
Error types for the line calculator.

Exceptions are raised inside the parsing pipeline and the variable store.
They never reach callers of ``parse_line`` or the evaluator registry: the
parser turns them into error nodes and the registry into error render nodes.
"""

from typing import Optional, Sequence


class LineCalcError(Exception):
    """
    Base error class for all line calculator errors.
    """

    def __init__(
        self,
        message: str,
        position: Optional[int] = None,
        expression: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.position = position
        self.expression = expression

    def format_with_context(self) -> str:
        """
        Returns a formatted error message with position context.
        """
        if self.expression is None or self.position is None:
            return self.message

        pointer = " " * self.position + "^"
        return f"{self.message}\n  {self.expression}\n  {pointer}"


class TokenizerError(LineCalcError):
    """
    Error thrown during tokenization (lexical analysis).
    """

    pass


class ParseError(LineCalcError):
    """
    Error thrown while building the component tree.
    """

    pass


class UnitError(LineCalcError):
    """
    Error thrown for unknown units or invalid unit conversions.
    """

    pass


class EvaluationError(LineCalcError):
    """
    Error thrown when a line cannot be evaluated.
    """

    pass


class CircularDependencyError(EvaluationError):
    """
    Error thrown when an assignment would create a dependency cycle.
    """

    def __init__(self, cycle: Sequence[str]):
        path = " -> ".join(cycle)
        super().__init__(f"Circular dependency detected: {path}")
        self.cycle = list(cycle)


class LimitExceededError(LineCalcError):
    """
    Error thrown when an engine limit is exceeded.
    """

    def __init__(self, limit_name: str, limit: int, actual: int):
        message = f"Limit exceeded: {limit_name} (limit: {limit}, actual: {actual})"
        super().__init__(message)
        self.limit_name = limit_name
        self.limit = limit
        self.actual = actual
