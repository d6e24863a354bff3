"""Line-oriented calculator: units, currency, percentages, dates and reactive variables."""

from .evaluators import EvaluatorRegistry
from .expression import EvaluationContext
from .parser import parse_line
from .sheet import Sheet
from .store import VariableStore

__version__ = "0.1.0"

__all__ = [
    "EvaluationContext",
    "EvaluatorRegistry",
    "Sheet",
    "VariableStore",
    "parse_line",
]
