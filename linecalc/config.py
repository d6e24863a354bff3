"""
Engine configuration: display options, resource limits and logging setup.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import LimitExceededError

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class DisplayOptions:
    """How values are rendered to text."""

    # Decimal places for plain numbers
    precision: int = 6

    # Magnitudes at or above this render in scientific notation
    scientific_upper: float = 1e12

    # Non-zero magnitudes below this render in scientific notation
    scientific_lower: float = 1e-4

    # Field order for numeric dates such as 03/04/2024 ("mdy" or "dmy")
    date_order: str = "mdy"


@dataclass(frozen=True)
class EngineLimits:
    """Resource limits for parsing and evaluation."""

    max_line_length: int = 4096
    max_range_items: int = 10000
    max_call_depth: int = 32
    max_solve_iterations: int = 100


DEFAULT_DISPLAY_OPTIONS = DisplayOptions()
DEFAULT_LIMITS = EngineLimits()


def check_line_length(text: str, limits: Optional[EngineLimits] = None) -> None:
    """Validates that a line is within the configured length."""
    limits = limits or DEFAULT_LIMITS
    if len(text) > limits.max_line_length:
        raise LimitExceededError("line length", limits.max_line_length, len(text))


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging for command line use."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
