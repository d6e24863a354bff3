"""Number and unit text formatting shared by all value types."""

import math
from typing import Optional

from .config import DEFAULT_DISPLAY_OPTIONS, DisplayOptions

# Calendar units whose symbol is also their English name
PLURALIZABLE_UNITS = frozenset({"day", "week", "month", "year"})

COMPOUND_UNIT_MARKERS = ("/", "^", "*")


def format_scientific(value: float, precision: int = 6) -> str:
    """Render ``value`` as ``1.5e+12`` with a trimmed mantissa."""
    mantissa, exponent = f"{value:.{precision}e}".split("e")
    if "." in mantissa:
        mantissa = mantissa.rstrip("0").rstrip(".")
    exp = int(exponent)
    sign = "+" if exp >= 0 else "-"
    return f"{mantissa}e{sign}{abs(exp)}"


def format_number(value: float, options: Optional[DisplayOptions] = None) -> str:
    """Format a float for display.

    Integers render without decimals, very large or very small magnitudes
    render in scientific notation, everything else is rounded to
    ``options.precision`` places with trailing zeros dropped.
    """
    options = options or DEFAULT_DISPLAY_OPTIONS
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"

    magnitude = abs(value)
    if magnitude >= options.scientific_upper or magnitude < options.scientific_lower:
        return format_scientific(value, options.precision)
    if value == int(value):
        return str(int(value))

    text = f"{value:.{options.precision}f}".rstrip("0").rstrip(".")
    if text in ("0", "-0"):
        return format_scientific(value, options.precision)
    return text


def pluralize(word: str) -> str:
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def unit_label(value: float, unit_text: str) -> str:
    """Unit text for ``value``, pluralized for calendar units when needed."""
    if unit_text not in PLURALIZABLE_UNITS:
        return unit_text
    if abs(value) == 1 or any(marker in unit_text for marker in COMPOUND_UNIT_MARKERS):
        return unit_text
    return pluralize(unit_text)
