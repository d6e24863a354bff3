"""
Built-in functions and constants.

All built-in functions are pure: they take evaluated values and return a
value, reporting failures as ``ErrorValue`` rather than raising.

List helpers accept either one list argument or several scalar arguments
(``max(1, 2, 3)``). A single scalar argument or a nested list is rejected
with a typed error naming the function.
"""

import logging
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .config import DEFAULT_LIMITS, EngineLimits
from .temporal import DateValue, DurationValue, TimeValue
from .units import convert_value
from .values import (
    CurrencyValue,
    ErrorValue,
    ListValue,
    NumberValue,
    PercentageValue,
    SemanticValue,
    UnitValue,
)

logger = logging.getLogger(__name__)

# Signature of a built-in function: (arguments, name as called)
BuiltinFunction = Callable[[Sequence[SemanticValue], str], SemanticValue]

CONSTANTS: Dict[str, float] = {
    "PI": math.pi,
    "pi": math.pi,
    "π": math.pi,
    "E": math.e,
    "e": math.e,
    "tau": math.tau,
    "TAU": math.tau,
    "phi": (1 + math.sqrt(5)) / 2,
}


def _first_error(args: Sequence[SemanticValue]) -> Optional[ErrorValue]:
    for arg in args:
        if isinstance(arg, ErrorValue):
            return arg
    return None


def _arity(args: Sequence[SemanticValue], name: str, minimum: int, maximum: int) -> Optional[ErrorValue]:
    if minimum <= len(args) <= maximum:
        return None
    if minimum == maximum:
        expected = f"{minimum} argument{'s' if minimum != 1 else ''}"
    else:
        expected = f"{minimum} to {maximum} arguments"
    return ErrorValue.runtime_error(f"{name}() takes {expected} ({len(args)} given)")


# ============================================================
# Math functions
# ============================================================


def _magnitude_function(fn: Callable[[float], float]) -> BuiltinFunction:
    """Functions that keep the kind of their argument (abs, floor, ...)."""

    def call(args: Sequence[SemanticValue], name: str) -> SemanticValue:
        error = _first_error(args) or _arity(args, name, 1, 1)
        if error:
            return error
        return _apply_magnitude(args[0], fn, name)

    return call


def _apply_magnitude(value: SemanticValue, fn: Callable[[float], float], name: str) -> SemanticValue:
    if isinstance(value, ListValue):
        return value.map(lambda item: _apply_magnitude(item, fn, name))
    if isinstance(value, NumberValue):
        return NumberValue(fn(value.value))
    if isinstance(value, UnitValue):
        return UnitValue(fn(value.value), value.unit)
    if isinstance(value, CurrencyValue):
        return CurrencyValue(value.symbol, fn(value.amount))
    if isinstance(value, PercentageValue):
        return PercentageValue(fn(value.display))
    return ErrorValue.type_error(f"{name}() expects a number, got {value.description}")


def _number_function(fn: Callable[[float], float]) -> BuiltinFunction:
    """Functions defined on plain numbers only (sin, ln, ...)."""

    def call(args: Sequence[SemanticValue], name: str) -> SemanticValue:
        error = _first_error(args) or _arity(args, name, 1, 1)
        if error:
            return error
        return _apply_number(args[0], fn, name)

    return call


def _apply_number(value: SemanticValue, fn: Callable[[float], float], name: str) -> SemanticValue:
    if isinstance(value, ListValue):
        return value.map(lambda item: _apply_number(item, fn, name))
    if isinstance(value, PercentageValue):
        value = NumberValue(value.decimal)
    if not isinstance(value, NumberValue):
        return ErrorValue.type_error(f"{name}() expects a number, got {value.description}")
    try:
        return NumberValue(fn(value.value))
    except (ValueError, ZeroDivisionError):
        return ErrorValue.runtime_error(f"Math domain error in {name}()")
    except OverflowError:
        return ErrorValue.runtime_error("Result is too large")


def _root_function(exponent: float) -> BuiltinFunction:
    def call(args: Sequence[SemanticValue], name: str) -> SemanticValue:
        error = _first_error(args) or _arity(args, name, 1, 1)
        if error:
            return error
        return _apply_root(args[0], exponent, name)

    return call


def _apply_root(value: SemanticValue, exponent: float, name: str) -> SemanticValue:
    if isinstance(value, ListValue):
        return value.map(lambda item: _apply_root(item, exponent, name))
    if isinstance(value, NumberValue):
        if value.value < 0:
            if exponent == 0.5:
                return ErrorValue.runtime_error("Result is not a real number")
            return NumberValue(-math.pow(-value.value, exponent))
        return NumberValue(math.pow(value.value, exponent))
    if isinstance(value, UnitValue):
        return value.power(NumberValue(exponent))
    return ErrorValue.type_error(f"{name}() expects a number, got {value.description}")


def _round(args: Sequence[SemanticValue], name: str) -> SemanticValue:
    error = _first_error(args) or _arity(args, name, 1, 2)
    if error:
        return error
    digits = 0
    if len(args) == 2:
        if not isinstance(args[1], NumberValue) or not args[1].value.is_integer():
            return ErrorValue.type_error(f"{name}() expects whole-number digits")
        digits = int(args[1].value)
    return _apply_magnitude(args[0], lambda x: round_half_away(x, digits), name)


def round_half_away(x: float, digits: int = 0) -> float:
    """Round halves away from zero: 2.5 -> 3, -2.5 -> -3."""
    if not math.isfinite(x):
        return x
    exact = Decimal(repr(x))
    if exact.as_tuple().exponent >= -digits:
        return x
    return float(exact.quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP))


def _log(args: Sequence[SemanticValue], name: str) -> SemanticValue:
    error = _first_error(args) or _arity(args, name, 1, 2)
    if error:
        return error
    if len(args) == 1:
        return _apply_number(args[0], math.log10, name)
    base = args[1]
    if not isinstance(base, NumberValue):
        return ErrorValue.type_error(f"{name}() expects a number base, got {base.description}")
    return _apply_number(args[0], lambda x: math.log(x, base.value), name)


# ============================================================
# List helpers
# ============================================================

Series = Tuple[List[float], Callable[[float], SemanticValue]]


def list_argument(args: Sequence[SemanticValue], name: str) -> SemanticValue:
    """The list a helper works on, or the error explaining why there is none."""
    error = _first_error(args)
    if error:
        return error
    if not args:
        return ErrorValue.type_error(f"{name}() expects a list, got nothing")
    if len(args) == 1:
        value = args[0]
        if not isinstance(value, ListValue):
            return ErrorValue.type_error(f"{name}() expects a list, got {value.description}")
        if value.nested:
            return ErrorValue.type_error(f"{name}() does not support nested lists")
        return value
    if any(isinstance(arg, ListValue) for arg in args):
        return ErrorValue.type_error(f"{name}() does not support nested lists")
    return ListValue.create(args)


def numeric_series(items: Sequence[SemanticValue], name: str) -> Union[Series, ErrorValue]:
    """
    Plain floats for a homogeneous list, with a function that turns a float
    back into a value of the same kind. Unit items are expressed in the unit
    of the item with the largest magnitude.
    """
    first = items[0]
    if all(isinstance(item, NumberValue) for item in items):
        return [item.value for item in items], NumberValue

    if all(isinstance(item, UnitValue) for item in items):
        dimension = first.unit.dimension()
        if any(item.unit.dimension() != dimension for item in items):
            return ErrorValue.type_error("Cannot create list: incompatible dimensions")
        target = max(items, key=lambda item: abs(item.to_base_value())).unit
        values = [convert_value(item.value, item.unit, target) for item in items]
        return values, lambda x: UnitValue(x, target)

    if all(isinstance(item, CurrencyValue) for item in items):
        symbols = {item.symbol for item in items}
        if len(symbols) > 1:
            return ErrorValue.type_error(
                f"{name}() cannot mix currencies ({', '.join(sorted(symbols))})"
            )
        return [item.amount for item in items], lambda x: CurrencyValue(first.symbol, x)

    if all(isinstance(item, PercentageValue) for item in items):
        return [item.display for item in items], PercentageValue

    if all(isinstance(item, DurationValue) for item in items):
        return [item.total_seconds for item in items], DurationValue.from_seconds

    return ErrorValue.type_error(f"{name}() needs items of a single kind")


def _aggregate(reducer: Callable[[List[float]], float], empty: Optional[float] = None) -> BuiltinFunction:
    def call(args: Sequence[SemanticValue], name: str) -> SemanticValue:
        values = list_argument(args, name)
        if isinstance(values, ErrorValue):
            return values
        if not isinstance(values, ListValue):
            return ErrorValue.type_error(f"{name}() expects a list, got {values.description}")
        if not values.items:
            if empty is None:
                return ErrorValue.runtime_error(f"{name}() of an empty list")
            return NumberValue(empty)
        series = numeric_series(values.items, name)
        if isinstance(series, ErrorValue):
            return series
        floats, rebuild = series
        return rebuild(reducer(floats))

    return call


def _mean(values: List[float]) -> float:
    return sum(values) / len(values)


def _median(values: List[float]) -> float:
    ordered = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[middle]
    return (ordered[middle - 1] + ordered[middle]) / 2


def _stddev(values: List[float]) -> float:
    mean = _mean(values)
    return math.sqrt(sum((x - mean) ** 2 for x in values) / len(values))


def _count(args: Sequence[SemanticValue], name: str) -> SemanticValue:
    values = list_argument(args, name)
    if isinstance(values, ErrorValue):
        return values
    return NumberValue(len(values.items))


def sort_list(value: SemanticValue, descending: bool = False, name: str = "sort") -> SemanticValue:
    values = list_argument([value], name)
    if isinstance(values, ErrorValue) or not values.items:
        return values
    series = numeric_series(values.items, name)
    if isinstance(series, ErrorValue):
        return series
    keys, _ = series
    order = sorted(range(len(keys)), key=lambda i: keys[i], reverse=descending)
    return ListValue([values.items[i] for i in order])


def _sort(args: Sequence[SemanticValue], name: str) -> SemanticValue:
    error = _arity(args, name, 1, 1)
    if error:
        return error
    return sort_list(args[0], False, name)


# ============================================================
# Filtering and indexing
# ============================================================

COMPARATOR_TESTS: Dict[str, Callable[[float, float, bool], bool]] = {
    ">": lambda a, b, equal: a > b and not equal,
    ">=": lambda a, b, equal: a > b or equal,
    "<": lambda a, b, equal: a < b and not equal,
    "<=": lambda a, b, equal: a < b or equal,
    "==": lambda a, b, equal: equal,
    "!=": lambda a, b, equal: not equal,
}


def _comparable(item: SemanticValue, threshold: SemanticValue) -> Optional[Tuple[float, float]]:
    if isinstance(item, NumberValue) and isinstance(threshold, NumberValue):
        return item.value, threshold.value
    if isinstance(item, UnitValue) and isinstance(threshold, UnitValue):
        if item.unit.dimension() != threshold.unit.dimension():
            return None
        return item.to_base_value(), threshold.to_base_value()
    if isinstance(item, CurrencyValue) and isinstance(threshold, CurrencyValue):
        if item.symbol != threshold.symbol:
            return None
        return item.amount, threshold.amount
    if isinstance(item, PercentageValue) and isinstance(threshold, PercentageValue):
        return item.display, threshold.display
    if isinstance(item, DurationValue) and isinstance(threshold, DurationValue):
        return item.total_seconds, threshold.total_seconds
    return None


def filter_list(value: SemanticValue, comparator: str, threshold: SemanticValue) -> SemanticValue:
    """Items of ``value`` for which ``item <comparator> threshold`` holds."""
    for operand in (value, threshold):
        if isinstance(operand, ErrorValue):
            return operand
    if not isinstance(value, ListValue):
        return ErrorValue.type_error("where expects a list")
    test = COMPARATOR_TESTS.get(comparator)
    if test is None or isinstance(threshold, ListValue):
        return ErrorValue.syntax_error("Unsupported where predicate")

    kept = []
    for item in value.items:
        pair = _comparable(item, threshold)
        if pair is None:
            return ErrorValue.type_error(
                f"Cannot compare {item.kind_label()} with {threshold.kind_label()}"
            )
        a, b = pair
        equal = abs(a - b) <= 1e-9 * max(1.0, abs(a), abs(b))
        if test(a, b, equal):
            kept.append(item)
    return ListValue(kept)


def index_list(value: SemanticValue, index: SemanticValue) -> SemanticValue:
    """1-based indexing; negative indices count from the end."""
    for operand in (value, index):
        if isinstance(operand, ErrorValue):
            return operand
    if not isinstance(value, ListValue):
        return ErrorValue.type_error(f"Cannot index {value.description}")
    if isinstance(index, ListValue):
        picked = []
        for item in index.items:
            result = index_list(value, item)
            if isinstance(result, ErrorValue):
                return result
            picked.append(result)
        return ListValue(picked)
    if not isinstance(index, NumberValue) or not index.value.is_integer():
        return ErrorValue.type_error("List index must be a whole number")

    position = int(index.value)
    count = len(value.items)
    if position == 0 or abs(position) > count:
        return ErrorValue.runtime_error(
            f"Index {position} is out of range for a list of {count} items"
        )
    return value.items[position - 1 if position > 0 else count + position]


# ============================================================
# Ranges
# ============================================================


def build_range(
    start: SemanticValue,
    end: SemanticValue,
    step: Optional[SemanticValue] = None,
    limits: Optional[EngineLimits] = None,
) -> SemanticValue:
    limits = limits or DEFAULT_LIMITS
    for operand in (start, end, step):
        if isinstance(operand, ErrorValue):
            return operand

    if isinstance(start, NumberValue) and isinstance(end, NumberValue):
        return _number_range(start.value, end.value, step, limits)
    if isinstance(start, DateValue) and isinstance(end, DateValue):
        return _date_range(start, end, step, limits)
    if isinstance(start, TimeValue) and isinstance(end, TimeValue):
        return _date_range(start, end, step, limits)
    return ErrorValue.runtime_error(
        f"Bounds must be numbers or dates, got {start.description} and {end.description}"
    )


def _number_range(start: float, end: float, step: Optional[SemanticValue], limits: EngineLimits) -> SemanticValue:
    if not start.is_integer() or not end.is_integer():
        return ErrorValue.runtime_error("Bounds must be whole numbers")
    increment = 1
    if step is not None:
        if not isinstance(step, NumberValue) or not step.value.is_integer() or step.value <= 0:
            return ErrorValue.runtime_error("Range step must be a positive whole number")
        increment = int(step.value)

    count = int(abs(end - start)) // increment + 1
    if count > limits.max_range_items:
        return ErrorValue.runtime_error(
            f"Range is too large ({count} items, limit {limits.max_range_items})"
        )
    direction = 1 if end >= start else -1
    return ListValue([NumberValue(start + direction * increment * i) for i in range(count)])


def _date_range(start, end, step: Optional[SemanticValue], limits: EngineLimits) -> SemanticValue:
    if step is None:
        step = DurationValue({"day": 1} if isinstance(start, DateValue) else {"hour": 1})
    elif isinstance(step, UnitValue):
        converted = DurationValue.from_unit_value(step)
        if converted is None:
            return ErrorValue.runtime_error("Range step must be a duration for dates and times")
        step = converted
    if not isinstance(step, DurationValue) or step.total_seconds <= 0:
        return ErrorValue.runtime_error("Range step must be a duration for dates and times")

    def key(value) -> float:
        if isinstance(value, DateValue):
            return value.moment.timestamp()
        return value.absolute_seconds

    descending = key(end) < key(start)
    items: List[SemanticValue] = []
    current: SemanticValue = start
    while (key(current) >= key(end)) if descending else (key(current) <= key(end)):
        items.append(current)
        if len(items) > limits.max_range_items:
            return ErrorValue.runtime_error(
                f"Range is too large (limit {limits.max_range_items} items)"
            )
        current = current.subtract(step) if descending else current.add(step)
        if isinstance(current, ErrorValue):
            return current
    return ListValue(items)


# ============================================================
# Registry
# ============================================================

# Registry of all built-in functions.
BUILTIN_FUNCTIONS: Dict[str, BuiltinFunction] = {
    # Kind-preserving math
    "abs": _magnitude_function(abs),
    "round": _round,
    "floor": _magnitude_function(math.floor),
    "ceil": _magnitude_function(math.ceil),
    # Roots
    "sqrt": _root_function(0.5),
    "cbrt": _root_function(1 / 3),
    # Plain-number math
    "ln": _number_function(math.log),
    "log": _log,
    "log2": _number_function(math.log2),
    "exp": _number_function(math.exp),
    "sin": _number_function(math.sin),
    "cos": _number_function(math.cos),
    "tan": _number_function(math.tan),
    "asin": _number_function(math.asin),
    "acos": _number_function(math.acos),
    "atan": _number_function(math.atan),
    # List helpers
    "sum": _aggregate(sum, empty=0),
    "total": _aggregate(sum, empty=0),
    "count": _count,
    "avg": _aggregate(_mean),
    "mean": _aggregate(_mean),
    "average": _aggregate(_mean),
    "median": _aggregate(_median),
    "min": _aggregate(min),
    "max": _aggregate(max),
    "range": _aggregate(lambda values: max(values) - min(values)),
    "stddev": _aggregate(_stddev),
    "sort": _sort,
}

BUILTIN_NAMES = frozenset(BUILTIN_FUNCTIONS)


def call_builtin(name: str, args: Sequence[SemanticValue]) -> SemanticValue:
    """Calls a built-in function by name."""
    fn = BUILTIN_FUNCTIONS.get(name)
    if fn is None:
        return ErrorValue.runtime_error(f"Unknown function: {name}")
    return fn(args, name)


def is_builtin_function(name: str) -> bool:
    return name in BUILTIN_FUNCTIONS
