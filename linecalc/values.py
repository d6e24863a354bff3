"""
Semantic values: the typed results of parsing and evaluation.

Every value implements the same arithmetic contract (``add``, ``subtract``,
``multiply``, ``divide``, ``power``, ``equals``, ``to_string``). Operations
never raise: an unsupported combination or a domain failure comes back as an
``ErrorValue`` so callers can propagate it like any other result.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Tuple

from .config import DisplayOptions
from .errors import UnitError
from .formatting import format_number, unit_label
from .units import CompositeUnit, UnitComponent, convert_value, default_registry

logger = logging.getLogger(__name__)

OPERATION_SYMBOLS = {
    "add": "+",
    "subtract": "-",
    "multiply": "*",
    "divide": "/",
    "power": "^",
}


class ErrorType(str, Enum):
    PARSE = "parse"
    SYNTAX = "syntax"
    SEMANTIC = "semantic"
    RUNTIME = "runtime"
    TYPE = "type"
    CONVERSION = "conversion"

    @property
    def category(self) -> str:
        """The render-level category: parse, syntax, semantic or runtime."""
        if self is ErrorType.TYPE:
            return ErrorType.SEMANTIC.value
        if self is ErrorType.CONVERSION:
            return ErrorType.RUNTIME.value
        return self.value


class SemanticValue(ABC):
    """Base class for all values."""

    type_name = "value"
    description = "a value"

    # Values that commute with plain numbers under multiplication
    scalar_commutative = False

    def get_type(self) -> str:
        return self.type_name

    def is_numeric(self) -> bool:
        return False

    def get_numeric_value(self) -> float:
        return math.nan

    def kind_label(self) -> str:
        """Short name of the operand kind used in error messages."""
        return self.type_name

    def add(self, other: "SemanticValue") -> "SemanticValue":
        return self._binary("add", other)

    def subtract(self, other: "SemanticValue") -> "SemanticValue":
        return self._binary("subtract", other)

    def multiply(self, other: "SemanticValue") -> "SemanticValue":
        return self._binary("multiply", other)

    def divide(self, other: "SemanticValue") -> "SemanticValue":
        return self._binary("divide", other)

    def power(self, exponent: "SemanticValue") -> "SemanticValue":
        return self._binary("power", exponent)

    def negate(self) -> "SemanticValue":
        return self.multiply(NumberValue(-1))

    def _binary(self, operation: str, other: "SemanticValue") -> "SemanticValue":
        if isinstance(other, ErrorValue):
            return other
        if isinstance(other, SymbolicValue):
            return SymbolicValue.combine(self, operation, other)
        if isinstance(other, ListValue):
            return other.broadcast(operation, self, scalar_on_left=True)

        handler = getattr(self, f"_{operation}")
        try:
            result = handler(other)
        except ZeroDivisionError:
            return ErrorValue.runtime_error("Division by zero")
        except OverflowError:
            return ErrorValue.runtime_error("Result is too large")
        except ValueError as e:
            return ErrorValue.runtime_error(f"Math domain error: {e}")
        if result is NotImplemented:
            return self.incompatible(operation, other)
        return result

    def incompatible(self, operation: str, other: "SemanticValue") -> "ErrorValue":
        left = self.kind_label()
        right = other.kind_label()
        if operation == "power":
            message = f"Cannot raise {left} to the power of {right}"
        else:
            message = f"Cannot {operation} {left} and {right}"
        return ErrorValue.type_error(message)

    def _add(self, other):
        return NotImplemented

    def _subtract(self, other):
        return NotImplemented

    def _multiply(self, other):
        return NotImplemented

    def _divide(self, other):
        return NotImplemented

    def _power(self, other):
        return NotImplemented

    @abstractmethod
    def equals(self, other: "SemanticValue", tolerance: float = 1e-10) -> bool:
        pass

    @abstractmethod
    def to_string(self, options: Optional[DisplayOptions] = None) -> str:
        pass

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_string()!r})"


def approx_equal(a: float, b: float, tolerance: float) -> bool:
    return abs(a - b) <= tolerance * max(1.0, abs(a), abs(b))


def _unless_type_error(result: SemanticValue):
    """Hand a type mismatch back to the caller so the message names its operation."""
    if isinstance(result, ErrorValue) and result.error_type == ErrorType.TYPE:
        return NotImplemented
    return result


# --- Numbers and percentages ---


class NumberValue(SemanticValue):
    type_name = "number"
    description = "a number"

    def __init__(self, value: float):
        self.value = float(value)

    def is_numeric(self) -> bool:
        return True

    def get_numeric_value(self) -> float:
        return self.value

    def _add(self, other):
        if isinstance(other, NumberValue):
            return NumberValue(self.value + other.value)
        if isinstance(other, PercentageValue):
            return NumberValue(self.value * (1 + other.decimal))
        if isinstance(other, (CurrencyValue, UnitValue)):
            return _unless_type_error(other.add(self))
        return NotImplemented

    def _subtract(self, other):
        if isinstance(other, NumberValue):
            return NumberValue(self.value - other.value)
        if isinstance(other, PercentageValue):
            return NumberValue(self.value * (1 - other.decimal))
        if isinstance(other, (CurrencyValue, UnitValue)):
            return _unless_type_error(other.negate().add(self))
        return NotImplemented

    def _multiply(self, other):
        if isinstance(other, NumberValue):
            return NumberValue(self.value * other.value)
        if isinstance(other, PercentageValue):
            return NumberValue(self.value * other.decimal)
        if other.scalar_commutative:
            return other.multiply(self)
        return NotImplemented

    def _divide(self, other):
        if isinstance(other, NumberValue):
            return NumberValue(self.value / other.value)
        if isinstance(other, PercentageValue):
            return NumberValue(self.value / other.decimal)
        if isinstance(other, UnitValue):
            return UnitValue(self.value / other.value, other.unit.power(-1))
        return NotImplemented

    def _power(self, other):
        if not isinstance(other, NumberValue):
            return NotImplemented
        if self.value == 0 and other.value < 0:
            raise ZeroDivisionError
        if self.value < 0 and not other.value.is_integer():
            return ErrorValue.runtime_error("Result is not a real number")
        return NumberValue(math.pow(self.value, other.value))

    def equals(self, other, tolerance=1e-10):
        return isinstance(other, NumberValue) and approx_equal(self.value, other.value, tolerance)

    def to_string(self, options=None):
        return format_number(self.value, options)


class PercentageValue(SemanticValue):
    """A percentage; ``decimal`` is always ``display / 100``."""

    type_name = "percentage"
    description = "a percentage"

    def __init__(self, display: float):
        self.display = float(display)

    @property
    def decimal(self) -> float:
        return self.display / 100

    @classmethod
    def from_decimal(cls, decimal: float) -> "PercentageValue":
        return cls(decimal * 100)

    @classmethod
    def what_percent_of(cls, part: SemanticValue, whole: SemanticValue) -> SemanticValue:
        ratio = part.divide(whole)
        if isinstance(ratio, ErrorValue):
            return ratio
        if not isinstance(ratio, NumberValue):
            return ErrorValue.type_error(
                f"Cannot express {part.kind_label()} of {whole.kind_label()} as a percentage"
            )
        return cls.from_decimal(ratio.value)

    def is_numeric(self) -> bool:
        return True

    def get_numeric_value(self) -> float:
        return self.decimal

    def of(self, base: SemanticValue) -> SemanticValue:
        return base.multiply(NumberValue(self.decimal))

    def on(self, base: SemanticValue) -> SemanticValue:
        return base.add(self.of(base))

    def off(self, base: SemanticValue) -> SemanticValue:
        return base.subtract(self.of(base))

    def _add(self, other):
        if isinstance(other, PercentageValue):
            return PercentageValue(self.display + other.display)
        return NotImplemented

    def _subtract(self, other):
        if isinstance(other, PercentageValue):
            return PercentageValue(self.display - other.display)
        return NotImplemented

    def _multiply(self, other):
        if isinstance(other, NumberValue):
            return PercentageValue(self.display * other.value)
        if isinstance(other, PercentageValue):
            return PercentageValue.from_decimal(self.decimal * other.decimal)
        if other.scalar_commutative:
            return self.of(other)
        return NotImplemented

    def _divide(self, other):
        if isinstance(other, NumberValue):
            return PercentageValue(self.display / other.value)
        if isinstance(other, PercentageValue):
            return NumberValue(self.decimal / other.decimal)
        return NotImplemented

    def _power(self, other):
        if isinstance(other, NumberValue):
            return PercentageValue.from_decimal(math.pow(self.decimal, other.value))
        return NotImplemented

    def equals(self, other, tolerance=1e-10):
        return isinstance(other, PercentageValue) and approx_equal(
            self.display, other.display, tolerance
        )

    def to_string(self, options=None):
        return f"{format_number(self.display, options)}%"


# --- Currency ---


@dataclass(frozen=True)
class CurrencyInfo:
    symbol: str
    code: str
    decimals: int
    prefix: bool


CURRENCIES: Dict[str, CurrencyInfo] = {
    info.symbol: info
    for info in (
        CurrencyInfo("$", "USD", 2, True),
        CurrencyInfo("€", "EUR", 2, True),
        CurrencyInfo("£", "GBP", 2, True),
        CurrencyInfo("¥", "JPY", 0, True),
        CurrencyInfo("₹", "INR", 2, True),
        CurrencyInfo("₿", "BTC", 8, True),
        CurrencyInfo("USD", "USD", 2, False),
        CurrencyInfo("EUR", "EUR", 2, False),
        CurrencyInfo("GBP", "GBP", 2, False),
        CurrencyInfo("JPY", "JPY", 0, False),
        CurrencyInfo("INR", "INR", 2, False),
        CurrencyInfo("CHF", "CHF", 2, False),
        CurrencyInfo("CAD", "CAD", 2, False),
        CurrencyInfo("AUD", "AUD", 2, False),
        CurrencyInfo("CNY", "CNY", 2, False),
        CurrencyInfo("THB", "THB", 2, False),
        CurrencyInfo("BTC", "BTC", 8, False),
    )
}

CURRENCY_SYMBOLS = "$€£¥₹₿"

CURRENCY_CODES = frozenset(key for key, info in CURRENCIES.items() if not info.prefix)

# Spoken names accepted as conversion targets
CURRENCY_NAMES = {
    "dollar": "$",
    "dollars": "$",
    "euro": "€",
    "euros": "€",
    "yen": "¥",
    "rupee": "₹",
    "rupees": "₹",
    "franc": "CHF",
    "francs": "CHF",
    "yuan": "CNY",
    "baht": "THB",
    "bitcoin": "₿",
}


def resolve_currency(text: str) -> Optional[str]:
    """Currency key for a symbol, code or spoken name, if known."""
    text = text.strip()
    if text in CURRENCIES:
        return text
    if text.upper() in CURRENCY_CODES:
        return text.upper()
    return CURRENCY_NAMES.get(text.lower())


class CurrencyValue(SemanticValue):
    type_name = "currency"
    description = "a currency value"
    scalar_commutative = True

    def __init__(self, symbol: str, amount: float):
        if symbol not in CURRENCIES:
            raise ValueError(f"Unknown currency: {symbol}")
        self.symbol = symbol
        self.amount = float(amount)

    @property
    def info(self) -> CurrencyInfo:
        return CURRENCIES[self.symbol]

    @property
    def code(self) -> str:
        return self.info.code

    def kind_label(self) -> str:
        return self.symbol

    def is_numeric(self) -> bool:
        return True

    def get_numeric_value(self) -> float:
        return self.amount

    def _with(self, amount: float) -> "CurrencyValue":
        return CurrencyValue(self.symbol, amount)

    def _mismatch(self, operation: str, other: "CurrencyValue") -> "ErrorValue":
        return ErrorValue.type_error(
            f"Cannot {operation} {self.symbol} and {other.symbol}: currencies differ"
        )

    def _add(self, other):
        if isinstance(other, CurrencyValue):
            if other.symbol != self.symbol:
                return self._mismatch("add", other)
            return self._with(self.amount + other.amount)
        if isinstance(other, NumberValue):
            return self._with(self.amount + other.value)
        if isinstance(other, PercentageValue):
            return other.on(self)
        return NotImplemented

    def _subtract(self, other):
        if isinstance(other, CurrencyValue):
            if other.symbol != self.symbol:
                return self._mismatch("subtract", other)
            return self._with(self.amount - other.amount)
        if isinstance(other, NumberValue):
            return self._with(self.amount - other.value)
        if isinstance(other, PercentageValue):
            return other.off(self)
        return NotImplemented

    def _multiply(self, other):
        if isinstance(other, NumberValue):
            return self._with(self.amount * other.value)
        if isinstance(other, PercentageValue):
            return self._with(self.amount * other.decimal)
        if isinstance(other, CurrencyValue):
            return ErrorValue.type_error("Cannot multiply two currency values")
        return NotImplemented

    def _divide(self, other):
        if isinstance(other, NumberValue):
            return self._with(self.amount / other.value)
        if isinstance(other, PercentageValue):
            return self._with(self.amount / other.decimal)
        if isinstance(other, CurrencyValue):
            if other.symbol != self.symbol:
                return self._mismatch("divide", other)
            return NumberValue(self.amount / other.amount)
        return NotImplemented

    def equals(self, other, tolerance=1e-10):
        return (
            isinstance(other, CurrencyValue)
            and other.symbol == self.symbol
            and approx_equal(self.amount, other.amount, tolerance)
        )

    def _format_amount(self, amount: float, options: Optional[DisplayOptions]) -> str:
        if not math.isfinite(amount):
            return format_number(amount)
        rounded = round(amount)
        if abs(amount - rounded) < 1e-9 or self.info.decimals == 0:
            return str(int(rounded))
        precision = options.precision if options is not None else self.info.decimals
        text = f"{amount:.{precision}f}"
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text

    def to_string(self, options=None):
        sign = "-" if self.amount < 0 else ""
        amount = self._format_amount(abs(self.amount), options)
        if self.info.prefix:
            return f"{sign}{self.symbol}{amount}"
        return f"{sign}{amount} {self.symbol}"


# --- Unit quantities ---


class UnitValue(SemanticValue):
    """A magnitude with a composite unit."""

    type_name = "unit"
    description = "a unit value"
    scalar_commutative = True

    def __init__(self, value: float, unit: CompositeUnit):
        self.value = float(value)
        self.unit = unit

    @classmethod
    def from_symbol(cls, value: float, symbol: str) -> "UnitValue":
        return cls(value, default_registry().parse(symbol))

    def kind_label(self) -> str:
        return self.unit.dimension().describe()

    def is_numeric(self) -> bool:
        return True

    def get_numeric_value(self) -> float:
        return self.value

    def to_base_value(self) -> float:
        return self.unit.to_base(self.value)

    def convert_to(self, target: CompositeUnit) -> SemanticValue:
        try:
            return UnitValue(convert_value(self.value, self.unit, target), target)
        except UnitError as e:
            return ErrorValue.conversion_error(e.message)

    def _is_time(self) -> bool:
        return self.unit.dimension() == default_registry().get("s").dimension

    def _seconds_in_own_unit(self, seconds: float) -> float:
        return convert_value(seconds, CompositeUnit.of(default_registry().get("s")), self.unit)

    def _add(self, other):
        if isinstance(other, UnitValue):
            if other.unit.dimension() != self.unit.dimension():
                return NotImplemented
            return UnitValue(self.value + convert_value(other.value, other.unit, self.unit), self.unit)
        if isinstance(other, NumberValue):
            if other.value == 0:
                return self
            return NotImplemented
        if isinstance(other, PercentageValue):
            return other.on(self)
        if other.get_type() == "duration" and self._is_time():
            return UnitValue(self.value + self._seconds_in_own_unit(other.get_numeric_value()), self.unit)
        return NotImplemented

    def _subtract(self, other):
        if isinstance(other, UnitValue):
            if other.unit.dimension() != self.unit.dimension():
                return NotImplemented
            return UnitValue(self.value - convert_value(other.value, other.unit, self.unit), self.unit)
        if isinstance(other, NumberValue):
            if other.value == 0:
                return self
            return NotImplemented
        if isinstance(other, PercentageValue):
            return other.off(self)
        if other.get_type() == "duration" and self._is_time():
            return UnitValue(self.value - self._seconds_in_own_unit(other.get_numeric_value()), self.unit)
        return NotImplemented

    def _multiply(self, other):
        if isinstance(other, NumberValue):
            return UnitValue(self.value * other.value, self.unit)
        if isinstance(other, PercentageValue):
            return UnitValue(self.value * other.decimal, self.unit)
        if isinstance(other, UnitValue):
            value, unit = self._align(other)
            return _normalize(self.value * value, self.unit.multiply(unit))
        return NotImplemented

    def _divide(self, other):
        if isinstance(other, NumberValue):
            return UnitValue(self.value / other.value, self.unit)
        if isinstance(other, PercentageValue):
            return UnitValue(self.value / other.decimal, self.unit)
        if isinstance(other, UnitValue):
            value, unit = self._align(other)
            return _normalize(self.value / value, self.unit.divide(unit))
        return NotImplemented

    def _power(self, other):
        if not isinstance(other, NumberValue):
            return NotImplemented
        exponent = other.value
        powers = [component.power * exponent for component in self.unit.components]
        if not all(float(p).is_integer() for p in powers):
            return ErrorValue.type_error(
                f"Cannot raise {self.unit.to_string()} to a fractional power"
            )
        unit = CompositeUnit(
            tuple(
                UnitComponent(component.unit, int(p))
                for component, p in zip(self.unit.components, powers)
            )
        )
        return _normalize(math.pow(self.value, exponent), unit)

    def _align(self, other: "UnitValue") -> Tuple[float, CompositeUnit]:
        """Rescale ``other`` onto our units wherever the dimensions coincide."""
        value = other.value
        components = []
        for component in other.unit.components:
            match = None
            for own in self.unit.components:
                if (
                    own.unit.dimension == component.unit.dimension
                    and own.unit.symbol != component.unit.symbol
                    and not own.unit.has_offset
                    and not component.unit.has_offset
                ):
                    match = own.unit
                    break
            if match is None:
                components.append(component)
                continue
            ratio = component.unit.base_multiplier / match.base_multiplier
            value *= ratio ** component.power
            components.append(UnitComponent(match, component.power))
        return value, CompositeUnit(tuple(components))

    def equals(self, other, tolerance=1e-10):
        if not isinstance(other, UnitValue):
            return False
        if other.unit.dimension() != self.unit.dimension():
            return False
        return approx_equal(self.to_base_value(), other.to_base_value(), tolerance)

    def to_string(self, options=None):
        number = format_number(self.value, options)
        unit_text = self.unit.to_string()
        if not unit_text:
            return number
        return f"{number} {unit_label(self.value, unit_text)}"


def _normalize(value: float, unit: CompositeUnit) -> SemanticValue:
    """Collapse dimensionless results and show derived units by symbol."""
    if unit.is_empty():
        return NumberValue(value)
    if unit.is_dimensionless():
        return NumberValue(value * unit.base_factor())
    if len(unit.components) > 1:
        derived = default_registry().derived_unit_for(unit.dimension())
        if derived is not None:
            return UnitValue(unit.to_base(value) / derived.base_multiplier, CompositeUnit.of(derived))
    return UnitValue(value, unit)


# --- Lists ---


class ListValue(SemanticValue):
    """Ordered values. Items are never lists; flattening sets ``nested``."""

    type_name = "list"
    description = "a list"

    def __init__(self, items: Sequence[SemanticValue], nested: bool = False):
        flat = []
        for item in items:
            if isinstance(item, ListValue):
                flat.extend(item.items)
                nested = True
            else:
                flat.append(item)
        self.items: Tuple[SemanticValue, ...] = tuple(flat)
        self.nested = nested

    @classmethod
    def create(cls, items: Sequence[SemanticValue]) -> SemanticValue:
        """Build a list, rejecting errors and items of clashing dimensions."""
        for item in items:
            if isinstance(item, ErrorValue):
                return item
        value = cls(items)
        dimensions = {
            item.unit.dimension() for item in value.items if isinstance(item, UnitValue)
        }
        if len(dimensions) > 1:
            return ErrorValue.type_error("Cannot create list: incompatible dimensions")
        if dimensions and any(isinstance(item, NumberValue) for item in value.items):
            return ErrorValue.type_error("Cannot create list: incompatible dimensions")
        return value

    def map(self, func: Callable[[SemanticValue], SemanticValue]) -> SemanticValue:
        results = []
        for item in self.items:
            result = func(item)
            if isinstance(result, ErrorValue):
                return result
            results.append(result)
        return ListValue(results, self.nested)

    def broadcast(
        self, operation: str, scalar: SemanticValue, scalar_on_left: bool = False
    ) -> SemanticValue:
        def apply(item: SemanticValue) -> SemanticValue:
            if scalar_on_left:
                return getattr(scalar, operation)(item)
            return getattr(item, operation)(scalar)

        return self.map(apply)

    def _binary(self, operation, other):
        if isinstance(other, ErrorValue):
            return other
        if isinstance(other, ListValue):
            if len(other.items) != len(self.items):
                return ErrorValue.runtime_error(
                    f"Cannot work with lists of different lengths "
                    f"({len(self.items)} vs {len(other.items)})"
                )
            results = []
            for left, right in zip(self.items, other.items):
                result = getattr(left, operation)(right)
                if isinstance(result, ErrorValue):
                    return result
                results.append(result)
            return ListValue(results)
        return self.broadcast(operation, other)

    def equals(self, other, tolerance=1e-10):
        return (
            isinstance(other, ListValue)
            and len(other.items) == len(self.items)
            and all(a.equals(b, tolerance) for a, b in zip(self.items, other.items))
        )

    def to_string(self, options=None):
        if not self.items:
            return "()"
        return ", ".join(item.to_string(options) for item in self.items)


# --- Symbolic and error values ---


class SymbolicValue(SemanticValue):
    """Stand-in for an expression whose inputs are not known yet."""

    type_name = "symbolic"
    description = "a symbolic value"

    def __init__(self, expression: str):
        self.expression = expression

    @classmethod
    def combine(cls, left: SemanticValue, operation: str, right: SemanticValue) -> "SymbolicValue":
        return cls(f"{left.to_string()} {OPERATION_SYMBOLS[operation]} {right.to_string()}")

    def _binary(self, operation, other):
        if isinstance(other, ErrorValue):
            return other
        return SymbolicValue.combine(self, operation, other)

    def equals(self, other, tolerance=1e-10):
        return isinstance(other, SymbolicValue) and other.expression == self.expression

    def to_string(self, options=None):
        return self.expression


class ErrorValue(SemanticValue):
    type_name = "error"
    description = "an error"

    def __init__(self, error_type: ErrorType, message: str):
        self.error_type = ErrorType(error_type)
        self.message = message

    @classmethod
    def parse_error(cls, message: str) -> "ErrorValue":
        return cls(ErrorType.PARSE, message)

    @classmethod
    def syntax_error(cls, message: str) -> "ErrorValue":
        return cls(ErrorType.SYNTAX, message)

    @classmethod
    def semantic_error(cls, message: str) -> "ErrorValue":
        return cls(ErrorType.SEMANTIC, message)

    @classmethod
    def runtime_error(cls, message: str) -> "ErrorValue":
        return cls(ErrorType.RUNTIME, message)

    @classmethod
    def type_error(cls, message: str) -> "ErrorValue":
        return cls(ErrorType.TYPE, message)

    @classmethod
    def conversion_error(cls, message: str) -> "ErrorValue":
        return cls(ErrorType.CONVERSION, message)

    def _binary(self, operation, other):
        return self

    def equals(self, other, tolerance=1e-10):
        return (
            isinstance(other, ErrorValue)
            and other.error_type == self.error_type
            and other.message == self.message
        )

    def to_string(self, options=None):
        return self.message
