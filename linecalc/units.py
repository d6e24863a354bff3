"""
Units and dimensional analysis.

Unit definitions are derived from pint when the default registry is built:
pint supplies each unit's base multiplier, dimension vector and (for
temperatures) additive offset. Composite-unit algebra, SI prefix resolution
and display formatting are done here so the rest of the engine works with
plain floats and integer exponent vectors.
"""

import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pint import UnitRegistry as PintUnitRegistry

from .errors import UnitError

logger = logging.getLogger(__name__)

# --- Dimensions ---

DIMENSION_FIELDS = (
    "length",
    "mass",
    "time",
    "current",
    "temperature",
    "amount",
    "luminosity",
)


@dataclass(frozen=True)
class Dimension:
    """Integer exponents of the seven SI base quantities."""

    length: int = 0
    mass: int = 0
    time: int = 0
    current: int = 0
    temperature: int = 0
    amount: int = 0
    luminosity: int = 0

    def as_tuple(self) -> Tuple[int, ...]:
        return tuple(getattr(self, name) for name in DIMENSION_FIELDS)

    def multiply(self, other: "Dimension") -> "Dimension":
        return Dimension(*(a + b for a, b in zip(self.as_tuple(), other.as_tuple())))

    def divide(self, other: "Dimension") -> "Dimension":
        return Dimension(*(a - b for a, b in zip(self.as_tuple(), other.as_tuple())))

    def power(self, exponent: int) -> "Dimension":
        return Dimension(*(a * exponent for a in self.as_tuple()))

    def is_dimensionless(self) -> bool:
        return not any(self.as_tuple())

    def describe(self) -> str:
        """Human name of the quantity, or its base-unit formula."""
        name = QUANTITY_NAMES.get(self)
        if name:
            return name
        return format_dimension(self)


DIMENSIONLESS = Dimension()

QUANTITY_NAMES: Dict[Dimension, str] = {
    Dimension(length=1): "length",
    Dimension(mass=1): "mass",
    Dimension(time=1): "time",
    Dimension(current=1): "current",
    Dimension(temperature=1): "temperature",
    Dimension(amount=1): "amount of substance",
    Dimension(luminosity=1): "luminosity",
    Dimension(length=2): "area",
    Dimension(length=3): "volume",
    Dimension(length=1, time=-1): "speed",
    Dimension(length=1, time=-2): "acceleration",
    Dimension(time=-1): "frequency",
    Dimension(mass=1, length=1, time=-2): "force",
    Dimension(mass=1, length=-1, time=-2): "pressure",
    Dimension(mass=1, length=2, time=-2): "energy",
    Dimension(mass=1, length=2, time=-3): "power",
    Dimension(mass=1, length=2, time=-3, current=-1): "voltage",
    Dimension(mass=1, length=2, time=-3, current=-2): "resistance",
    Dimension(length=-2): "fuel economy",
}

_BASE_SYMBOLS = (
    ("mass", "kg"),
    ("length", "m"),
    ("time", "s"),
    ("current", "A"),
    ("temperature", "K"),
    ("amount", "mol"),
    ("luminosity", "cd"),
)


def format_dimension(dimension: Dimension) -> str:
    """Format a dimension as base units, e.g. ``kg*m/s^2``."""
    numerator = []
    denominator = []
    for name, symbol in _BASE_SYMBOLS:
        power = getattr(dimension, name)
        if power > 0:
            numerator.append(symbol if power == 1 else f"{symbol}^{power}")
        elif power < 0:
            denominator.append(symbol if power == -1 else f"{symbol}^{-power}")

    if not numerator and not denominator:
        return "1"
    if not denominator:
        return "*".join(numerator)
    if not numerator:
        return f"1/{'*'.join(denominator)}"
    return f"{'*'.join(numerator)}/{'*'.join(denominator)}"


# --- Unit definitions ---


@dataclass(frozen=True)
class UnitDefinition:
    """A single named unit: ``base = value * base_multiplier + base_offset``."""

    symbol: str
    name: str
    dimension: Dimension
    base_multiplier: float
    base_offset: float = 0.0
    category: str = ""

    @property
    def has_offset(self) -> bool:
        return self.base_offset != 0.0


@dataclass(frozen=True)
class SIPrefix:
    symbol: str
    name: str
    factor: float


# Longest symbols first so "da" wins over "d"
SI_PREFIXES: Tuple[SIPrefix, ...] = tuple(
    sorted(
        (
            SIPrefix("Y", "yotta", 1e24),
            SIPrefix("Z", "zetta", 1e21),
            SIPrefix("E", "exa", 1e18),
            SIPrefix("P", "peta", 1e15),
            SIPrefix("T", "tera", 1e12),
            SIPrefix("G", "giga", 1e9),
            SIPrefix("M", "mega", 1e6),
            SIPrefix("k", "kilo", 1e3),
            SIPrefix("h", "hecto", 1e2),
            SIPrefix("da", "deca", 1e1),
            SIPrefix("d", "deci", 1e-1),
            SIPrefix("c", "centi", 1e-2),
            SIPrefix("m", "milli", 1e-3),
            SIPrefix("u", "micro", 1e-6),
            SIPrefix("µ", "micro", 1e-6),
            SIPrefix("μ", "micro", 1e-6),
            SIPrefix("n", "nano", 1e-9),
            SIPrefix("p", "pico", 1e-12),
            SIPrefix("f", "femto", 1e-15),
            SIPrefix("a", "atto", 1e-18),
            SIPrefix("z", "zepto", 1e-21),
            SIPrefix("y", "yocto", 1e-24),
        ),
        key=lambda prefix: len(prefix.symbol),
        reverse=True,
    )
)

# Units shown by symbol when a product or quotient lands on their dimension
DERIVED_DISPLAY_SYMBOLS = ("Hz", "N", "Pa", "J", "W", "V", "Ω")


# --- Composite units ---


@dataclass(frozen=True)
class UnitComponent:
    unit: UnitDefinition
    power: int


def _simplify(components: Iterable[UnitComponent]) -> Tuple[UnitComponent, ...]:
    units: Dict[str, UnitDefinition] = {}
    powers: Dict[str, int] = {}
    for component in components:
        symbol = component.unit.symbol
        if symbol not in units:
            units[symbol] = component.unit
            powers[symbol] = 0
        powers[symbol] += component.power
    return tuple(
        UnitComponent(units[symbol], power)
        for symbol, power in powers.items()
        if power != 0
    )


@dataclass(frozen=True)
class CompositeUnit:
    """Product of units raised to integer powers, always kept simplified."""

    components: Tuple[UnitComponent, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "components", _simplify(self.components))

    @classmethod
    def of(cls, unit: UnitDefinition, power: int = 1) -> "CompositeUnit":
        return cls((UnitComponent(unit, power),))

    def multiply(self, other: "CompositeUnit") -> "CompositeUnit":
        return CompositeUnit(self.components + other.components)

    def divide(self, other: "CompositeUnit") -> "CompositeUnit":
        inverted = tuple(UnitComponent(c.unit, -c.power) for c in other.components)
        return CompositeUnit(self.components + inverted)

    def power(self, exponent: int) -> "CompositeUnit":
        return CompositeUnit(
            tuple(UnitComponent(c.unit, c.power * exponent) for c in self.components)
        )

    def dimension(self) -> Dimension:
        result = DIMENSIONLESS
        for component in self.components:
            result = result.multiply(component.unit.dimension.power(component.power))
        return result

    def is_empty(self) -> bool:
        return not self.components

    def is_dimensionless(self) -> bool:
        return self.dimension().is_dimensionless()

    def single(self) -> Optional[UnitDefinition]:
        """The unit itself when this is exactly one unit to the first power."""
        if len(self.components) == 1 and self.components[0].power == 1:
            return self.components[0].unit
        return None

    def base_factor(self) -> float:
        factor = 1.0
        for component in self.components:
            factor *= component.unit.base_multiplier ** component.power
        return factor

    def base_offset(self) -> float:
        # Offsets only make sense for a lone absolute-scale unit such as °C
        unit = self.single()
        return unit.base_offset if unit is not None else 0.0

    def to_base(self, value: float) -> float:
        return value * self.base_factor() + self.base_offset()

    def from_base(self, value: float) -> float:
        return (value - self.base_offset()) / self.base_factor()

    def to_string(self) -> str:
        numerator = []
        denominator = []
        for component in self.components:
            symbol = component.unit.symbol
            if component.power > 0:
                power = component.power
                numerator.append(symbol if power == 1 else f"{symbol}^{power}")
            else:
                power = -component.power
                denominator.append(symbol if power == 1 else f"{symbol}^{power}")

        if not denominator:
            return "*".join(numerator)
        num_text = "*".join(numerator) if numerator else "1"
        if len(denominator) == 1:
            return f"{num_text}/{denominator[0]}"
        return f"{num_text}/({'*'.join(denominator)})"

    def __str__(self) -> str:
        return self.to_string()


def simplify(unit: CompositeUnit) -> CompositeUnit:
    return CompositeUnit(unit.components)


def convert_value(value: float, from_unit: CompositeUnit, to_unit: CompositeUnit) -> float:
    """Convert ``value`` between units of the same dimension."""
    if from_unit.dimension() != to_unit.dimension():
        raise UnitError(
            f"Cannot convert {from_unit.to_string() or 'number'} to "
            f"{to_unit.to_string() or 'number'}: incompatible dimensions"
        )
    return to_unit.from_base(from_unit.to_base(value))


# --- Registry ---


class UnitRegistry:
    """Unit lookup by symbol, alias or SI-prefixed symbol."""

    def __init__(self):
        self._units: Dict[str, UnitDefinition] = {}
        self._aliases: Dict[str, str] = {}
        self._prefixed_cache: Dict[str, Optional[UnitDefinition]] = {}

    def register(self, definition: UnitDefinition, aliases: Sequence[str] = ()) -> None:
        self._units[definition.symbol] = definition
        for alias in aliases:
            self._aliases[alias] = definition.symbol
        self._prefixed_cache.clear()

    def symbols(self) -> List[str]:
        return sorted(self._units)

    def resolve_direct(self, symbol: str) -> Optional[UnitDefinition]:
        """Registered symbol or alias, without prefix handling."""
        if symbol in self._units:
            return self._units[symbol]
        target = self._aliases.get(symbol)
        if target is None and len(symbol) > 3:
            target = self._aliases.get(symbol.lower())
        if target is None:
            return None
        return self._units[target]

    def get(self, symbol: str) -> Optional[UnitDefinition]:
        direct = self.resolve_direct(symbol)
        if direct is not None:
            return direct
        if symbol not in self._prefixed_cache:
            self._prefixed_cache[symbol] = self._resolve_prefixed(symbol)
        return self._prefixed_cache[symbol]

    def __contains__(self, symbol: str) -> bool:
        return self.get(symbol) is not None

    def is_double_prefixed(self, symbol: str) -> bool:
        """True when ``symbol`` is itself a prefix applied to a known unit."""
        if len(symbol) <= 1:
            return False
        for prefix in SI_PREFIXES:
            if not symbol.startswith(prefix.symbol):
                continue
            remainder = symbol[len(prefix.symbol):]
            if remainder and self.resolve_direct(remainder) is not None:
                return True
        return False

    def _resolve_prefixed(self, symbol: str) -> Optional[UnitDefinition]:
        for prefix in SI_PREFIXES:
            if not symbol.startswith(prefix.symbol):
                continue
            base_symbol = symbol[len(prefix.symbol):]
            if not base_symbol:
                continue
            base = self.resolve_direct(base_symbol)
            if base is None or base.has_offset:
                continue
            if self.is_double_prefixed(base_symbol):
                return None
            return UnitDefinition(
                symbol=prefix.symbol + base.symbol,
                name=prefix.name + base.name,
                dimension=base.dimension,
                base_multiplier=prefix.factor * base.base_multiplier,
                category=base.category,
            )
        return None

    def derived_unit_for(self, dimension: Dimension) -> Optional[UnitDefinition]:
        for symbol in DERIVED_DISPLAY_SYMBOLS:
            unit = self.resolve_direct(symbol)
            if unit is not None and unit.dimension == dimension:
                return unit
        return None

    def parse(self, text: str) -> CompositeUnit:
        """Parse a unit expression such as ``km/h``, ``kg*m/s^2`` or ``m²``."""
        text = text.strip()
        if not text:
            raise UnitError("Empty unit expression")
        direct = self.get(text)
        if direct is not None:
            return CompositeUnit.of(direct)
        return _UnitExpressionParser(text, self).parse()


_UNIT_TOKEN = re.compile(
    r"\s*(?:(?P<lparen>\()|(?P<rparen>\))|(?P<op>[*·/])"
    r"|(?P<power>\^\s*(?:\(\s*-?\d+\s*\)|-?\d+)|[²³])|(?P<symbol>[A-Za-z°µμΩ]+))"
)


class _UnitExpressionParser:
    """Recursive descent over ``term (op term)*`` unit expressions."""

    def __init__(self, text: str, registry: UnitRegistry):
        self._text = text
        self._registry = registry
        self._tokens = self._tokenize(text)
        self._index = 0

    def _tokenize(self, text: str) -> List[Tuple[str, str]]:
        tokens = []
        position = 0
        while position < len(text):
            match = _UNIT_TOKEN.match(text, position)
            if not match or match.end() == position:
                if text[position:].strip() == "":
                    break
                raise UnitError(f"Unknown unit: {text}")
            kind = match.lastgroup
            tokens.append((kind, match.group(kind)))
            position = match.end()
        return tokens

    def _peek(self) -> Optional[Tuple[str, str]]:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _advance(self) -> Tuple[str, str]:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def parse(self) -> CompositeUnit:
        unit = self._parse_product()
        if self._peek() is not None:
            raise UnitError(f"Unknown unit: {self._text}")
        if unit.is_empty():
            raise UnitError(f"Unknown unit: {self._text}")
        return unit

    def _parse_product(self) -> CompositeUnit:
        unit = self._parse_term()
        while True:
            token = self._peek()
            if token is None or token[0] != "op":
                return unit
            self._advance()
            right = self._parse_term()
            unit = unit.divide(right) if token[1] == "/" else unit.multiply(right)

    def _parse_term(self) -> CompositeUnit:
        token = self._peek()
        if token is None:
            raise UnitError(f"Incomplete unit expression: {self._text}")
        kind, value = self._advance()
        if kind == "lparen":
            unit = self._parse_product()
            closing = self._peek()
            if closing is None or closing[0] != "rparen":
                raise UnitError(f"Unbalanced parentheses in unit: {self._text}")
            self._advance()
        elif kind == "symbol":
            definition = self._registry.get(value)
            if definition is None:
                raise UnitError(f"Unknown unit: {value}")
            unit = CompositeUnit.of(definition)
        else:
            raise UnitError(f"Unexpected '{value}' in unit: {self._text}")

        power = self._peek()
        if power is not None and power[0] == "power":
            self._advance()
            unit = unit.power(_parse_exponent(power[1]))
        return unit


def _parse_exponent(text: str) -> int:
    if text == "²":
        return 2
    if text == "³":
        return 3
    return int(re.sub(r"[\^\s()]", "", text))


# --- Default registry, seeded from pint ---

# symbol, name, pint expression, category, aliases
UNIT_TABLE = (
    ("m", "meter", "meter", "length", ("meter", "meters", "metre", "metres")),
    ("kg", "kilogram", "kilogram", "mass", ("kilogram", "kilograms")),
    ("s", "second", "second", "time", ("second", "seconds", "sec", "secs")),
    ("mm", "millimeter", "millimeter", "length", ("millimeter", "millimeters")),
    ("cm", "centimeter", "centimeter", "length", ("centimeter", "centimeters")),
    ("km", "kilometer", "kilometer", "length", ("kilometer", "kilometers")),
    ("in", "inch", "inch", "length", ("inch", "inches")),
    ("ft", "foot", "foot", "length", ("foot", "feet")),
    ("yd", "yard", "yard", "length", ("yard", "yards")),
    ("mi", "mile", "mile", "length", ("mile", "miles")),
    ("min", "minute", "minute", "time", ("minute", "minutes", "mins")),
    ("h", "hour", "hour", "time", ("hour", "hours", "hr", "hrs")),
    ("day", "day", "day", "time", ("days",)),
    ("week", "week", "week", "time", ("weeks", "wk", "w")),
    ("month", "month", "calendar_month", "time", ("months", "mo")),
    ("year", "year", "calendar_year", "time", ("years", "yr", "y")),
    ("Hz", "hertz", "hertz", "frequency", ("hertz",)),
    ("rpm", "revolutions per minute", "1 / minute", "frequency", ("rev/min",)),
    ("g", "gram", "gram", "mass", ("gram", "grams")),
    ("lb", "pound", "pound", "mass", ("pound", "pounds", "lbs")),
    ("oz", "ounce", "ounce", "mass", ("ounce", "ounces")),
    ("mph", "miles per hour", "mile / hour", "speed", ("mi/h",)),
    ("kph", "kilometers per hour", "kilometer / hour", "speed", ("km/h",)),
    ("ft/s", "feet per second", "foot / second", "speed", ("ft/sec",)),
    ("°C", "Celsius", "degC", "temperature", ("celsius", "C", "degC")),
    ("°F", "Fahrenheit", "degF", "temperature", ("fahrenheit", "F", "degF")),
    ("K", "Kelvin", "kelvin", "temperature", ("kelvin",)),
    ("L", "liter", "liter", "volume", ("l", "liter", "liters", "litre", "litres")),
    ("gal", "gallon", "gallon", "volume", ("gallon", "gallons")),
    ("mol", "mole", "mole", "amount", ("mole", "moles")),
    ("cd", "candela", "candela", "luminosity", ("candela", "candelas")),
    ("A", "ampere", "ampere", "current", ("ampere", "amperes", "amp", "amps")),
    ("mA", "milliampere", "milliampere", "current", ("milliampere", "milliamperes")),
    ("V", "volt", "volt", "electrical", ("volt", "volts")),
    ("W", "watt", "watt", "power", ("watt", "watts")),
    ("J", "joule", "joule", "energy", ("joule", "joules")),
    ("Wh", "watt-hour", "watt * hour", "energy", ("watt-hour", "watt-hours")),
    ("N", "newton", "newton", "force", ("newton", "newtons")),
    ("Pa", "pascal", "pascal", "pressure", ("pascal", "pascals")),
    ("bar", "bar", "bar", "pressure", ("bars",)),
    ("psi", "pound per square inch", "psi", "pressure", ()),
    ("atm", "standard atmosphere", "atmosphere", "pressure", ("atmosphere", "atmospheres")),
    ("Ω", "ohm", "ohm", "electrical", ("ohm", "ohms")),
    ("mpg", "miles per gallon", "mile / gallon", "fuel economy", ()),
)

PINT_DIMENSIONS = {
    "[length]": "length",
    "[mass]": "mass",
    "[time]": "time",
    "[current]": "current",
    "[temperature]": "temperature",
    "[substance]": "amount",
    "[luminosity]": "luminosity",
}


@lru_cache(maxsize=None)
def pint_registry() -> PintUnitRegistry:
    ureg = PintUnitRegistry()
    # Fixed-length calendar units, matching duration arithmetic
    ureg.define("calendar_month = 30 * day")
    ureg.define("calendar_year = 365 * day")
    return ureg


def _dimension_from_pint(dimensionality) -> Dimension:
    exponents = {}
    for key, power in dimensionality.items():
        name = PINT_DIMENSIONS.get(key)
        if name is None:
            raise UnitError(f"Unsupported dimension from pint: {key}")
        exponents[name] = int(round(power))
    return Dimension(**exponents)


def definition_from_pint(
    symbol: str,
    name: str,
    expression: str,
    category: str,
    ureg: Optional[PintUnitRegistry] = None,
) -> UnitDefinition:
    """Build a definition whose constants come from pint."""
    ureg = ureg or pint_registry()
    if category == "temperature":
        zero = ureg.Quantity(0.0, expression)
        offset = float(zero.to("kelvin").magnitude)
        one = float(ureg.Quantity(1.0, expression).to("kelvin").magnitude)
        return UnitDefinition(
            symbol=symbol,
            name=name,
            dimension=_dimension_from_pint(zero.dimensionality),
            base_multiplier=one - offset,
            base_offset=0.0 if math.isclose(offset, 0.0, abs_tol=1e-12) else offset,
            category=category,
        )

    base = ureg.parse_expression(expression).to_base_units()
    return UnitDefinition(
        symbol=symbol,
        name=name,
        dimension=_dimension_from_pint(base.dimensionality),
        base_multiplier=float(base.magnitude),
        category=category,
    )


def build_default_registry() -> UnitRegistry:
    ureg = pint_registry()
    registry = UnitRegistry()
    for symbol, name, expression, category, aliases in UNIT_TABLE:
        registry.register(
            definition_from_pint(symbol, name, expression, category, ureg), aliases
        )
    logger.debug(f"Registered {len(UNIT_TABLE)} units from pint")
    return registry


@lru_cache(maxsize=None)
def default_registry() -> UnitRegistry:
    return build_default_registry()
