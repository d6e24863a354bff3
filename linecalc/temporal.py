"""
Dates, times of day and durations.

Calendar arithmetic follows the usual rules: adding months or years keeps the
day of month and clamps it to the end of shorter months, weeks and days are
fixed lengths, and business days skip Saturdays and Sundays. Time-of-day
values roll over midnight and remember how many days they moved.
"""

import calendar
import datetime
import logging
import re
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from .config import DEFAULT_DISPLAY_OPTIONS, DisplayOptions
from .formatting import format_number, unit_label
from .units import CompositeUnit, default_registry
from .values import (
    ErrorValue,
    NumberValue,
    PercentageValue,
    SemanticValue,
    UnitValue,
    approx_equal,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

# --- Durations ---

DURATION_PARTS = (
    "year",
    "month",
    "week",
    "day",
    "business_day",
    "hour",
    "minute",
    "second",
    "millisecond",
)

PART_SECONDS = {
    "year": 365 * SECONDS_PER_DAY,
    "month": 30 * SECONDS_PER_DAY,
    "week": 7 * SECONDS_PER_DAY,
    "day": SECONDS_PER_DAY,
    "business_day": SECONDS_PER_DAY,
    "hour": 3600,
    "minute": 60,
    "second": 1,
    "millisecond": 0.001,
}

PART_LABELS = {
    "year": "year",
    "month": "month",
    "week": "week",
    "day": "day",
    "business_day": "business day",
    "hour": "h",
    "minute": "min",
    "second": "s",
    "millisecond": "ms",
}

# Unit symbols that correspond to exactly one duration part
UNIT_PARTS = {
    "year": "year",
    "month": "month",
    "week": "week",
    "day": "day",
    "h": "hour",
    "min": "minute",
    "s": "second",
    "ms": "millisecond",
}


class DurationValue(SemanticValue):
    """A signed span of time kept as named parts."""

    type_name = "duration"
    description = "a duration"
    scalar_commutative = True

    def __init__(self, parts: Mapping[str, float]):
        unknown = set(parts) - set(DURATION_PARTS)
        if unknown:
            raise ValueError(f"Unknown duration parts: {sorted(unknown)}")
        self.parts: Dict[str, float] = {
            name: float(parts[name]) for name in DURATION_PARTS if parts.get(name)
        }

    @classmethod
    def from_seconds(cls, seconds: float) -> "DurationValue":
        return cls({"second": seconds})

    @classmethod
    def from_unit_value(cls, value: UnitValue) -> Optional["DurationValue"]:
        """Duration for a time-dimension unit value, or None."""
        seconds_unit = CompositeUnit.of(default_registry().get("s"))
        if value.unit.dimension() != seconds_unit.dimension():
            return None
        single = value.unit.single()
        if single is not None and single.symbol in UNIT_PARTS:
            return cls({UNIT_PARTS[single.symbol]: value.value})
        return cls.from_seconds(value.unit.to_base(value.value))

    @property
    def total_seconds(self) -> float:
        return sum(PART_SECONDS[name] * amount for name, amount in self.parts.items())

    def is_numeric(self) -> bool:
        return True

    def get_numeric_value(self) -> float:
        return self.total_seconds

    def scaled(self, factor: float) -> "DurationValue":
        return DurationValue({name: amount * factor for name, amount in self.parts.items()})

    def merged(self, other: "DurationValue", sign: int = 1) -> "DurationValue":
        parts = dict(self.parts)
        for name, amount in other.parts.items():
            parts[name] = parts.get(name, 0.0) + sign * amount
        return DurationValue(parts)

    def to_unit(self, target: CompositeUnit) -> SemanticValue:
        seconds = UnitValue(self.total_seconds, CompositeUnit.of(default_registry().get("s")))
        return seconds.convert_to(target)

    def _coerce(self, other: SemanticValue) -> Optional["DurationValue"]:
        if isinstance(other, DurationValue):
            return other
        if isinstance(other, UnitValue):
            return DurationValue.from_unit_value(other)
        return None

    def _add(self, other):
        if other.get_type() in ("date", "time"):
            return other.add(self)
        duration = self._coerce(other)
        if duration is None:
            return NotImplemented
        return self.merged(duration)

    def _subtract(self, other):
        duration = self._coerce(other)
        if duration is None:
            return NotImplemented
        return self.merged(duration, -1)

    def _multiply(self, other):
        if isinstance(other, NumberValue):
            return self.scaled(other.value)
        if isinstance(other, PercentageValue):
            return self.scaled(other.decimal)
        return NotImplemented

    def _divide(self, other):
        if isinstance(other, NumberValue):
            return self.scaled(1 / other.value)
        duration = self._coerce(other)
        if duration is not None:
            return NumberValue(self.total_seconds / duration.total_seconds)
        return NotImplemented

    def equals(self, other, tolerance=1e-10):
        return isinstance(other, DurationValue) and approx_equal(
            self.total_seconds, other.total_seconds, tolerance
        )

    def to_string(self, options=None):
        if not self.parts:
            return "0 s"
        if len(self.parts) == 1:
            name, amount = next(iter(self.parts.items()))
            label = PART_LABELS[name]
            if name == "business_day":
                return f"{format_number(amount, options)} business day{'' if abs(amount) == 1 else 's'}"
            return f"{format_number(amount, options)} {unit_label(amount, label)}"
        return _format_breakdown(self.total_seconds, options)


def _format_breakdown(seconds: float, options: Optional[DisplayOptions]) -> str:
    """Render seconds as ``1 day 2 h 3 min 4 s``."""
    if seconds == 0:
        return "0 s"
    sign = "-" if seconds < 0 else ""
    remaining = abs(seconds)
    days, remaining = divmod(remaining, SECONDS_PER_DAY)
    hours, remaining = divmod(remaining, 3600)
    minutes, remaining = divmod(remaining, 60)

    pieces = []
    if days:
        pieces.append(f"{int(days)} {unit_label(days, 'day')}")
    if hours:
        pieces.append(f"{int(hours)} h")
    if minutes:
        pieces.append(f"{int(minutes)} min")
    if remaining >= 1e-9:
        pieces.append(f"{format_number(round(remaining, 3), options)} s")
    return sign + " ".join(pieces)


# --- Zones ---


@dataclass(frozen=True)
class DateZone:
    """Display zone of a date; ``offset_minutes`` is None for local time."""

    label: str
    offset_minutes: Optional[int] = None

    def tzinfo(self) -> datetime.tzinfo:
        if self.offset_minutes is None:
            return datetime.datetime.now().astimezone().tzinfo
        if self.offset_minutes == 0:
            return datetime.timezone.utc
        return datetime.timezone(datetime.timedelta(minutes=self.offset_minutes))


UTC = DateZone("UTC", 0)
LOCAL = DateZone("local")

_OFFSET = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def parse_zone(text: str) -> Optional[DateZone]:
    text = text.strip()
    if text in ("UTC", "Z", "utc"):
        return UTC
    if text in ("GMT", "gmt"):
        return DateZone("GMT", 0)
    if text.lower() == "local":
        return LOCAL
    match = _OFFSET.match(text)
    if not match:
        return None
    sign, hours, minutes = match.groups()
    total = int(hours) * 60 + int(minutes)
    if total > 14 * 60:
        return None
    if sign == "-":
        total = -total
    return DateZone(f"{sign}{hours}:{minutes}", total)


# --- Dates ---


def add_months(moment: datetime.datetime, months: int) -> datetime.datetime:
    index = moment.month - 1 + months
    year = moment.year + index // 12
    month = index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def add_business_days(moment: datetime.datetime, days: int) -> datetime.datetime:
    step = 1 if days > 0 else -1
    remaining = abs(days)
    while remaining:
        moment += datetime.timedelta(days=step)
        if moment.weekday() < 5:
            remaining -= 1
    return moment


class DateValue(SemanticValue):
    type_name = "date"
    description = "a date"

    def __init__(self, moment: datetime.datetime, zone: DateZone = LOCAL, has_time: bool = False):
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=zone.tzinfo())
        self.moment = moment
        self.zone = zone
        self.has_time = has_time

    @classmethod
    def from_date(cls, year: int, month: int, day: int, zone: DateZone = LOCAL) -> "DateValue":
        return cls(datetime.datetime(year, month, day, tzinfo=zone.tzinfo()), zone)

    def local(self) -> datetime.datetime:
        return self.moment.astimezone(self.zone.tzinfo())

    def with_zone(self, zone: DateZone) -> "DateValue":
        if not self.has_time:
            return DateValue(self.local().replace(tzinfo=zone.tzinfo()), zone)
        return DateValue(self.moment.astimezone(zone.tzinfo()), zone, True)

    def shifted(self, duration: DurationValue, sign: int = 1) -> SemanticValue:
        parts = duration.parts
        moment = self.local()

        months = sign * (parts.get("year", 0.0) * 12 + parts.get("month", 0.0))
        if months:
            if not float(months).is_integer():
                return ErrorValue.runtime_error("Cannot add fractional months to a date")
            moment = add_months(moment, int(months))

        days = sign * (parts.get("week", 0.0) * 7 + parts.get("day", 0.0))
        if days:
            if not float(days).is_integer() and not self.has_time:
                return ErrorValue.semantic_error("Cannot add time to a date-only value")
            moment += datetime.timedelta(days=days)

        business = sign * parts.get("business_day", 0.0)
        if business:
            if not float(business).is_integer():
                return ErrorValue.runtime_error("Business days must be whole days")
            moment = add_business_days(moment, int(business))

        seconds = sign * sum(
            PART_SECONDS[name] * parts.get(name, 0.0)
            for name in ("hour", "minute", "second", "millisecond")
        )
        if seconds:
            if not self.has_time:
                return ErrorValue.semantic_error("Cannot add time to a date-only value")
            moment += datetime.timedelta(seconds=seconds)

        return DateValue(moment, self.zone, self.has_time)

    def _duration_of(self, other: SemanticValue) -> Optional[DurationValue]:
        if isinstance(other, DurationValue):
            return other
        if isinstance(other, UnitValue):
            return DurationValue.from_unit_value(other)
        return None

    def _add(self, other):
        duration = self._duration_of(other)
        if duration is None:
            return NotImplemented
        return self.shifted(duration)

    def _subtract(self, other):
        if isinstance(other, DateValue):
            if self.has_time and other.has_time:
                return DurationValue.from_seconds((self.moment - other.moment).total_seconds())
            days = (self.local().date() - other.local().date()).days
            return DurationValue({"day": days})
        duration = self._duration_of(other)
        if duration is None:
            return NotImplemented
        return self.shifted(duration, -1)

    def equals(self, other, tolerance=1e-10):
        if not isinstance(other, DateValue) or other.has_time != self.has_time:
            return False
        if self.has_time:
            return self.moment == other.moment
        return self.local().date() == other.local().date()

    def to_string(self, options=None):
        local = self.local()
        if not self.has_time:
            return local.strftime("%Y-%m-%d")
        return f"{local:%Y-%m-%d %H:%M} {self.zone.label}"


# --- Times of day ---


class TimeValue(SemanticValue):
    """A wall-clock time; ``day_offset`` counts midnight rollovers."""

    type_name = "time"
    description = "a time"

    def __init__(self, seconds: float, show_seconds: bool = False, day_offset: int = 0):
        days, remainder = divmod(seconds, SECONDS_PER_DAY)
        self.seconds = remainder
        self.day_offset = day_offset + int(days)
        self.show_seconds = show_seconds

    @property
    def absolute_seconds(self) -> float:
        return self.seconds + self.day_offset * SECONDS_PER_DAY

    def _add(self, other):
        duration = other if isinstance(other, DurationValue) else None
        if isinstance(other, UnitValue):
            duration = DurationValue.from_unit_value(other)
        if duration is None:
            return NotImplemented
        seconds = duration.total_seconds
        return TimeValue(
            self.seconds + seconds,
            self.show_seconds or seconds % 60 != 0,
            self.day_offset,
        )

    def _subtract(self, other):
        if isinstance(other, TimeValue):
            return DurationValue.from_seconds(self.absolute_seconds - other.absolute_seconds)
        duration = other if isinstance(other, DurationValue) else None
        if isinstance(other, UnitValue):
            duration = DurationValue.from_unit_value(other)
        if duration is None:
            return NotImplemented
        return self._add(duration.scaled(-1))

    def equals(self, other, tolerance=1e-10):
        return isinstance(other, TimeValue) and approx_equal(
            self.absolute_seconds, other.absolute_seconds, tolerance
        )

    def to_string(self, options=None):
        total = int(round(self.seconds))
        hours, remainder = divmod(total, 3600)
        minutes, seconds = divmod(remainder, 60)
        text = f"{hours:02d}:{minutes:02d}"
        if self.show_seconds:
            text += f":{seconds:02d}"
        if self.day_offset:
            days = abs(self.day_offset)
            sign = "+" if self.day_offset > 0 else "-"
            text += f" ({sign}{days} day{'s' if days != 1 else ''})"
        return text


def parse_time_of_day(time_str: str) -> Optional[datetime.time]:
    """Parse ``9am``, ``9:30 pm``, ``13:45`` or ``13:45:10`` into a time."""
    time_str = re.sub(r"[\s.]", "", time_str.lower())
    has_ampm = time_str.endswith(("am", "pm"))

    formats_to_try = []
    if ":" in time_str:
        if has_ampm:
            formats_to_try.append("%I:%M:%S%p" if time_str.count(":") == 2 else "%I:%M%p")
        else:
            formats_to_try.append("%H:%M:%S" if time_str.count(":") == 2 else "%H:%M")
    elif has_ampm:
        formats_to_try.append("%I%p")
    else:
        formats_to_try.append("%H")

    for format_str in formats_to_try:
        try:
            return datetime.datetime.strptime(time_str, format_str).time()
        except ValueError:
            continue
    return None


# --- Literal recognition ---

MONTHS = {
    name: index
    for index, names in enumerate(
        (
            ("january", "jan"),
            ("february", "feb"),
            ("march", "mar"),
            ("april", "apr"),
            ("may",),
            ("june", "jun"),
            ("july", "jul"),
            ("august", "aug"),
            ("september", "sep", "sept"),
            ("october", "oct"),
            ("november", "nov"),
            ("december", "dec"),
        ),
        start=1,
    )
    for name in names
}

WEEKDAYS = {
    name: index
    for index, names in enumerate(
        (
            ("monday", "mon"),
            ("tuesday", "tue", "tues"),
            ("wednesday", "wed"),
            ("thursday", "thu", "thurs"),
            ("friday", "fri"),
            ("saturday", "sat"),
            ("sunday", "sun"),
        )
    )
    for name in names
}

_ISO_DATE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})(?:[T ](\d{1,2}):(\d{2})(?::(\d{2}))?)?(?![\d:])"
)
_ZONE_SUFFIX = re.compile(r"(?:\s*(Z|UTC|GMT|local)\b|\s?([+-]\d{2}:\d{2}))")
_DAY_MONTH_YEAR = re.compile(r"(\d{1,2})\s+([A-Za-z]+)\.?,?\s+(\d{4})\b")
_MONTH_DAY_YEAR = re.compile(r"([A-Za-z]+)\.?\s+(\d{1,2}),?\s+(\d{4})\b")
_NUMERIC_DATE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})\b")
_RELATIVE_DATE = re.compile(r"(today|tomorrow|yesterday|now)\b", re.IGNORECASE)
_WEEKDAY_DATE = re.compile(r"(next|last)\s+([A-Za-z]+)\b", re.IGNORECASE)

_CLOCK_TIME = re.compile(r"\d{1,2}:\d{2}(?::\d{2})?(?:\s*[ap]\.?m\.?(?![A-Za-z]))?(?![\d:])", re.IGNORECASE)
_HOUR_TIME = re.compile(r"\d{1,2}\s*[ap]\.?m\.?(?![A-Za-z])", re.IGNORECASE)

RELATIVE_DAYS = {"today": 0, "tomorrow": 1, "yesterday": -1}


def today(zone: DateZone = LOCAL) -> DateValue:
    now = datetime.datetime.now(zone.tzinfo())
    return DateValue.from_date(now.year, now.month, now.day, zone)


def _safe_date(year: int, month: int, day: int, zone: DateZone = LOCAL) -> Optional[DateValue]:
    try:
        return DateValue.from_date(year, month, day, zone)
    except ValueError:
        return None


def _match_iso(text: str, pos: int) -> Optional[Tuple[DateValue, int]]:
    match = _ISO_DATE.match(text, pos)
    if not match:
        return None
    year, month, day, hour, minute, second = match.groups()
    end = match.end()
    zone = LOCAL
    zone_match = _ZONE_SUFFIX.match(text, end)
    if zone_match:
        parsed = parse_zone(zone_match.group(1) or zone_match.group(2))
        if parsed is not None:
            zone = parsed
            end = zone_match.end()
    try:
        moment = datetime.datetime(
            int(year),
            int(month),
            int(day),
            int(hour or 0),
            int(minute or 0),
            int(second or 0),
            tzinfo=zone.tzinfo(),
        )
    except ValueError:
        return None
    return DateValue(moment, zone, hour is not None), end


def match_date_literal(
    text: str, pos: int = 0, options: Optional[DisplayOptions] = None
) -> Optional[Tuple[DateValue, int]]:
    """Recognize a date literal starting at ``pos``; returns (value, end)."""
    options = options or DEFAULT_DISPLAY_OPTIONS

    iso = _match_iso(text, pos)
    if iso is not None:
        return iso

    match = _RELATIVE_DATE.match(text, pos)
    if match:
        word = match.group(1).lower()
        if word == "now":
            return DateValue(datetime.datetime.now().astimezone(), LOCAL, True), match.end()
        base = today()
        return base.shifted(DurationValue({"day": RELATIVE_DAYS[word]})), match.end()

    match = _WEEKDAY_DATE.match(text, pos)
    if match and match.group(2).lower() in WEEKDAYS:
        target = WEEKDAYS[match.group(2).lower()]
        base = today()
        current = base.local().weekday()
        if match.group(1).lower() == "next":
            delta = (target - current) % 7 or 7
        else:
            delta = -((current - target) % 7 or 7)
        return base.shifted(DurationValue({"day": delta})), match.end()

    match = _DAY_MONTH_YEAR.match(text, pos)
    if match and match.group(2).lower() in MONTHS:
        value = _safe_date(int(match.group(3)), MONTHS[match.group(2).lower()], int(match.group(1)))
        if value is not None:
            return value, match.end()

    match = _MONTH_DAY_YEAR.match(text, pos)
    if match and match.group(1).lower() in MONTHS:
        value = _safe_date(int(match.group(3)), MONTHS[match.group(1).lower()], int(match.group(2)))
        if value is not None:
            return value, match.end()

    match = _NUMERIC_DATE.match(text, pos)
    if match:
        first, second, year = (int(group) for group in match.groups())
        month, day = (second, first) if options.date_order == "dmy" else (first, second)
        value = _safe_date(year, month, day)
        if value is not None:
            return value, match.end()

    return None


def match_time_literal(text: str, pos: int = 0) -> Optional[Tuple[TimeValue, int]]:
    """Recognize ``HH:MM[:SS]`` or ``9am``-style literals starting at ``pos``."""
    for pattern in (_CLOCK_TIME, _HOUR_TIME):
        match = pattern.match(text, pos)
        if not match:
            continue
        parsed = parse_time_of_day(match.group(0))
        if parsed is None:
            return None
        seconds = parsed.hour * 3600 + parsed.minute * 60 + parsed.second
        return TimeValue(seconds, match.group(0).count(":") == 2), match.end()
    return None


# Words accepted after a number in a duration literal
DURATION_WORDS = {
    "business day": "business_day",
    "business days": "business_day",
    "workday": "business_day",
    "workdays": "business_day",
    "millisecond": "millisecond",
    "milliseconds": "millisecond",
}

_DURATION_WORD = re.compile(
    r"\s*(business\s+days?|workdays?|milliseconds?)\b", re.IGNORECASE
)


def match_duration_word(text: str, pos: int) -> Optional[Tuple[str, int]]:
    """Duration part named by a word that is not a registered unit."""
    match = _DURATION_WORD.match(text, pos)
    if not match:
        return None
    word = re.sub(r"\s+", " ", match.group(1).lower())
    return DURATION_WORDS[word], match.end()


def is_time_dimension(value: SemanticValue) -> bool:
    if not isinstance(value, UnitValue):
        return False
    return value.unit.dimension() == default_registry().get("s").dimension

