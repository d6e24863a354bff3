"""Tests for dates, times, durations and zones."""

import datetime

import pytest

from linecalc.temporal import (
    UTC,
    DateValue,
    DurationValue,
    TimeValue,
    add_business_days,
    add_months,
    match_date_literal,
    match_time_literal,
    parse_time_of_day,
    parse_zone,
)
from linecalc.config import DisplayOptions
from linecalc.values import ErrorValue, UnitValue


class TestParsing:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("9am", datetime.time(9, 0)),
            ("9:30 pm", datetime.time(21, 30)),
            ("13:45", datetime.time(13, 45)),
            ("13:45:10", datetime.time(13, 45, 10)),
        ],
    )
    def test_time_of_day(self, text, expected):
        assert parse_time_of_day(text) == expected

    def test_invalid_time(self):
        assert parse_time_of_day("25:00") is None

    def test_iso_date(self):
        value, end = match_date_literal("2024-03-15 + 1 day")
        assert value.to_string() == "2024-03-15"
        assert end == len("2024-03-15")

    def test_iso_datetime_with_zone(self):
        value, _ = match_date_literal("2024-03-15T10:30 UTC")
        assert value.has_time
        assert value.to_string() == "2024-03-15 10:30 UTC"

    def test_spelled_dates(self):
        assert match_date_literal("15 March 2024")[0].to_string() == "2024-03-15"
        assert match_date_literal("Mar 15, 2024")[0].to_string() == "2024-03-15"

    def test_numeric_date_order(self):
        assert match_date_literal("03/04/2024")[0].to_string() == "2024-03-04"
        dmy = DisplayOptions(date_order="dmy")
        assert match_date_literal("03/04/2024", 0, dmy)[0].to_string() == "2024-04-03"

    def test_impossible_date(self):
        assert match_date_literal("2024-02-30") is None

    def test_time_literal(self):
        value, _ = match_time_literal("9:15am")
        assert value.to_string() == "09:15"

    def test_zones(self):
        assert parse_zone("UTC") is UTC
        assert parse_zone("+05:30").offset_minutes == 330
        assert parse_zone("+15:00") is None
        assert parse_zone("Mars") is None


class TestCalendar:
    def test_month_end_clamps(self):
        moment = datetime.datetime(2024, 1, 31)
        assert add_months(moment, 1) == datetime.datetime(2024, 2, 29)
        assert add_months(moment, 13) == datetime.datetime(2025, 2, 28)

    def test_business_days_skip_weekend(self):
        friday = datetime.datetime(2024, 3, 15)
        assert add_business_days(friday, 1) == datetime.datetime(2024, 3, 18)
        assert add_business_days(friday, -5) == datetime.datetime(2024, 3, 8)


class TestDateArithmetic:
    def test_add_month(self):
        date = DateValue.from_date(2024, 1, 31)
        assert date.add(DurationValue({"month": 1})).to_string() == "2024-02-29"

    def test_add_unit_duration(self):
        date = DateValue.from_date(2024, 1, 1)
        assert date.add(UnitValue.from_symbol(2, "week")).to_string() == "2024-01-15"

    def test_date_difference(self):
        later = DateValue.from_date(2024, 3, 1)
        earlier = DateValue.from_date(2024, 2, 1)
        assert later.subtract(earlier).to_string() == "29 days"

    def test_time_on_date_only_value(self):
        date = DateValue.from_date(2024, 1, 1)
        result = date.add(DurationValue({"hour": 3}))
        assert isinstance(result, ErrorValue)
        assert result.message == "Cannot add time to a date-only value"

    def test_fractional_months(self):
        date = DateValue.from_date(2024, 1, 1)
        assert isinstance(date.add(DurationValue({"month": 1.5})), ErrorValue)

    def test_zone_relabels_date_only(self):
        date = DateValue.from_date(2024, 1, 1)
        assert date.with_zone(UTC).to_string() == "2024-01-01"


class TestTimesAndDurations:
    def test_time_rolls_over_midnight(self):
        late = TimeValue(23 * 3600)
        assert late.add(DurationValue({"hour": 2})).to_string() == "01:00 (+1 day)"

    def test_time_difference(self):
        start = TimeValue(9 * 3600)
        end = TimeValue(17 * 3600 + 30 * 60)
        assert end.subtract(start).total_seconds == 8.5 * 3600

    def test_single_part_labels(self):
        assert DurationValue({"day": 2}).to_string() == "2 days"
        assert DurationValue({"day": 1}).to_string() == "1 day"
        assert DurationValue({"business_day": 3}).to_string() == "3 business days"

    def test_duration_to_unit(self):
        hours = DurationValue({"minute": 90}).to_unit(UnitValue.from_symbol(1, "h").unit)
        assert hours.value == pytest.approx(1.5)

    def test_unknown_part(self):
        with pytest.raises(ValueError):
            DurationValue({"fortnight": 1})


class TestDateLines:
    def test_month_arithmetic_line(self, calc):
        assert calc("2024-01-31 + 1 month =>").result == "2024-02-29"

    def test_date_minus_date_line(self, calc):
        assert calc("2024-03-01 - 2024-02-01 =>").result == "29 days"
