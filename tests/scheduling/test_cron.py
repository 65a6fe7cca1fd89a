"""Tests for six-field cron expression handling."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from dataspy.core.errors import ScheduleError
from dataspy.core.scheduling.cron import (
    DESCRIPTORS,
    build_trigger,
    next_fire_time,
    parse_duration,
    translate_day_of_week,
)

# Wednesday
NOW = datetime(2025, 1, 1, 0, 1, 30, tzinfo=UTC)


def next_after(expression: str, now: datetime = NOW) -> datetime:
    return next_fire_time(build_trigger(expression, "UTC"), now)


class TestParseDuration:
    @pytest.mark.parametrize(
        "text,seconds",
        [
            ("90s", 90.0),
            ("1h30m", 5400.0),
            ("1.5h", 5400.0),
            ("500ms", 0.5),
            (" 2m ", 120.0),
        ],
    )
    def test_valid(self, text, seconds):
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "5", "5x", "m5", "1h 30m"])
    def test_invalid(self, text):
        with pytest.raises(ScheduleError):
            parse_duration(text)


class TestTranslateDayOfWeek:
    """Sunday-first numbering becomes explicit day names."""

    @pytest.mark.parametrize(
        "field,expected",
        [
            ("*", "*"),
            ("?", "*"),
            ("0", "sun"),
            ("7", "sun"),
            ("1", "mon"),
            ("1-5", "mon,tue,wed,thu,fri"),
            ("MON-FRI", "mon,tue,wed,thu,fri"),
            ("5-7", "sun,fri,sat"),
            ("0,6", "sun,sat"),
            ("*/2", "sun,tue,thu,sat"),
            ("1/2", "mon,wed,fri"),
            ("0-7", "*"),
            ("7-7", "sun"),
            ("6-7", "sun,sat"),
            ("sun,sat", "sun,sat"),
        ],
    )
    def test_translation(self, field, expected):
        assert translate_day_of_week(field) == expected

    @pytest.mark.parametrize("field", ["8", "funday", "6-1", "*/0", "1/x"])
    def test_invalid(self, field):
        with pytest.raises(ScheduleError):
            translate_day_of_week(field, f"* * * * * {field}")


class TestBuildTrigger:
    def test_cron_trigger(self):
        assert isinstance(build_trigger("0 */5 * * * *"), CronTrigger)

    def test_every_five_minutes(self):
        assert next_after("0 */5 * * * *") == datetime(2025, 1, 1, 0, 5, 0, tzinfo=UTC)

    def test_every_second(self):
        assert next_after("* * * * * *") == NOW

    def test_question_mark_wildcard(self):
        assert next_after("0 0 12 ? * ?") == datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)

    def test_weekdays_use_sunday_first_numbering(self):
        saturday = datetime(2025, 1, 4, 0, 0, 0, tzinfo=UTC)
        assert next_after("30 0 9 * * 1-5", saturday) == datetime(2025, 1, 6, 9, 0, 30, tzinfo=UTC)

    @pytest.mark.parametrize("dow", ["0", "7", "7-7", "sun"])
    def test_sunday(self, dow):
        assert next_after(f"0 0 0 * * {dow}") == datetime(2025, 1, 5, 0, 0, 0, tzinfo=UTC)

    def test_day_of_month_or_day_of_week(self):
        assert isinstance(build_trigger("0 0 0 15 * 1", "UTC"), OrTrigger)
        # next Monday comes first
        assert next_after("0 0 0 15 * 1") == datetime(2025, 1, 6, 0, 0, 0, tzinfo=UTC)
        # the 15th (a Wednesday) before the following Monday
        tuesday = datetime(2025, 1, 14, 0, 0, 0, tzinfo=UTC)
        assert next_after("0 0 0 15 * 1", tuesday) == datetime(2025, 1, 15, 0, 0, 0, tzinfo=UTC)

    @pytest.mark.parametrize("dow", ["*", "?"])
    def test_wildcard_day_of_week_keeps_day_of_month(self, dow):
        assert isinstance(build_trigger(f"0 0 0 15 * {dow}", "UTC"), CronTrigger)
        assert next_after(f"0 0 0 15 * {dow}") == datetime(2025, 1, 15, 0, 0, 0, tzinfo=UTC)

    def test_stepped_day_fields_are_restricted(self):
        # every other day of the month, or Sundays
        assert isinstance(build_trigger("0 0 0 */2 * 0", "UTC"), OrTrigger)

    def test_fire_time_is_inclusive_of_now(self):
        on_the_minute = datetime(2025, 1, 1, 0, 5, 0, tzinfo=UTC)
        assert next_after("0 */5 * * * *", on_the_minute) == on_the_minute

    @pytest.mark.parametrize(
        "descriptor,expected",
        [
            ("@hourly", datetime(2025, 1, 1, 1, 0, 0, tzinfo=UTC)),
            ("@daily", datetime(2025, 1, 2, 0, 0, 0, tzinfo=UTC)),
            ("@midnight", datetime(2025, 1, 2, 0, 0, 0, tzinfo=UTC)),
            ("@weekly", datetime(2025, 1, 5, 0, 0, 0, tzinfo=UTC)),
            ("@monthly", datetime(2025, 2, 1, 0, 0, 0, tzinfo=UTC)),
            ("@yearly", datetime(2026, 1, 1, 0, 0, 0, tzinfo=UTC)),
            ("@annually", datetime(2026, 1, 1, 0, 0, 0, tzinfo=UTC)),
        ],
    )
    def test_descriptors(self, descriptor, expected):
        assert descriptor in DESCRIPTORS
        assert next_after(descriptor) == expected

    def test_every_interval(self):
        trigger = build_trigger("@every 1h30m", "UTC")
        assert isinstance(trigger, IntervalTrigger)
        assert trigger.interval == timedelta(hours=1, minutes=30)

    def test_every_interval_has_one_second_floor(self):
        assert build_trigger("@every 10ms", "UTC").interval == timedelta(seconds=1)

    @pytest.mark.parametrize(
        "expression",
        [
            "* * * * *",
            "* * * * * * *",
            "",
            "@fortnightly",
            "@every",
            "@every 5x",
            "61 * * * * *",
            "* * 25 * * *",
            "* * * 0 * *",
            "* * * * 13 *",
            "* * * * * 8",
            "bogus * * * * *",
        ],
    )
    def test_malformed(self, expression):
        with pytest.raises(ScheduleError):
            build_trigger(expression)

    def test_error_mentions_expression(self):
        with pytest.raises(ScheduleError, match="must have 6 fields"):
            build_trigger("*/5 * * * *")
