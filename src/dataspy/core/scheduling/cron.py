"""Six-field cron expressions -> APScheduler triggers.

Schedules are written with a leading seconds field::

    ┌──────── second       0-59
    │ ┌────── minute       0-59
    │ │ ┌──── hour         0-23
    │ │ │ ┌── day of month 1-31
    │ │ │ │ ┌ month        1-12 or jan-dec
    │ │ │ │ │ ┌ day of week 0-6 (0 or 7 = Sunday) or sun-sat
    0 */5 * * * *

``?`` is accepted as a synonym for ``*`` in any field.  The descriptors
``@yearly``, ``@annually``, ``@monthly``, ``@weekly``, ``@daily``,
``@midnight``, ``@hourly`` and ``@every <duration>`` (``@every 1h30m``)
are supported too.

APScheduler numbers the days of the week from Monday, so the day-of-week
field is rewritten into explicit day names before the trigger is built.

When both day-of-month and day-of-week are restricted, a day matches if
either field matches (``0 0 0 15 * 1`` fires on the 15th and on every
Monday).  If either day field is ``*`` or ``?``, both must match.
"""

from __future__ import annotations

import re
from datetime import datetime, tzinfo

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from dataspy.core.errors import ScheduleError

DESCRIPTORS = {
    "@yearly": "0 0 0 1 1 *",
    "@annually": "0 0 0 1 1 *",
    "@monthly": "0 0 0 1 * *",
    "@weekly": "0 0 0 * * 0",
    "@daily": "0 0 0 * * *",
    "@midnight": "0 0 0 * * *",
    "@hourly": "0 0 * * * *",
}

FIELD_NAMES = ("second", "minute", "hour", "day", "month", "day_of_week")

# Sunday-first, as written in schedules
_DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

_DURATION_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(text: str) -> float:
    """Parse a duration such as ``1h30m`` or ``90s`` into seconds."""
    text = text.strip()
    if not text:
        raise ScheduleError("empty duration")
    position = 0
    total = 0.0
    for match in _DURATION_RE.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ScheduleError(f"invalid duration: {text!r}")
    return total


def _day_number(token: str, expression: str) -> int:
    """Sunday-first day number; ``7`` is kept as 7 until ranges are expanded."""
    lowered = token.lower()
    if lowered in _DAY_NAMES:
        return _DAY_NAMES.index(lowered)
    if not lowered.isdigit() or int(lowered) > 7:
        raise ScheduleError(f"invalid day of week {token!r} in cron expression {expression!r}")
    return int(lowered)


def translate_day_of_week(field: str, expression: str = "") -> str:
    """Rewrite a Sunday-first day-of-week field as APScheduler day names.

    ``1-5`` becomes ``mon,tue,wed,thu,fri``; ``*`` and ``?`` stay ``*``.
    """
    if field in ("*", "?"):
        return "*"

    days: set[int] = set()
    for element in field.split(","):
        base, _, step_text = element.partition("/")
        step = 1
        if step_text:
            if not step_text.isdigit() or int(step_text) == 0:
                raise ScheduleError(f"invalid step {element!r} in cron expression {expression!r}")
            step = int(step_text)

        if base in ("*", "?"):
            start, end = 0, 6
        elif "-" in base:
            low, _, high = base.partition("-")
            start, end = _day_number(low, expression), _day_number(high, expression)
            if start > end:
                raise ScheduleError(f"invalid day range {element!r} in cron expression {expression!r}")
        else:
            start = _day_number(base, expression)
            end = max(start, 6) if step_text else start

        days.update(day % 7 for day in range(start, end + 1, step))

    if len(days) == 7:
        return "*"
    return ",".join(_DAY_NAMES[day] for day in sorted(days))


def _is_unrestricted(field: str) -> bool:
    """True when a day field carries a bare ``*`` or ``?`` element (step 1 at most)."""
    for element in field.split(","):
        base, _, step = element.partition("/")
        if base in ("*", "?") and step in ("", "1"):
            return True
    return False


def build_trigger(expression: str, timezone: tzinfo | str | None = None) -> BaseTrigger:
    """Build the APScheduler trigger for a schedule's cron expression.

    Raises:
        ScheduleError: The expression is malformed
    """
    text = expression.strip()
    if text.startswith("@every"):
        seconds = parse_duration(text[len("@every"):])
        if seconds < 1:
            seconds = 1.0
        return IntervalTrigger(seconds=seconds, timezone=timezone)

    if text.startswith("@"):
        if text not in DESCRIPTORS:
            raise ScheduleError(f"unrecognized descriptor in cron expression {expression!r}")
        text = DESCRIPTORS[text]

    fields = text.split()
    if len(fields) != len(FIELD_NAMES):
        raise ScheduleError(
            f"cron expression {expression!r} must have {len(FIELD_NAMES)} fields "
            f"(second minute hour day month day-of-week), got {len(fields)}"
        )

    values = dict(zip(FIELD_NAMES, ("*" if f == "?" else f for f in fields), strict=True))
    values["day_of_week"] = translate_day_of_week(fields[5], expression)

    try:
        if _is_unrestricted(fields[3]) or _is_unrestricted(fields[5]):
            return CronTrigger(timezone=timezone, **values)
        # both day fields restricted: a day matches when either one does
        return OrTrigger(
            [
                CronTrigger(timezone=timezone, **{**values, "day_of_week": "*"}),
                CronTrigger(timezone=timezone, **{**values, "day": "*"}),
            ]
        )
    except ValueError as e:
        raise ScheduleError(f"invalid cron expression {expression!r}: {e}", cause=e) from e


def next_fire_time(trigger: BaseTrigger, now: datetime) -> datetime | None:
    """The first fire time of *trigger* at or after *now*."""
    return trigger.get_next_fire_time(None, now)


__all__ = [
    "DESCRIPTORS",
    "FIELD_NAMES",
    "build_trigger",
    "next_fire_time",
    "parse_duration",
    "translate_day_of_week",
]
