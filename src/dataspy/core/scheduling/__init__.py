"""Scheduling for dataspy rules.

Manifesto:
    A rule that should run every five minutes must run every five minutes,
    must not pile up behind a slow database, and a typo in a cron
    expression must stop the daemon at startup rather than silently never
    firing.  This package turns six-field cron expressions into APScheduler
    triggers and runs the scheduler that fires rules on them.

Architecture::

    cron.py        six-field cron / descriptors -> APScheduler trigger
    guard.py       InFlightGuard: one scheduled run per rule at a time
    scheduler.py   RuleScheduler: timers, on-demand runs, history writes

Guardrails:
    ❌ Starting the scheduler with a partially valid schedule list
    ✅ ``start()`` validates every expression before any timer runs
    ❌ Two overlapping scheduled runs of the same rule
    ✅ The second trigger is skipped with a ``warn`` event

Tags:
    dataspy, scheduling, cron, apscheduler

Doc-Types:
    package-overview, module-index
"""

from .cron import build_trigger, next_fire_time, parse_duration, translate_day_of_week
from .guard import InFlightGuard
from .scheduler import RuleScheduler, ScheduledJob

__all__ = [
    "build_trigger",
    "next_fire_time",
    "parse_duration",
    "translate_day_of_week",
    "InFlightGuard",
    "RuleScheduler",
    "ScheduledJob",
]
