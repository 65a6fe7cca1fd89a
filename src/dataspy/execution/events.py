"""Outcome event sinks.

WHY
───
Every run produces a stream of :class:`~dataspy.core.models.LogEvent` s
(task / db / rule / success / error ...).  The core never prints; it hands
each event to an :class:`EventSink` it was constructed with.  The CLI plugs
in a coloured console sink, the daemon a structlog sink, and tests a
:class:`CollectingSink`.

ARCHITECTURE
────────────
::

    RuleScheduler ──emit(event)──▶ EventSink
                                     ├── LoggingSink     structlog
                                     ├── CollectingSink  in-memory list
                                     └── NullSink        drop everything
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from dataspy.core.logging import get_logger
from dataspy.core.models import EventLevel, LogEvent


@runtime_checkable
class EventSink(Protocol):
    """Receives outcome events relayed by the scheduler."""

    def emit(self, event: LogEvent) -> None: ...


class LoggingSink:
    """Writes events to structlog.

    ``error`` events go out at error level, ``warn`` at warning, the rest at
    info.  The event message becomes the structlog event and the fields are
    passed as key/values.
    """

    def __init__(self, logger_name: str = "dataspy.events"):
        self._logger = get_logger(logger_name)

    def emit(self, event: LogEvent) -> None:
        fields = dict(event.fields)
        fields["kind"] = event.level.value
        if event.error is not None:
            fields["error"] = str(event.error)

        if event.level is EventLevel.ERROR:
            self._logger.error(event.message, **fields)
        elif event.level is EventLevel.WARN:
            self._logger.warning(event.message, **fields)
        else:
            self._logger.info(event.message, **fields)


class CollectingSink:
    """Keeps every event in memory (thread-safe)."""

    def __init__(self) -> None:
        self._events: list[LogEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: LogEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[LogEvent]:
        with self._lock:
            return list(self._events)

    def levels(self) -> list[EventLevel]:
        return [e.level for e in self.events]

    def messages(self) -> list[str]:
        return [e.message for e in self.events]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class NullSink:
    """Discards events."""

    def emit(self, event: LogEvent) -> None:
        return None


__all__ = [
    "EventSink",
    "LoggingSink",
    "CollectingSink",
    "NullSink",
]
