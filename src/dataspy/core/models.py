"""Domain models for rules, servers, schedules and execution outcomes.

Manifesto:
    The scheduler, the executor and the history store pass the same few
    shapes around.  Keeping them as plain dataclasses (frozen where the
    value is configuration) makes them cheap to build in tests and
    impossible to mutate behind the scheduler's back.

Tags:
    dataspy, models, dataclasses, execution-record

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from dataspy.core.errors import DataspyError

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Rule:
    """An operator-authored SQL statement targeting a database family.

    Attributes:
        name: Unique rule name, the lookup key
        description: Free text, copied into every execution record
        db_type: Backend family the rule targets (matched to ``Server.type``)
        query: SQL text, executed verbatim
        timeout_seconds: Per-rule query deadline (``None`` = use the default)
    """

    name: str
    description: str
    db_type: str
    query: str
    timeout_seconds: float | None = None


@dataclass(frozen=True, slots=True)
class Server:
    """A database endpoint descriptor.

    The connection string itself never lives in configuration; ``conn_string_var``
    names the environment variable that holds it.
    """

    name: str
    type: str
    conn_string_var: str


@dataclass(frozen=True, slots=True)
class Schedule:
    """Binds a rule name to a six-field cron expression.

    ``server`` is informational only: the server a rule runs against is
    resolved from the rule's ``db_type`` when the trigger fires.
    """

    rule: str
    cron: str
    server: str = ""


@dataclass(frozen=True)
class MonitorConfig:
    """The immutable rule / server / schedule sets loaded at startup."""

    servers: tuple[Server, ...] = ()
    rules: tuple[Rule, ...] = ()
    schedules: tuple[Schedule, ...] = ()

    def find_rule(self, name: str) -> Rule | None:
        """First rule whose name matches exactly."""
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None

    def find_server_for(self, db_type: str) -> Server | None:
        """First server whose type matches ``db_type``."""
        for server in self.servers:
            if server.type == db_type:
                return server
        return None

    def find_server(self, name: str) -> Server | None:
        for server in self.servers:
            if server.name == name:
                return server
        return None


# ---------------------------------------------------------------------------
# Execution outcome (transient)
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    """Severity / kind of a LogEvent."""

    INFO = "info"
    ERROR = "error"
    SUCCESS = "success"
    WARN = "warn"
    TASK = "task"
    RULE = "rule"
    DB = "db"


@dataclass(frozen=True, slots=True)
class LogEvent:
    """A structured message describing one step of an execution.

    LogEvents are relayed to the presentation layer and never persisted.
    """

    level: EventLevel
    message: str
    fields: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"level": self.level.value, "message": self.message, **self.fields}
        if self.error is not None:
            result["error"] = str(self.error)
        return result


@dataclass
class ExecutionResult:
    """Transient output of one query run.

    ``error`` is set when a stage failed; ``results`` is only populated when
    the run succeeded.
    """

    row_count: int = 0
    results: str = ""
    rows: list[list[str]] = field(default_factory=list)
    events: list[LogEvent] = field(default_factory=list)
    error: DataspyError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def add_event(
        self,
        level: EventLevel,
        message: str,
        error: BaseException | None = None,
        **fields: Any,
    ) -> LogEvent:
        event = LogEvent(level=level, message=message, fields=fields, error=error)
        self.events.append(event)
        return event


# ---------------------------------------------------------------------------
# Execution record (persistent)
# ---------------------------------------------------------------------------


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


def to_unix_nanos(moment: datetime) -> int:
    """Exact nanoseconds since the epoch (datetime has microsecond precision)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return ((moment - _EPOCH) // timedelta(microseconds=1)) * 1000


@dataclass(frozen=True)
class ExecutionRecord:
    """Durable audit entry for one attempted run, success or failure.

    Exactly one of ``result`` / ``error`` is non-empty.  Records are
    append-only: the history store never updates or deletes them.
    """

    rule_name: str
    server_name: str
    start_time: datetime
    end_time: datetime
    status: ExecutionStatus
    result: str = ""
    error: str = ""
    description: str = ""
    duration_ms: float = 0.0
    rows_affected: int = 0

    @classmethod
    def from_outcome(
        cls,
        *,
        rule_name: str,
        server_name: str,
        description: str,
        start_time: datetime,
        end_time: datetime,
        outcome: ExecutionResult | None = None,
        error: BaseException | None = None,
    ) -> ExecutionRecord:
        """Build the record for a finished run.

        ``error`` wins over ``outcome.error``; on failure the rendered result is
        dropped so that only the error text is kept.
        """
        outcome = outcome or ExecutionResult()
        failure = error if error is not None else outcome.error
        duration_ms = float((end_time - start_time) // timedelta(milliseconds=1))

        if failure is not None:
            return cls(
                rule_name=rule_name,
                server_name=server_name,
                start_time=start_time,
                end_time=end_time,
                status=ExecutionStatus.ERROR,
                error=str(failure) or failure.__class__.__name__,
                description=description,
                duration_ms=duration_ms,
                rows_affected=outcome.row_count,
            )
        return cls(
            rule_name=rule_name,
            server_name=server_name,
            start_time=start_time,
            end_time=end_time,
            status=ExecutionStatus.SUCCESS,
            result=outcome.results,
            description=description,
            duration_ms=duration_ms,
            rows_affected=outcome.row_count,
        )

    @property
    def key(self) -> str:
        """Display key ``<start ns>-<rule>-<server>``, chronological when sorted.

        Not unique when names contain ``-``; the store identifies a record by
        its ``(start_time, rule_name, server_name)`` triple.
        """
        return f"{to_unix_nanos(self.start_time):019d}-{self.rule_name}-{self.server_name}"

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the on-disk field names."""
        data: dict[str, Any] = {
            "rule_name": self.rule_name,
            "server_name": self.server_name,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "status": self.status.value,
            "result": self.result,
        }
        if self.error:
            data["error"] = self.error
        data["description"] = self.description
        data["duration_ms"] = self.duration_ms
        data["rows_affected"] = self.rows_affected
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionRecord:
        return cls(
            rule_name=data["rule_name"],
            server_name=data["server_name"],
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]),
            status=ExecutionStatus(data["status"]),
            result=data.get("result", ""),
            error=data.get("error", ""),
            description=data.get("description", ""),
            duration_ms=float(data.get("duration_ms", 0.0)),
            rows_affected=int(data.get("rows_affected", 0)),
        )

    @classmethod
    def from_json(cls, payload: str | bytes) -> ExecutionRecord:
        return cls.from_dict(json.loads(payload))


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Tally returned by ``execute_all_rules``."""

    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


__all__ = [
    "Rule",
    "Server",
    "Schedule",
    "MonitorConfig",
    "EventLevel",
    "LogEvent",
    "ExecutionResult",
    "ExecutionStatus",
    "ExecutionRecord",
    "RunSummary",
    "to_unix_nanos",
]
