"""
Query executor - runs one rule against one server.

Manifesto:
    The executor is the only place that touches a target database.  It
    never prints and never raises for a failed stage: every step is recorded
    as a :class:`~dataspy.core.models.LogEvent` on the returned
    :class:`~dataspy.core.models.ExecutionResult`, and a failure is returned
    as a stage-tagged :class:`~dataspy.core.errors.DataspyError` in
    ``result.error``.  What to do with a failure (record it, print it, exit
    non-zero) is the caller's decision.

Architecture:
    ::

        execute(server, rule)
          │
          ├─ task   "Executing on <server>"
          ├─ resolve connection string ──────────── connection string
          ├─ opener(server.type, dsn) ───────────── open
          │    └─ with handle:  (closed on every path)
          │         ├─ ping ───────────────────────── ping
          │         ├─ db     "Connection established successfully"
          │         ├─ rule   "Executing query"
          │         ├─ run_with_timeout(
          │         │     execute ─────────────────── query
          │         │     description ─────────────── columns
          │         │     fetch + render rows ─────── scan )
          │         └─ success "Query executed successfully"
          └─ ExecutionResult(row_count, results, rows, events, error)

Examples:
    >>> executor = QueryExecutor()
    >>> result = executor.execute(Server("local", "sqlite", "LOCAL_DB"), rule)
    >>> result.results
    'Found 1 rows:\\nRow 1: 1\\n'

    A test double opener:

    >>> executor = QueryExecutor(opener=lambda driver, dsn: FakeHandle(rows=[(1,)]))

Guardrails:
    ❌ DON'T: Retry inside the executor
    ✅ DO: Return the error; the next trigger is the retry

    ❌ DON'T: Put the connection string into events or errors
    ✅ DO: Name the server

Tags:
    dataspy, executor, query, database, events

Doc-Types:
    api-reference
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any

from dataspy.core.adapters import Handle, open_handle
from dataspy.core.errors import (
    ConfigError,
    ConnectionOpenError,
    DataspyError,
    ErrorContext,
    ExecutionStage,
    PingError,
    QueryError,
    QueryTimeoutError,
)
from dataspy.core.logging import get_logger
from dataspy.core.models import EventLevel, ExecutionResult, Rule, Server
from dataspy.core.secrets import resolve_connection_string
from dataspy.execution.timeout import CancelToken, TimeoutExpired, run_with_timeout

logger = get_logger(__name__)

#: (driver identifier, connection string) -> live handle
Opener = Callable[[str, str], Handle]

ZERO_ROWS_MESSAGE = "Query completed successfully (0 rows)"

_FAILURE_MESSAGES = {
    ExecutionStage.CONNECTION_STRING.value: "Failed to get connection string",
    ExecutionStage.OPEN.value: "Failed to open DB connection",
    ExecutionStage.PING.value: "Failed to ping database",
    ExecutionStage.QUERY.value: "Failed to execute query",
    ExecutionStage.COLUMNS.value: "Failed to get columns",
    ExecutionStage.SCAN.value: "Failed to scan row",
}


def format_results(rows: list[list[str]]) -> str:
    """Render rows as the human-readable summary stored in the history."""
    if not rows:
        return ZERO_ROWS_MESSAGE
    lines = [f"Found {len(rows)} rows:\n"]
    for index, row in enumerate(rows, start=1):
        lines.append(f"Row {index}: {' '.join(row)}\n")
    return "".join(lines)


def _stage_error(stage: ExecutionStage, message: str, cause: BaseException) -> QueryError:
    return QueryError(f"{message}: {cause}", context=ErrorContext(stage=stage.value), cause=cause)


class QueryExecutor:
    """Executes a rule's query against a server.

    Args:
        opener: ``(driver, dsn) -> Handle``; defaults to the backend registry
        default_timeout: Query deadline in seconds when the rule sets none
            (``None`` or ``0`` disables it)
        environ: Mapping connection strings are read from (``os.environ``)
    """

    def __init__(
        self,
        opener: Opener | None = None,
        *,
        default_timeout: float | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self._opener = opener or open_handle
        self._default_timeout = default_timeout
        self._environ = environ

    def timeout_for(self, rule: Rule) -> float | None:
        if rule.timeout_seconds is not None:
            return rule.timeout_seconds or None
        return self._default_timeout or None

    def execute(self, server: Server, rule: Rule) -> ExecutionResult:
        result = ExecutionResult()
        result.add_event(EventLevel.TASK, f"Executing on {server.name}", rule=rule.name)

        try:
            dsn = resolve_connection_string(server, self._environ)
        except DataspyError as e:
            return self._fail(result, ExecutionStage.CONNECTION_STRING, e, rule, server)

        try:
            handle = self._opener(server.type, dsn.get_secret())
        except ConfigError as e:
            # unknown backend or missing driver
            return self._fail(result, ExecutionStage.OPEN, e, rule, server)
        except Exception as e:
            error = ConnectionOpenError(f"failed to open connection: {e}", cause=e)
            return self._fail(result, ExecutionStage.OPEN, error, rule, server)

        try:
            return self._execute_on(handle, server, rule, result)
        finally:
            try:
                handle.close()
            except Exception as e:  # the run's outcome is already decided
                logger.warning("connection_close_failed", rule=rule.name, server=server.name, error=str(e))

    def _execute_on(self, handle: Handle, server: Server, rule: Rule, result: ExecutionResult) -> ExecutionResult:
        try:
            handle.ping()
        except Exception as e:
            error = PingError(f"failed to ping database: {e}", cause=e)
            return self._fail(result, ExecutionStage.PING, error, rule, server)
        result.add_event(EventLevel.DB, "Connection established successfully")

        result.add_event(EventLevel.RULE, "Executing query", rule=rule.name)
        timeout = self.timeout_for(rule)
        token = CancelToken()
        token.on_cancel(handle.cancel)
        started = time.monotonic()

        try:
            rows = run_with_timeout(
                lambda: self._fetch(handle, rule.query, token),
                timeout,
                token=token,
                operation=f"rule:{rule.name}",
            )
        except TimeoutExpired as e:
            error = QueryTimeoutError(e.timeout, e.elapsed, cause=e)
            result.add_event(EventLevel.ERROR, "Query timed out", error=error, rule=rule.name, server=server.name)
            return self._record_error(result, ExecutionStage.QUERY, error, rule, server)
        except QueryError as e:
            return self._fail(result, ExecutionStage(e.stage), e, rule, server)

        result.rows = rows
        result.row_count = len(rows)
        result.results = format_results(rows)
        result.add_event(
            EventLevel.SUCCESS,
            "Query executed successfully",
            rule=rule.name,
            server=server.name,
            rows=result.row_count,
        )
        logger.debug(
            "query_executed",
            rule=rule.name,
            server=server.name,
            rows=result.row_count,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        return result

    @staticmethod
    def _fetch(handle: Handle, sql: str, token: CancelToken) -> list[list[str]]:
        """Execute, introspect and scan. Runs under the deadline."""
        try:
            cursor = handle.execute(sql)
        except Exception as e:
            raise _stage_error(ExecutionStage.QUERY, "failed to execute query", e) from e

        try:
            description: Any = cursor.description
            columns = [column[0] for column in description] if description else []
        except Exception as e:
            raise _stage_error(ExecutionStage.COLUMNS, "failed to get columns", e) from e

        rows: list[list[str]] = []
        if not columns:
            # statement produced no result set
            return rows

        try:
            while True:
                token.raise_if_cancelled()
                row = cursor.fetchone()
                if row is None:
                    break
                rows.append([handle.render_value(value) for value in row])
        except Exception as e:
            raise _stage_error(ExecutionStage.SCAN, "failed to scan row", e) from e
        return rows

    def _fail(
        self,
        result: ExecutionResult,
        stage: ExecutionStage,
        error: DataspyError,
        rule: Rule,
        server: Server,
    ) -> ExecutionResult:
        result.add_event(
            EventLevel.ERROR,
            _FAILURE_MESSAGES[stage.value],
            error=error,
            rule=rule.name,
            server=server.name,
        )
        return self._record_error(result, stage, error, rule, server)

    @staticmethod
    def _record_error(
        result: ExecutionResult,
        stage: ExecutionStage,
        error: DataspyError,
        rule: Rule,
        server: Server,
    ) -> ExecutionResult:
        error.with_context(rule=rule.name, server=server.name, stage=stage.value)
        result.error = error
        logger.debug("query_failed", **error.to_dict())
        return result


__all__ = [
    "Opener",
    "QueryExecutor",
    "format_results",
    "ZERO_ROWS_MESSAGE",
]
