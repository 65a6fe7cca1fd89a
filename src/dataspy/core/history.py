"""
Execution history store.

Append-only, crash-consistent persistence of
:class:`~dataspy.core.models.ExecutionRecord` s in a single SQLite file.

Manifesto:
    Every attempted run, successful or not, leaves exactly one record.
    Records are written inside their own transaction with a plain
    ``INSERT``: a record is either fully there or not there, and an existing
    record can never be overwritten.

Architecture:
    ::

        data/dataspy.db  (locking_mode=EXCLUSIVE, one process at a time)
        ├── execution_history
        │     key          TEXT               "<start ns:019d>-<rule>-<server>", display only
        │     start_ns     INTEGER  ┐
        │     rule_name    TEXT     ├ PRIMARY KEY; rule_name also indexed
        │     server_name  TEXT     ┘
        │     payload      TEXT               record JSON
        └── rule_metadata                      reserved

Examples:
    >>> with HistoryStore.open("data/dataspy.db") as store:
    ...     store.save_execution_record(record)
    ...     latest = store.get_latest_executions(10)
    ...     mine = store.get_executions_by_rule("orphaned_orders")

Guardrails:
    ❌ DON'T: ``INSERT OR REPLACE`` - history is append-only
    ✅ DO: Let a duplicate key fail the write

    ❌ DON'T: Match rule names inside the composite key, or make it unique
    ✅ DO: Use the ``(start_ns, rule_name, server_name)`` columns (names may contain ``-``)

Tags:
    dataspy, history, sqlite, persistence, audit

Doc-Types:
    api-reference
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from dataspy.core.errors import StorageError, StoreLockedError
from dataspy.core.logging import get_logger
from dataspy.core.models import ExecutionRecord, to_unix_nanos

logger = get_logger(__name__)

HISTORY_TABLE = "execution_history"
RULE_METADATA_TABLE = "rule_metadata"

_SCHEMA = (
    f"""
    CREATE TABLE IF NOT EXISTS {HISTORY_TABLE} (
        key TEXT NOT NULL,
        start_ns INTEGER NOT NULL,
        rule_name TEXT NOT NULL,
        server_name TEXT NOT NULL,
        payload TEXT NOT NULL,
        PRIMARY KEY (start_ns, rule_name, server_name)
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{HISTORY_TABLE}_rule ON {HISTORY_TABLE} (rule_name, start_ns)",
    f"""
    CREATE TABLE IF NOT EXISTS {RULE_METADATA_TABLE} (
        rule_name TEXT PRIMARY KEY,
        payload TEXT NOT NULL
    )
    """,
)


class HistoryStore:
    """SQLite-backed execution history.

    The store holds one connection for its whole life; a lock serializes the
    scheduler threads that share it.  Use :meth:`open` to create one.
    """

    def __init__(self, conn: sqlite3.Connection, path: str):
        self._conn = conn
        self._path = path
        self._lock = threading.Lock()
        self._closed = False

    # ── Lifecycle ────────────────────────────────────────────────

    @classmethod
    def open(cls, path: Path | str, *, lock_timeout: float = 1.0) -> HistoryStore:
        """Open (creating if needed) the store at *path*.

        Raises:
            StoreLockedError: Another process holds the file for longer
                than *lock_timeout* seconds
            StorageError: The file cannot be opened or initialized
        """
        location = str(path)
        if location != ":memory:":
            Path(location).parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(
                location,
                timeout=lock_timeout,
                check_same_thread=False,
                isolation_level=None,
            )
        except sqlite3.Error as e:
            raise StorageError(f"failed to open history store {location}: {e}", cause=e) from e

        try:
            conn.execute("PRAGMA locking_mode=EXCLUSIVE")
            conn.execute("PRAGMA synchronous=FULL")
            # takes the file lock; EXCLUSIVE mode keeps it until close
            conn.execute("BEGIN EXCLUSIVE")
        except sqlite3.OperationalError as e:
            conn.close()
            if "locked" in str(e) or "busy" in str(e):
                raise StoreLockedError(location, lock_timeout, cause=e) from e
            raise StorageError(f"failed to open history store {location}: {e}", cause=e) from e

        try:
            for statement in _SCHEMA:
                conn.execute(statement)
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            conn.close()
            raise StorageError(f"failed to initialize history store {location}: {e}", cause=e) from e

        logger.info("history_store_opened", path=location)
        return cls(conn, location)

    @property
    def path(self) -> str:
        return self._path

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()
        logger.info("history_store_closed", path=self._path)

    def __enter__(self) -> HistoryStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise StorageError(f"history store {self._path} is closed")

    # ── Writes ───────────────────────────────────────────────────

    def save_execution_record(self, record: ExecutionRecord) -> str:
        """Append *record* in one transaction and return its key.

        Raises:
            StorageError: The write failed (nothing was written)
        """
        key = record.key
        with self._lock:
            self._ensure_open()
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                self._conn.execute(
                    f"INSERT INTO {HISTORY_TABLE} (key, start_ns, rule_name, server_name, payload) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        key,
                        to_unix_nanos(record.start_time),
                        record.rule_name,
                        record.server_name,
                        record.to_json(),
                    ),
                )
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise StorageError(
                    f"failed to save execution record {key}: {e}", cause=e
                ).with_context(rule=record.rule_name, server=record.server_name) from e
        return key

    # ── Reads ────────────────────────────────────────────────────

    def get_latest_executions(self, n: int) -> list[ExecutionRecord]:
        """Up to *n* most recent records, newest first."""
        if n <= 0:
            return []
        return self._select(
            f"SELECT payload FROM {HISTORY_TABLE} "
            "ORDER BY start_ns DESC, rule_name DESC, server_name DESC LIMIT ?",
            (n,),
        )

    def get_executions_by_rule(self, rule_name: str) -> list[ExecutionRecord]:
        """Every record of *rule_name*, oldest first."""
        return self._select(
            f"SELECT payload FROM {HISTORY_TABLE} WHERE rule_name = ? "
            "ORDER BY start_ns ASC, server_name ASC",
            (rule_name,),
        )

    def count(self) -> int:
        with self._lock:
            self._ensure_open()
            try:
                (total,) = self._conn.execute(f"SELECT COUNT(*) FROM {HISTORY_TABLE}").fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"failed to count execution records: {e}", cause=e) from e
        return total

    def _select(self, sql: str, params: tuple) -> list[ExecutionRecord]:
        with self._lock:
            self._ensure_open()
            try:
                payloads = [row[0] for row in self._conn.execute(sql, params).fetchall()]
            except sqlite3.Error as e:
                raise StorageError(f"failed to read execution history: {e}", cause=e) from e
        try:
            return [ExecutionRecord.from_json(payload) for payload in payloads]
        except (ValueError, KeyError) as e:
            raise StorageError(f"corrupt execution record: {e}", cause=e) from e


__all__ = ["HistoryStore", "HISTORY_TABLE", "RULE_METADATA_TABLE"]
