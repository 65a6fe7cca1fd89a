"""Database backend base class and live handle.

Manifesto:
    The executor must not care which database a rule targets.  A backend
    knows how to open a DB-API connection from a connection string, how to
    check it is alive, how to interrupt a running statement, and how to turn
    one column value into display text.  Everything else (cursor handling,
    close-on-every-path) is shared here.

Features:
    - Abstract ``connect()``; overridable ``ping()``, ``cancel()``, ``render_value()``
    - :class:`DatabaseHandle`: one live connection with context-manager close
    - :class:`Handle` protocol so tests can hand the executor a double

Tags:
    dataspy, database, abstract-base, adapter-pattern

Doc-Types:
    api-reference
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from dataspy.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Handle(Protocol):
    """What the executor needs from an open connection."""

    def ping(self) -> None: ...

    def execute(self, sql: str) -> Any: ...

    def cancel(self) -> None: ...

    def close(self) -> None: ...

    def render_value(self, value: Any) -> str: ...


def render_value(value: Any) -> str:
    """Display text for one column value.

    ``None`` renders as ``NULL``; byte strings are decoded (some drivers hand
    back text columns as raw bytes); everything else uses ``str()``.
    """
    if value is None:
        return "NULL"
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


class DatabaseBackend(ABC):
    """
    Abstract base class for database backends.

    Subclasses implement :meth:`connect`; the defaults for ``ping`` and
    ``cancel`` work for any DB-API 2.0 driver that supports ``SELECT 1``.
    """

    #: Identifier the backend is registered under by default
    name: str = ""

    @abstractmethod
    def connect(self, dsn: str) -> Any:
        """Open a DB-API connection for *dsn*."""
        ...

    def ping(self, conn: Any) -> None:
        """Liveness check; raises the driver's error on failure."""
        cursor = conn.cursor()
        try:
            cursor.execute("SELECT 1")
            cursor.fetchall()
        finally:
            cursor.close()

    def cancel(self, conn: Any, dsn: str) -> None:
        """Ask the server to abort the statement running on *conn*.

        The default does nothing; the deadline still releases the caller.
        """
        logger.debug("cancel_unsupported", backend=self.name)

    def render_value(self, value: Any) -> str:
        return render_value(value)

    def open(self, dsn: str) -> DatabaseHandle:
        """Connect and wrap the connection in a :class:`DatabaseHandle`."""
        return DatabaseHandle(self, self.connect(dsn), dsn)


class DatabaseHandle:
    """
    One live connection plus the backend that opened it.

    Closing the handle closes the cursor of the last statement and the
    connection; closing twice is harmless.
    """

    def __init__(self, backend: DatabaseBackend, conn: Any, dsn: str):
        self.backend = backend
        self.connection = conn
        self._dsn = dsn
        self._cursor: Any = None
        self._closed = False

    def ping(self) -> None:
        self.backend.ping(self.connection)

    def execute(self, sql: str) -> Any:
        """Run *sql* verbatim and return the DB-API cursor."""
        self._cursor = self.connection.cursor()
        self._cursor.execute(sql)
        return self._cursor

    def cancel(self) -> None:
        self.backend.cancel(self.connection, self._dsn)

    def render_value(self, value: Any) -> str:
        return self.backend.render_value(value)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._cursor is not None:
            try:
                self._cursor.close()
            except Exception as e:  # the connection is closed below regardless
                logger.debug("cursor_close_failed", backend=self.backend.name, error=str(e))
            self._cursor = None
        self.connection.close()

    def __enter__(self) -> DatabaseHandle:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


__all__ = [
    "Handle",
    "DatabaseBackend",
    "DatabaseHandle",
    "render_value",
]
