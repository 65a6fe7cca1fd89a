"""SQLite database backend.

The connection string is a file path, ``:memory:`` or a ``file:`` URI.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from .base import DatabaseBackend


class SQLiteBackend(DatabaseBackend):
    """
    SQLite backend.

    Uses the built-in sqlite3 module. Suitable for:
    - Development and testing
    - Rules that watch a local application database
    """

    name = "sqlite"

    def __init__(self, *, timeout: float = 5.0):
        self._timeout = timeout

    def connect(self, dsn: str) -> Any:
        # the query deadline runs statements on a worker thread
        return sqlite3.connect(
            dsn,
            timeout=self._timeout,
            check_same_thread=False,
            uri=dsn.startswith("file:"),
        )

    def cancel(self, conn: Any, dsn: str) -> None:
        conn.interrupt()


__all__ = ["SQLiteBackend"]
