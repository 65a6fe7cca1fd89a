"""PostgreSQL database backend.

Uses ``psycopg2``.  The connection string is handed to
``psycopg2.connect()`` unchanged, so both the keyword form
(``host=db user=spy dbname=app``) and URLs (``postgres://...``) work.

Install the driver::

    pip install psycopg2-binary
    # or:  pip install dataspy[postgres]
"""

from __future__ import annotations

from typing import Any

from dataspy.core.errors import ConfigError

from .base import DatabaseBackend


class PostgreSQLBackend(DatabaseBackend):
    """PostgreSQL backend (registered as ``postgres`` and ``postgresql``)."""

    name = "postgres"

    def __init__(self, *, connect_timeout: int = 10):
        self._connect_timeout = connect_timeout

    def connect(self, dsn: str) -> Any:
        try:
            import psycopg2
        except ImportError:
            raise ConfigError(
                "psycopg2 is required for PostgreSQL. Install with: pip install psycopg2-binary"
            ) from None

        conn = psycopg2.connect(dsn, connect_timeout=self._connect_timeout)
        # one statement per connection, no explicit transaction
        conn.autocommit = True
        return conn

    def cancel(self, conn: Any, dsn: str) -> None:
        conn.cancel()


__all__ = ["PostgreSQLBackend"]
