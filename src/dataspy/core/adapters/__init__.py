"""Database backends -- one interface for every server type a rule can target.

Manifesto:
    Rules are written for a database family (``postgres``, ``mysql``,
    ``mssql``, ``sqlite``).  The executor only ever talks to a
    :class:`DatabaseHandle`; which driver sits underneath is decided by the
    server's ``type`` through the registry.

    Each backend is **import-guarded**: the driver is only required at
    ``connect()`` time, not at import time.  Install the corresponding extra::

        pip install dataspy[postgres]   # psycopg2-binary
        pip install dataspy[mysql]      # mysql-connector-python
        pip install dataspy[mssql]      # pymssql

Architecture::

    DatabaseBackend (base.py)        connect / ping / cancel / render_value
        |-- SQLiteBackend            stdlib sqlite3 (always available)
        |-- PostgreSQLBackend        psycopg2 (optional)
        |-- MySQLBackend             mysql.connector (optional)
        |-- MSSQLBackend             pymssql (optional)

    DatabaseHandle (base.py)         one live connection, closes on exit
    BackendRegistry (registry.py)    server type -> backend class

Guardrails:
    ❌ Importing optional drivers at module scope
    ✅ Import-guarded at ``connect()`` time with clear ``ConfigError``
    ❌ Logging the connection string passed to ``open()``
    ✅ Log the server name and backend identifier only

Tags:
    dataspy, database, adapters, multi-backend, import-guarded,
    registry-pattern

Doc-Types:
    package-overview, architecture-map, module-index
"""

from .base import DatabaseBackend, DatabaseHandle, Handle, render_value
from .mssql import MSSQLBackend, parse_mssql_dsn
from .mysql import MySQLBackend, parse_mysql_dsn
from .postgresql import PostgreSQLBackend
from .registry import BackendRegistry, backend_registry, open_handle
from .sqlite import SQLiteBackend

__all__ = [
    # Base
    "DatabaseBackend",
    "DatabaseHandle",
    "Handle",
    "render_value",
    # Backends
    "SQLiteBackend",
    "PostgreSQLBackend",
    "MySQLBackend",
    "MSSQLBackend",
    "parse_mysql_dsn",
    "parse_mssql_dsn",
    # Registry
    "BackendRegistry",
    "backend_registry",
    "open_handle",
]
