"""Tests for the concrete database backends and ``DatabaseHandle``."""

from __future__ import annotations

import sqlite3
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from dataspy.core.adapters import (
    DatabaseBackend,
    DatabaseHandle,
    Handle,
    MSSQLBackend,
    MySQLBackend,
    PostgreSQLBackend,
    SQLiteBackend,
    parse_mssql_dsn,
    parse_mysql_dsn,
    render_value,
)
from dataspy.core.errors import ConfigError, InvalidConfigError


class TestRenderValue:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, "NULL"),
            (42, "42"),
            (1.5, "1.5"),
            ("text", "text"),
            (b"hi", "hi"),
            (bytearray(b"hi"), "hi"),
            (memoryview(b"hi"), "hi"),
            (b"\xff", "�"),
            (True, "True"),
        ],
    )
    def test_render(self, value, expected):
        assert render_value(value) == expected


# ---------------------------------------------------------------------------
# DatabaseHandle
# ---------------------------------------------------------------------------


class TestDatabaseHandle:
    def test_satisfies_handle_protocol(self):
        handle = SQLiteBackend().open(":memory:")
        assert isinstance(handle, Handle)
        handle.close()

    def test_execute_returns_cursor(self):
        with SQLiteBackend().open(":memory:") as handle:
            handle.ping()
            cursor = handle.execute("SELECT 1, NULL")
            assert [d[0] for d in cursor.description] == ["1", "NULL"]
            assert cursor.fetchone() == (1, None)

    def test_close_closes_cursor_then_connection(self):
        conn = MagicMock()
        handle = DatabaseHandle(SQLiteBackend(), conn, ":memory:")
        cursor = handle.execute("SELECT 1")

        handle.close()
        handle.close()

        cursor.close.assert_called_once()
        conn.close.assert_called_once()

    def test_cursor_close_failure_still_closes_connection(self):
        conn = MagicMock()
        conn.cursor.return_value.close.side_effect = RuntimeError("cursor gone")
        handle = DatabaseHandle(SQLiteBackend(), conn, ":memory:")
        handle.execute("SELECT 1")

        handle.close()

        conn.close.assert_called_once()

    def test_cancel_delegates_with_dsn(self):
        backend = MagicMock()
        conn = object()
        DatabaseHandle(backend, conn, "dsn").cancel()
        backend.cancel.assert_called_once_with(conn, "dsn")

    def test_default_cancel_is_a_noop(self):
        conn = MagicMock()
        DatabaseBackend.cancel(SQLiteBackend(), conn, "dsn")
        assert conn.mock_calls == []


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


class TestSQLiteBackend:
    def test_connect_file(self, sqlite_target):
        conn = SQLiteBackend().connect(str(sqlite_target))
        try:
            assert conn.execute("SELECT COUNT(*) FROM orders").fetchone() == (3,)
        finally:
            conn.close()

    def test_connect_uri(self, sqlite_target):
        conn = SQLiteBackend().connect(f"file:{sqlite_target}?mode=ro")
        try:
            with pytest.raises(sqlite3.OperationalError):
                conn.execute("DELETE FROM orders")
        finally:
            conn.close()

    def test_cancel_interrupts(self):
        conn = MagicMock()
        SQLiteBackend().cancel(conn, ":memory:")
        conn.interrupt.assert_called_once()


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------


class TestPostgreSQLBackend:
    def test_connect_passes_dsn_and_enables_autocommit(self):
        driver = MagicMock()
        with patch.dict(sys.modules, {"psycopg2": driver}):
            conn = PostgreSQLBackend(connect_timeout=3).connect("host=db dbname=app")

        driver.connect.assert_called_once_with("host=db dbname=app", connect_timeout=3)
        assert conn.autocommit is True

    def test_missing_driver(self):
        with patch.dict(sys.modules, {"psycopg2": None}):
            with pytest.raises(ConfigError, match="psycopg2 is required"):
                PostgreSQLBackend().connect("host=db")

    def test_cancel(self):
        conn = MagicMock()
        PostgreSQLBackend().cancel(conn, "host=db")
        conn.cancel.assert_called_once()


# ---------------------------------------------------------------------------
# MySQL
# ---------------------------------------------------------------------------


class TestParseMySQLDsn:
    def test_go_style(self):
        assert parse_mysql_dsn("spy:secret@tcp(db.internal:3306)/app?charset=utf8mb4&parseTime=true") == {
            "user": "spy",
            "password": "secret",
            "host": "db.internal",
            "port": 3306,
            "database": "app",
            "charset": "utf8mb4",
        }

    def test_go_style_host_without_port(self):
        assert parse_mysql_dsn("spy@tcp(db)/app") == {"user": "spy", "host": "db", "database": "app"}

    def test_password_containing_at(self):
        assert parse_mysql_dsn("spy:p@ss@tcp(db:3306)/app")["password"] == "p@ss"

    def test_unix_socket(self):
        params = parse_mysql_dsn("spy:pw@unix(/var/run/mysqld/mysqld.sock)/app")
        assert params["unix_socket"] == "/var/run/mysqld/mysqld.sock"
        assert "host" not in params

    def test_url(self):
        assert parse_mysql_dsn("mysql://spy:s%40cret@db:3307/app?loc=Local&use_pure=True") == {
            "user": "spy",
            "password": "s@cret",
            "host": "db",
            "port": 3307,
            "database": "app",
            "use_pure": "True",
        }

    def test_unrecognised(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            parse_mysql_dsn("spy:secret db.internal")
        assert "secret" not in str(exc_info.value)


class TestMySQLBackend:
    def test_connect(self):
        connector = MagicMock()
        with patch.object(MySQLBackend, "_driver", return_value=connector):
            MySQLBackend(connect_timeout=4).connect("spy@tcp(db:3306)/app")

        connector.connect.assert_called_once_with(
            autocommit=True,
            connection_timeout=4,
            user="spy",
            host="db",
            port=3306,
            database="app",
        )

    def test_missing_driver(self):
        with patch.dict(sys.modules, {"mysql": None, "mysql.connector": None}):
            with pytest.raises(ConfigError, match="mysql-connector-python is required"):
                MySQLBackend().connect("spy@tcp(db)/app")

    def test_ping_does_not_reconnect(self):
        conn = MagicMock()
        MySQLBackend().ping(conn)
        conn.ping.assert_called_once_with(reconnect=False)

    def test_cancel_kills_query_from_second_connection(self):
        connector = MagicMock()
        killer = connector.connect.return_value
        target = MagicMock(connection_id=42)

        with patch.object(MySQLBackend, "_driver", return_value=connector):
            MySQLBackend().cancel(target, "spy@tcp(db)/app")

        killer.cursor.return_value.execute.assert_called_once_with("KILL QUERY 42")
        killer.close.assert_called_once()


# ---------------------------------------------------------------------------
# SQL Server
# ---------------------------------------------------------------------------


class TestParseMSSQLDsn:
    def test_ado(self):
        assert parse_mssql_dsn("Server=db.internal,1433;User Id=spy;Password=secret;Database=app;") == {
            "server": "db.internal",
            "port": "1433",
            "user": "spy",
            "password": "secret",
            "database": "app",
        }

    def test_ado_aliases_and_timeout(self):
        params = parse_mssql_dsn("data source=db:1444;uid=spy;pwd=x;initial catalog=app;connection timeout=5")
        assert params["server"] == "db"
        assert params["port"] == "1444"
        assert params["database"] == "app"
        assert params["login_timeout"] == 5

    def test_unknown_keys_ignored(self):
        assert parse_mssql_dsn("server=db;encrypt=true") == {"server": "db"}

    def test_url(self):
        assert parse_mssql_dsn("sqlserver://spy:secret@db:1433?database=app") == {
            "user": "spy",
            "password": "secret",
            "server": "db",
            "port": "1433",
            "database": "app",
        }


class TestMSSQLBackend:
    def test_connect(self):
        driver = MagicMock()
        with patch.dict(sys.modules, {"pymssql": driver}):
            MSSQLBackend().connect("server=db;database=app")
        driver.connect.assert_called_once_with(autocommit=True, server="db", database="app")

    def test_missing_driver(self):
        with patch.dict(sys.modules, {"pymssql": None}):
            with pytest.raises(ConfigError, match="pymssql is required"):
                MSSQLBackend().connect("server=db")

    def test_cancel_uses_raw_connection(self):
        raw = MagicMock()
        MSSQLBackend().cancel(SimpleNamespace(_conn=raw), "server=db")
        raw.cancel.assert_called_once()

    def test_cancel_without_raw_connection(self):
        MSSQLBackend().cancel(SimpleNamespace(), "server=db")
