"""Database backend registry.

Manifesto:
    A server's ``type`` picks its backend at run time.  Instead of an open
    ``if type == "postgres"`` switch inside the executor, the registry maps
    identifiers to backend classes; new backends register at startup.

Features:
    - ``BackendRegistry`` with pre-registered defaults
    - ``register()`` for custom / third-party backends
    - ``open_handle()``: the default opener handed to the executor

Tags:
    dataspy, database, registry, factory

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from dataspy.core.errors import UnknownBackendError

from .base import DatabaseBackend, DatabaseHandle
from .mssql import MSSQLBackend
from .mysql import MySQLBackend
from .postgresql import PostgreSQLBackend
from .sqlite import SQLiteBackend


class BackendRegistry:
    """
    Registry of database backends keyed by server type.

    Pre-registered backends:
    - ``sqlite`` — :class:`SQLiteBackend`
    - ``postgres`` / ``postgresql`` — :class:`PostgreSQLBackend`
    - ``mysql`` — :class:`MySQLBackend`
    - ``mssql`` / ``sqlserver`` — :class:`MSSQLBackend`
    """

    def __init__(self):
        self._factories: dict[str, type[DatabaseBackend]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        """Register default backends."""
        self._factories["sqlite"] = SQLiteBackend
        self._factories["postgres"] = PostgreSQLBackend
        self._factories["postgresql"] = PostgreSQLBackend  # Alias
        self._factories["mysql"] = MySQLBackend
        self._factories["mssql"] = MSSQLBackend
        self._factories["sqlserver"] = MSSQLBackend  # Alias

    def register(self, name: str, backend_class: type[DatabaseBackend]) -> None:
        """Register a backend class under *name* (case-insensitive)."""
        self._factories[name.lower()] = backend_class

    def create(self, name: str, **kwargs: Any) -> DatabaseBackend:
        """Create a backend by name."""
        key = name.lower()
        if key not in self._factories:
            raise UnknownBackendError(name, self.list_backends())
        return self._factories[key](**kwargs)

    def open(self, driver: str, dsn: str) -> DatabaseHandle:
        """Open a live handle for *dsn* using the backend named *driver*."""
        return self.create(driver).open(dsn)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._factories

    def list_backends(self) -> list[str]:
        """List registered backend names."""
        return sorted(self._factories.keys())


# Global registry
backend_registry = BackendRegistry()


def open_handle(driver: str, dsn: str) -> DatabaseHandle:
    """
    Default opener used by :class:`~dataspy.execution.executor.QueryExecutor`.

    Usage:
        with open_handle("sqlite", "data/app.db") as handle:
            handle.ping()
    """
    return backend_registry.open(driver, dsn)


__all__ = [
    "BackendRegistry",
    "backend_registry",
    "open_handle",
]
