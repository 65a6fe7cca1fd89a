"""
Structured error types for dataspy.

Every failure that can happen while a rule runs is expressed as a
``DataspyError`` subclass. The class tells the scheduler and the CLI what
kind of failure it was (configuration, lookup, connectivity, query, storage),
whether re-running later could plausibly succeed, and which stage of the run
produced it.

Manifesto:
    - **Typed hierarchy:** One class per failure family, never bare Exception
    - **Stage-aware:** Execution errors name the stage that failed
    - **Rich context:** rule / server / stage travel with the error
    - **Chaining:** Driver exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        DataspyError                              │
        │        (category, retryable, context, cause)                     │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError                 NotFoundError                       │
        │  (CONFIG)                    (LOOKUP)                            │
        │     │                           │                                │
        │  MissingConfigError          RuleNotFoundError                   │
        │  InvalidConfigError          ServerNotFoundError                 │
        │  MissingConnectionStringError                                    │
        │  UnknownBackendError                                             │
        │  ScheduleError                                                   │
        │                                                                  │
        │  ConnectivityError           QueryError        StorageError      │
        │  (NETWORK, retryable)        (DATABASE)        (STORAGE)         │
        │     │                           │                 │              │
        │  ConnectionOpenError         QueryTimeoutError  StoreLockedError │
        │  PingError                                                       │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = PingError("connection refused").with_context(server="pg-main")
    >>> err.context.server
    'pg-main'
    >>> err.retryable
    True
    >>> err.to_dict()["category"]
    'NETWORK'

Guardrails:
    ❌ DON'T: Let a driver exception escape the executor unwrapped
    ✅ DO: Wrap it in the stage error and pass ``cause=``

    ❌ DON'T: Put connection strings into error messages
    ✅ DO: Name the server and the environment variable instead

Tags:
    error-handling, exception-hierarchy, dataspy, observability

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and reporting.

    Categories group errors by the part of the system that failed so the
    history and the logs can be filtered without parsing messages.

    Attributes:
        CONFIG: Missing or invalid configuration (never retryable)
        LOOKUP: Rule or server name has no match
        NETWORK: Connection open / ping failures
        DATABASE: Statement execution, column introspection, row scan
        STORAGE: History store read/write failures
        INTERNAL: Bugs, unexpected state
    """

    CONFIG = "CONFIG"
    LOOKUP = "LOOKUP"
    NETWORK = "NETWORK"
    DATABASE = "DATABASE"
    STORAGE = "STORAGE"
    INTERNAL = "INTERNAL"


class ExecutionStage(str, Enum):
    """Stages of a single rule execution, in the order they run."""

    CONNECTION_STRING = "connection string"
    OPEN = "open"
    PING = "ping"
    QUERY = "query"
    COLUMNS = "columns"
    SCAN = "scan"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        rule: Name of the rule being executed
        server: Name of the target server
        stage: Execution stage that failed
        metadata: Additional key-value pairs
    """

    rule: str | None = None
    server: str | None = None
    stage: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ("rule", "server", "stage"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DataspyError(Exception):
    """
    Base exception for all dataspy errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely have to pass them explicitly.

    Examples:
        >>> error = DataspyError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> try:
        ...     raise ConnectionRefusedError("refused")
        ... except ConnectionRefusedError as e:
        ...     error = ConnectionOpenError("open failed", cause=e)
        >>> error.cause
        ConnectionRefusedError('refused')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DataspyError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryError("failed").with_context(rule="r1", server="pg")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    @property
    def stage(self) -> str | None:
        return self.context.stage

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(DataspyError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


class MissingConnectionStringError(ConfigError):
    """The environment variable named by a server is unset or empty."""

    def __init__(self, server: str, env_var: str):
        self.server_name = server
        self.env_var = env_var
        if env_var:
            message = f"connection string variable {env_var} for server {server} is not set"
        else:
            message = f"server {server} does not name a connection string variable"
        super().__init__(
            message,
            context=ErrorContext(server=server, stage=ExecutionStage.CONNECTION_STRING.value),
        )


class UnknownBackendError(ConfigError):
    """No database backend is registered under the requested identifier."""

    def __init__(self, name: str, available: list[str] | None = None):
        self.backend_name = name
        self.available = available or []
        message = f"Unknown database backend: {name}"
        if self.available:
            message += f" (registered: {', '.join(self.available)})"
        super().__init__(message)


class ScheduleError(ConfigError):
    """Schedule registration failed (malformed cron expression, double start)."""

    pass


# =============================================================================
# LOOKUP ERRORS
# =============================================================================


class NotFoundError(DataspyError):
    """A rule or server name has no match in the loaded configuration."""

    default_category = ErrorCategory.LOOKUP
    default_retryable = False


class RuleNotFoundError(NotFoundError):
    """No rule with the requested name."""

    def __init__(self, name: str):
        self.rule_name = name
        super().__init__(f"rule not found: {name}", context=ErrorContext(rule=name))


class ServerNotFoundError(NotFoundError):
    """No server whose type matches the rule's database type."""

    def __init__(self, db_type: str, rule: str | None = None):
        self.db_type = db_type
        super().__init__(
            f"server not found for db type: {db_type}",
            context=ErrorContext(rule=rule, metadata={"db_type": db_type}),
        )


# =============================================================================
# CONNECTIVITY ERRORS (Usually Retryable)
# =============================================================================


class ConnectivityError(DataspyError):
    """
    The target database could not be reached.

    Retryable by default: the next scheduled trigger may well succeed.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class ConnectionOpenError(ConnectivityError):
    """Opening the connection failed."""

    pass


class PingError(ConnectivityError):
    """The connection opened but the liveness check failed."""

    pass


# =============================================================================
# QUERY ERRORS
# =============================================================================


class QueryError(DataspyError):
    """Statement execution, column introspection or row scan failed."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class QueryTimeoutError(QueryError):
    """The query did not finish before its deadline and was cancelled."""

    default_retryable = True

    def __init__(self, timeout: float, elapsed: float | None = None, **kwargs: Any):
        self.timeout = timeout
        self.elapsed = elapsed
        message = f"query timed out after {timeout}s"
        if elapsed is not None:
            message += f" (ran for {elapsed:.2f}s)"
        super().__init__(message, **kwargs)


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(DataspyError):
    """History store read/write error."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class StoreLockedError(StorageError):
    """Another process holds the history store."""

    def __init__(self, path: str, timeout: float, cause: BaseException | None = None):
        self.path = path
        self.timeout = timeout
        super().__init__(
            f"history store {path} is locked by another process (waited {timeout}s)",
            cause=cause,
        )


__all__ = [
    "ErrorCategory",
    "ExecutionStage",
    "ErrorContext",
    "DataspyError",
    # Config
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "MissingConnectionStringError",
    "UnknownBackendError",
    "ScheduleError",
    # Lookup
    "NotFoundError",
    "RuleNotFoundError",
    "ServerNotFoundError",
    # Connectivity
    "ConnectivityError",
    "ConnectionOpenError",
    "PingError",
    # Query
    "QueryError",
    "QueryTimeoutError",
    # Storage
    "StorageError",
    "StoreLockedError",
]
