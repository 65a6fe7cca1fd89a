"""
dataspy logging - structured logging for the daemon and the CLI.

Manifesto:
    An unattended monitor is only as good as its logs. Every module logs
    snake_case event names with key/value fields through structlog so the
    same lines read well on a terminal and parse cleanly in a log pipeline.

    - **Structures:** key/value fields, never interpolated prose
    - **Correlates:** rule / server bound for the duration of a run
    - **Flexes:** coloured console on a TTY, JSON otherwise

Features:
    - ``configure_logging()`` one-time setup (structlog + stdlib)
    - ``get_logger()`` returning a bound structlog logger
    - ``LogContext`` for scoped contextvars binding
    - Stdlib loggers (APScheduler, drivers) rendered by the same pipeline

Examples:
    >>> from dataspy.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True)
    >>> logger = get_logger(__name__)
    >>> logger.info("rule_started", rule="orphaned_orders")

Tags:
    logging, structlog, observability, dataspy

Doc-Types:
    - API Reference
    - Configuration Documentation
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "dataspy"
_configured = False


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "dataspy",
    force: bool = False,
) -> None:
    """Configure structured logging for the application.

    Subsequent calls are no-ops unless ``force=True``.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        force: Reconfigure even if already configured
    """
    global _SERVICE_NAME, _configured

    if _configured and not force:
        return

    _SERVICE_NAME = service
    log_level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        json_format = not sys.stderr.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        _add_service_metadata,
    ]

    if json_format:
        renderer: Processor = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Stdlib records (APScheduler, drivers) go through the same renderer
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    # APScheduler is chatty at INFO ("Running job ...")
    logging.getLogger("apscheduler").setLevel(max(log_level, logging.WARNING))

    _configured = True


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs of this thread/task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


def is_configured() -> bool:
    return _configured


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(rule="orphaned_orders", server="pg-main"):
            logger.info("query_started")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "is_configured",
    "LogContext",
]
