"""
CLI utility helpers — consoles, the console event sink, and wiring.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dataspy.core.config import DataspySettings, get_settings, load_monitor_config
from dataspy.core.errors import DataspyError
from dataspy.core.history import HistoryStore
from dataspy.core.models import EventLevel, ExecutionRecord, LogEvent, MonitorConfig
from dataspy.core.scheduling import RuleScheduler
from dataspy.execution import EventSink, QueryExecutor

console = Console()
err_console = Console(stderr=True)


# ── Shared state ─────────────────────────────────────────────────────────


@dataclass
class CLIState:
    """Options given to the root command, passed to sub-commands via ``ctx.obj``."""

    config_path: Path | None = None
    env_file: Path | None = None

    @property
    def settings(self) -> DataspySettings:
        return get_settings()

    def resolved_config_path(self) -> Path:
        return self.config_path or self.settings.config_path


def get_state(ctx: typer.Context) -> CLIState:
    """The root command's state (a default one when a sub-app runs standalone)."""
    root = ctx.find_root()
    if not isinstance(root.obj, CLIState):
        root.obj = CLIState()
    return root.obj


# ── Event rendering ──────────────────────────────────────────────────────

_LEVEL_STYLES = {
    EventLevel.SUCCESS: ("SUCCESS", "bold green"),
    EventLevel.ERROR: ("ERROR", "bold red"),
    EventLevel.WARN: ("WARNING", "bold yellow"),
    EventLevel.INFO: ("INFO", "bold blue"),
    EventLevel.TASK: ("TASK", "bold magenta"),
    EventLevel.RULE: ("RULE", "bold cyan"),
    EventLevel.DB: ("DB", "bold white"),
}


class ConsoleSink:
    """Prints outcome events with a coloured level prefix."""

    def __init__(self, target: Console | None = None):
        self._console = target or console

    def emit(self, event: LogEvent) -> None:
        label, style = _LEVEL_STYLES[event.level]
        parts = [f"[{style}]{label}[/{style}]", escape(event.message)]
        for key, value in event.fields.items():
            parts.append(f"[dim]{escape(str(key))}=[/dim]{escape(str(value))}")
        if event.error is not None:
            parts.append(f"[red]error=[/red]{escape(str(event.error))}")
        self._console.print(" ".join(parts), highlight=False)


# ── Wiring helpers ───────────────────────────────────────────────────────


def fail(error: BaseException, code: int = 1) -> typer.Exit:
    """Print *error* to stderr and return the ``typer.Exit`` to raise."""
    err_console.print(f"[bold red]Error[/bold red]: {escape(str(error))}")
    return typer.Exit(code=code)


def load_config(state: CLIState) -> MonitorConfig:
    try:
        return load_monitor_config(state.resolved_config_path())
    except DataspyError as e:
        raise fail(e) from e


@contextmanager
def open_store(settings: DataspySettings) -> Iterator[HistoryStore]:
    """Open the history store, exiting with status 1 if that fails."""
    try:
        store = HistoryStore.open(settings.history_path, lock_timeout=settings.store_lock_timeout)
    except DataspyError as e:
        raise fail(e) from e
    try:
        yield store
    finally:
        store.close()


def build_scheduler(
    config: MonitorConfig,
    store: HistoryStore,
    settings: DataspySettings,
    sink: EventSink,
) -> RuleScheduler:
    return RuleScheduler(
        config,
        store,
        sink=sink,
        executor=QueryExecutor(default_timeout=settings.default_query_timeout),
        max_workers=settings.scheduler_max_workers,
        timezone=settings.timezone or None,
    )


# ── Output helpers ───────────────────────────────────────────────────────


def output_records(records: list[ExecutionRecord], *, as_json: bool = False, title: str = "") -> None:
    """Render execution records as a Rich table or JSON."""
    if as_json:
        console.print_json(json.dumps([r.to_dict() for r in records]))
        return

    if not records:
        console.print("[dim]No executions.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for column in ("Start", "Rule", "Server", "Status", "Duration (ms)", "Rows", "Result / Error"):
        table.add_column(column, overflow="fold")
    for record in records:
        status_style = "green" if record.succeeded else "red"
        table.add_row(
            record.start_time.isoformat(timespec="seconds"),
            record.rule_name,
            record.server_name or "-",
            f"[{status_style}]{record.status.value}[/{status_style}]",
            f"{record.duration_ms:g}",
            str(record.rows_affected),
            escape((record.result if record.succeeded else record.error).rstrip()),
        )
    console.print(table)
