"""
CLI: ``dataspy schedule`` — inspect configured schedules.
"""

from __future__ import annotations

from datetime import UTC, datetime

import typer
from rich.markup import escape
from rich.table import Table

from dataspy.cli.utils import console, fail, get_state, load_config
from dataspy.core.errors import ScheduleError
from dataspy.core.scheduling import build_trigger, next_fire_time

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_schedules(ctx: typer.Context) -> None:
    """Validate every cron expression and show when each schedule fires next."""
    state = get_state(ctx)
    config = load_config(state)
    timezone = state.settings.timezone or None
    now = datetime.now(UTC)

    if not config.schedules:
        console.print("[dim]No schedules.[/dim]")
        return

    table = Table(title="Schedules", pad_edge=False)
    for column in ("Rule", "Cron", "Server", "Next run"):
        table.add_column(column)

    for schedule in config.schedules:
        try:
            trigger = build_trigger(schedule.cron, timezone)
        except ScheduleError as e:
            raise fail(ScheduleError(f"rule {schedule.rule}: {e}")) from e
        next_run = next_fire_time(trigger, now)
        table.add_row(
            escape(schedule.rule),
            schedule.cron,
            schedule.server or "-",
            next_run.isoformat(timespec="seconds") if next_run else "never",
        )
    console.print(table)
