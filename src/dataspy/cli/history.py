"""
CLI: ``dataspy history`` — inspect recorded executions.
"""

from __future__ import annotations

import typer

from dataspy.cli.utils import get_state, open_store, output_records

app = typer.Typer(no_args_is_help=True)


@app.command("latest")
def latest(
    ctx: typer.Context,
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Number of executions to show."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the most recent executions, newest first."""
    settings = get_state(ctx).settings
    with open_store(settings) as store:
        records = store.get_latest_executions(limit)
    output_records(records, as_json=json_out, title="Latest executions")


@app.command("rule")
def by_rule(
    ctx: typer.Context,
    rule_name: str = typer.Argument(..., help="Rule name"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show every execution of one rule, oldest first."""
    settings = get_state(ctx).settings
    with open_store(settings) as store:
        records = store.get_executions_by_rule(rule_name)
    output_records(records, as_json=json_out, title=f"Executions of {rule_name}")
