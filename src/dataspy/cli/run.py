"""
CLI: ``dataspy run`` — execute rules once, now.
"""

from __future__ import annotations

import typer

from dataspy.cli.utils import ConsoleSink, build_scheduler, console, fail, get_state, load_config, open_store
from dataspy.core.errors import DataspyError


def run(
    ctx: typer.Context,
    rule: str | None = typer.Option(None, "--rule", "-r", help="Run a single rule by name."),
    all_rules: bool = typer.Option(False, "--all", "-a", help="Run every configured rule."),
) -> None:
    """Run one rule (--rule) or every rule (--all) and record the outcome."""
    if rule and all_rules:
        raise typer.BadParameter("--rule and --all are mutually exclusive")
    if not rule and not all_rules:
        raise typer.BadParameter("either --rule or --all is required")

    state = get_state(ctx)
    settings = state.settings
    config = load_config(state)

    with open_store(settings) as store:
        scheduler = build_scheduler(config, store, settings, ConsoleSink())

        if all_rules:
            summary = scheduler.execute_all_rules()
            console.print(
                f"Completed: [green]{summary.succeeded} succeeded[/green], "
                f"[red]{summary.failed} failed[/red]"
            )
            if summary.failed:
                raise typer.Exit(code=1)
            return

        try:
            record = scheduler.execute_rule_by_name(rule)
        except DataspyError as e:
            raise fail(e) from e
        console.print(record.result.rstrip(), highlight=False, markup=False)
