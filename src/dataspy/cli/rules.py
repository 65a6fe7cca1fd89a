"""
CLI: ``dataspy rules`` — inspect configured rules.
"""

from __future__ import annotations

import typer
from rich.markup import escape
from rich.table import Table

from dataspy.cli.utils import console, get_state, load_config

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_rules(ctx: typer.Context) -> None:
    """List rules and the server each one resolves to."""
    config = load_config(get_state(ctx))

    if not config.rules:
        console.print("[dim]No rules.[/dim]")
        return

    table = Table(title="Rules", pad_edge=False)
    for column in ("Name", "DB type", "Server", "Description"):
        table.add_column(column, overflow="fold")
    for rule in config.rules:
        server = config.find_server_for(rule.db_type)
        table.add_row(
            escape(rule.name),
            rule.db_type,
            server.name if server else "[red]none[/red]",
            escape(rule.description),
        )
    console.print(table)
