"""
Root Typer application for the dataspy CLI.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from pathlib import Path

import typer
from typer import Typer

from dataspy import __version__
from dataspy.cli.utils import CLIState, fail
from dataspy.core.config import get_settings, load_env_file
from dataspy.core.errors import DataspyError
from dataspy.core.logging import configure_logging

app = Typer(
    name="dataspy",
    help="dataspy — run SQL rules against your databases on a schedule.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("dataspy")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"dataspy {v}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    env: Path | None = typer.Option(
        None,
        "--env",
        "-e",
        help="Environment file with connection strings (default: ./.env if present).",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Rule configuration file (default: DATASPY_CONFIG_PATH or dataspy.toml).",
    ),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """dataspy CLI — run rules once, run the daemon, inspect history."""
    try:
        load_env_file(env)
    except DataspyError as e:
        raise fail(e) from e

    # settings may come from the env file just loaded
    get_settings.cache_clear()
    settings = get_settings()
    configure_logging(settings.log_level, json_format=settings.json_logs)

    ctx.obj = CLIState(config_path=config, env_file=env)


# ── Sub-command registration ─────────────────────────────────────────────

from dataspy.cli.daemon import daemon  # noqa: E402
from dataspy.cli.history import app as history_app  # noqa: E402
from dataspy.cli.rules import app as rules_app  # noqa: E402
from dataspy.cli.run import run  # noqa: E402
from dataspy.cli.schedule import app as schedule_app  # noqa: E402

app.command("run")(run)
app.command("daemon")(daemon)
app.add_typer(history_app, name="history", help="Execution history.")
app.add_typer(schedule_app, name="schedule", help="Configured schedules.")
app.add_typer(rules_app, name="rules", help="Configured rules.")
