"""Fixtures for CLI tests: a config file in the working directory, quiet logging."""

from __future__ import annotations

import importlib
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from dataspy.cli import utils as cli_utils

CONFIG_TOML = """
[[servers]]
Name = "local"
Type = "sqlite"
ConnStringVar = "LOCAL_DB"

[[rules]]
Name = "orphaned_orders"
Description = "Orders without a customer"
DbType = "sqlite"
Query = "SELECT id, note FROM orders WHERE customer_id IS NULL ORDER BY id"

[[rules]]
Name = "no_rows"
Description = "Always empty"
DbType = "sqlite"
Query = "SELECT id FROM orders WHERE id < 0"

[[rules]]
Name = "broken"
Description = "Bad SQL"
DbType = "sqlite"
Query = "SELECT * FROM missing_table"

[[schedules]]
Server = "local"
Rule = "orphaned_orders"
CronStr = "0 */5 * * * *"

[[schedules]]
Server = "local"
Rule = "no_rows"
CronStr = "@hourly"
"""


@pytest.fixture(autouse=True)
def configure_logging_mock(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """The root callback must not reconfigure the test process's logging."""
    mock = MagicMock()
    # the package rebinds ``dataspy.cli.app`` to the Typer object
    monkeypatch.setattr(importlib.import_module("dataspy.cli.app"), "configure_logging", mock)
    return mock


@pytest.fixture(autouse=True)
def captured_logs() -> Iterator[list[dict]]:
    """structlog output is captured instead of printed to stdout."""
    with capture_logs() as entries:
        yield entries


@pytest.fixture(autouse=True)
def _wide_consoles(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep Rich from folding table cells and error messages."""
    monkeypatch.setattr(cli_utils.console, "width", 200)
    monkeypatch.setattr(cli_utils.err_console, "width", 200)


@pytest.fixture
def config_file(tmp_path: Path, sqlite_target: Path) -> Path:
    """``dataspy.toml`` in the working directory (the default location)."""
    path = tmp_path / "dataspy.toml"
    path.write_text(CONFIG_TOML)
    return path
