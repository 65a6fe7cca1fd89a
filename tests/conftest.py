"""
Shared pytest fixtures and configuration for dataspy tests.

This module provides:
- Automatic unit/integration markers by test location
- Settings/environment isolation
- A temporary history store and a real SQLite target database
- ``FakeHandle``: a scriptable stand-in for a live database connection

Usage:
    Fixtures are auto-discovered by pytest.

    def test_something(history_store, sqlite_target, sample_config):
        ...
"""

from __future__ import annotations

import os
import sqlite3
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Ensure dataspy package (src/) and the test helpers (tests._support) are importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from dataspy.core.config import get_settings
from dataspy.core.history import HistoryStore
from dataspy.core.models import MonitorConfig, Rule, Schedule, Server
from dataspy.execution import CollectingSink
from tests._support.fakes import FakeHandle, RecordingOpener

# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Drop DATASPY_* variables and the cached settings around each test."""
    for key in list(os.environ):
        if key.startswith("DATASPY_"):
            monkeypatch.delenv(key)
    # keep pydantic-settings from reading a developer's ./.env
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# History store
# =============================================================================


@pytest.fixture
def history_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "dataspy.db"


@pytest.fixture
def history_store(history_path: Path) -> Iterator[HistoryStore]:
    store = HistoryStore.open(history_path)
    yield store
    store.close()


# =============================================================================
# Target database
# =============================================================================


@pytest.fixture
def sqlite_target(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A SQLite database with an ``orders`` table, exposed as $LOCAL_DB."""
    path = tmp_path / "target.db"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE orders (id INTEGER PRIMARY KEY, customer_id INTEGER, note TEXT, payload BLOB);
        INSERT INTO orders VALUES (1, 10, 'ok', NULL);
        INSERT INTO orders VALUES (2, NULL, 'orphan', X'6869');
        INSERT INTO orders VALUES (3, NULL, NULL, NULL);
        """
    )
    conn.commit()
    conn.close()
    monkeypatch.setenv("LOCAL_DB", str(path))
    return path


@pytest.fixture
def local_server() -> Server:
    return Server(name="local", type="sqlite", conn_string_var="LOCAL_DB")


@pytest.fixture
def sample_config(local_server: Server) -> MonitorConfig:
    return MonitorConfig(
        servers=(local_server,),
        rules=(
            Rule(
                name="orphaned_orders",
                description="Orders without a customer",
                db_type="sqlite",
                query="SELECT id, note FROM orders WHERE customer_id IS NULL ORDER BY id",
            ),
            Rule(
                name="no_rows",
                description="Always empty",
                db_type="sqlite",
                query="SELECT id FROM orders WHERE id < 0",
            ),
            Rule(
                name="broken",
                description="Bad SQL",
                db_type="sqlite",
                query="SELECT * FROM missing_table",
            ),
        ),
        schedules=(
            Schedule(rule="orphaned_orders", cron="0 */5 * * * *", server="local"),
            Schedule(rule="no_rows", cron="@hourly", server="local"),
        ),
    )


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


# =============================================================================
# Fake connection
# =============================================================================


@pytest.fixture
def fake_handle() -> FakeHandle:
    return FakeHandle(rows=[(1,)])


@pytest.fixture
def recording_opener(fake_handle: FakeHandle) -> RecordingOpener:
    return RecordingOpener(fake_handle)
