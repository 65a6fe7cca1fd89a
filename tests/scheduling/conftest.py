"""Pytest fixtures for scheduling tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from dataspy.core.scheduling import RuleScheduler


@pytest.fixture
def scheduler(sample_config, history_store, sink, sqlite_target) -> Iterator[RuleScheduler]:
    """A RuleScheduler over the SQLite sample rules; stopped after the test."""
    rs = RuleScheduler(sample_config, history_store, sink=sink, max_workers=2, timezone="UTC")
    yield rs
    rs.shutdown(wait=True)
