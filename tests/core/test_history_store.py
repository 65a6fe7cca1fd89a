"""Tests for the SQLite execution history store."""

from datetime import UTC, datetime, timedelta

import pytest

from dataspy.core.errors import StorageError, StoreLockedError
from dataspy.core.history import HISTORY_TABLE, HistoryStore
from dataspy.core.models import ExecutionRecord, ExecutionStatus

BASE = datetime(2025, 3, 1, 8, 0, 0, tzinfo=UTC)


def make_record(rule="r1", server="s1", offset_s=0, *, ok=True):
    start = BASE + timedelta(seconds=offset_s)
    return ExecutionRecord(
        rule_name=rule,
        server_name=server,
        start_time=start,
        end_time=start + timedelta(milliseconds=5),
        status=ExecutionStatus.SUCCESS if ok else ExecutionStatus.ERROR,
        result="Query completed successfully (0 rows)" if ok else "",
        error="" if ok else "failed to ping database",
        description="desc",
        duration_ms=5.0,
    )


class TestOpen:
    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "history.db"
        with HistoryStore.open(path) as store:
            assert store.path == str(path)
        assert path.exists()

    def test_reopen_keeps_records(self, history_path):
        with HistoryStore.open(history_path) as store:
            store.save_execution_record(make_record())
        with HistoryStore.open(history_path) as store:
            assert store.count() == 1

    def test_second_process_is_locked_out(self, history_store, history_path):
        with pytest.raises(StoreLockedError) as exc_info:
            HistoryStore.open(history_path, lock_timeout=0.1)
        assert exc_info.value.path == str(history_path)

    def test_in_memory_store(self):
        with HistoryStore.open(":memory:") as store:
            store.save_execution_record(make_record())
            assert store.count() == 1


class TestSave:
    """Appends are atomic and never overwrite."""

    def test_returns_key(self, history_store):
        record = make_record()
        assert history_store.save_execution_record(record) == record.key

    def test_round_trip(self, history_store):
        record = make_record(ok=False)
        history_store.save_execution_record(record)
        assert history_store.get_latest_executions(1) == [record]

    def test_duplicate_key_fails_without_overwrite(self, history_store):
        original = make_record()
        history_store.save_execution_record(original)
        clash = make_record(ok=False)
        assert clash.key == original.key

        with pytest.raises(StorageError) as exc_info:
            history_store.save_execution_record(clash)

        assert exc_info.value.context.rule == "r1"
        assert history_store.get_latest_executions(5) == [original]

    def test_store_usable_after_failed_write(self, history_store):
        history_store.save_execution_record(make_record())
        with pytest.raises(StorageError):
            history_store.save_execution_record(make_record())
        history_store.save_execution_record(make_record(offset_s=1))
        assert history_store.count() == 2

    def test_closed_store_rejects_writes(self, history_path):
        store = HistoryStore.open(history_path)
        store.close()
        store.close()
        with pytest.raises(StorageError, match="closed"):
            store.save_execution_record(make_record())


class TestGetLatestExecutions:
    def test_newest_first_with_limit(self, history_store):
        for offset in (0, 2, 1, 3):
            history_store.save_execution_record(make_record(offset_s=offset))

        latest = history_store.get_latest_executions(2)

        assert [r.start_time for r in latest] == [BASE + timedelta(seconds=3), BASE + timedelta(seconds=2)]

    def test_fewer_than_requested(self, history_store):
        history_store.save_execution_record(make_record())
        assert len(history_store.get_latest_executions(10)) == 1

    @pytest.mark.parametrize("n", [0, -1])
    def test_non_positive_limit(self, history_store, n):
        history_store.save_execution_record(make_record())
        assert history_store.get_latest_executions(n) == []

    def test_empty_store(self, history_store):
        assert history_store.get_latest_executions(10) == []

    def test_same_instant_ties_are_stable(self, history_store):
        history_store.save_execution_record(make_record(rule="a"))
        history_store.save_execution_record(make_record(rule="b"))
        assert [r.rule_name for r in history_store.get_latest_executions(2)] == ["b", "a"]


class TestGetExecutionsByRule:
    def test_oldest_first_and_exact_match(self, history_store):
        history_store.save_execution_record(make_record(rule="r1", offset_s=5))
        history_store.save_execution_record(make_record(rule="r1", offset_s=1))
        history_store.save_execution_record(make_record(rule="r10", offset_s=2))
        history_store.save_execution_record(make_record(rule="r1-s1", offset_s=3))

        records = history_store.get_executions_by_rule("r1")

        assert [r.rule_name for r in records] == ["r1", "r1"]
        assert records[0].start_time < records[1].start_time

    def test_rule_names_containing_separator(self, history_store):
        first = make_record(rule="orders-daily", server="pg")
        second = make_record(rule="orders", server="daily-pg")
        assert first.key == second.key

        history_store.save_execution_record(first)
        history_store.save_execution_record(second)

        assert history_store.count() == 2
        assert history_store.get_executions_by_rule("orders-daily") == [first]
        assert history_store.get_executions_by_rule("orders") == [second]

    def test_unknown_rule(self, history_store):
        assert history_store.get_executions_by_rule("nope") == []


class TestCorruption:
    def test_corrupt_payload_is_a_storage_error(self, history_store):
        history_store._conn.execute(
            f"INSERT INTO {HISTORY_TABLE} VALUES ('k', 1, 'r1', 's1', 'not json')"
        )
        with pytest.raises(StorageError, match="corrupt"):
            history_store.get_executions_by_rule("r1")
