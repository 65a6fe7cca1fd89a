#!/usr/bin/env python3
"""Local Rules — Run rules against a throwaway SQLite database and read the history back.

WHY
───
Every dataspy rule is just SQL plus a database family.  Pointing a rule at
a local SQLite file is the quickest way to see the whole loop: the
scheduler resolves the rule, the executor runs it, the outcome events are
printed and exactly one execution record lands in the history store.

ARCHITECTURE
────────────
    MonitorConfig (rules, servers, schedules)
        │
        ▼
    RuleScheduler ──▶ QueryExecutor ──▶ SQLite target (demo.db)
        │                  │
        │                  └─▶ LogEvents ──▶ CollectingSink
        ▼
    HistoryStore (history.db)

Run: python examples/local_rules.py
"""

import os
import sqlite3
import tempfile
from pathlib import Path

from dataspy.core.history import HistoryStore
from dataspy.core.models import MonitorConfig, Rule, Schedule, Server
from dataspy.core.scheduling import RuleScheduler
from dataspy.execution import CollectingSink


def _make_target(path: Path) -> None:
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE orders (id INTEGER PRIMARY KEY, customer_id INTEGER, note TEXT);
        INSERT INTO orders VALUES (1, 10, 'ok'), (2, NULL, 'orphan'), (3, NULL, NULL);
        """
    )
    conn.commit()
    conn.close()


def main():
    print("=" * 60)
    print("dataspy — Local Rules")
    print("=" * 60)

    workdir = Path(tempfile.mkdtemp(prefix="dataspy-demo-"))
    target = workdir / "demo.db"
    _make_target(target)
    os.environ["DEMO_DB"] = str(target)

    config = MonitorConfig(
        servers=(Server("demo", "sqlite", "DEMO_DB"),),
        rules=(
            Rule("orphaned_orders", "Orders without a customer", "sqlite",
                 "SELECT id, note FROM orders WHERE customer_id IS NULL"),
            Rule("broken", "Refers to a missing table", "sqlite", "SELECT * FROM nope"),
        ),
        schedules=(Schedule("orphaned_orders", "0 */5 * * * *", "demo"),),
    )

    # --- 1. Run every rule once ---------------------------------------------
    print("\n[1] execute_all_rules()")
    sink = CollectingSink()
    with HistoryStore.open(workdir / "history.db") as store:
        scheduler = RuleScheduler(config, store, sink=sink, timezone="UTC")
        summary = scheduler.execute_all_rules()
        for event in sink.events:
            print(f"  {event.level.value.upper():8} {event.message}")
        print(f"  succeeded={summary.succeeded} failed={summary.failed}")

        # --- 2. Timers (not started) ----------------------------------------
        print("\n[2] Registered timers")
        scheduler.register(config.schedules)
        for job in scheduler.jobs():
            print(f"  {job.job_id:22} {job.cron:16} next={job.next_run_time}")

        # --- 3. History -----------------------------------------------------
        print("\n[3] get_latest_executions(10)")
        for record in store.get_latest_executions(10):
            text = record.result if record.succeeded else record.error
            print(f"  {record.rule_name:18} {record.status.value:8} {text.splitlines()[0]}")

    print(f"\nFiles kept in {workdir}")


if __name__ == "__main__":
    main()
