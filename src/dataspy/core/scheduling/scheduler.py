"""Rule scheduler - owns the configuration and runs rules on cron timers.

Manifesto:
    The scheduler is the seam between "a rule is due" and "a row was
    written to the history".  It resolves a rule by name, finds a server of
    the rule's database type, hands both to the
    :class:`~dataspy.execution.executor.QueryExecutor`, writes exactly one
    :class:`~dataspy.core.models.ExecutionRecord` - whatever happened - and
    then relays the run's events to the injected sink.

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────────┐
        │                         RuleScheduler                          │
        │                                                                │
        │  MonitorConfig ── start() ──▶ BackgroundScheduler (APScheduler)│
        │  (rules, servers,               one trigger per schedule       │
        │   schedules)                    thread pool, max_workers       │
        │                                      │ fires                   │
        │                                      ▼                         │
        │                         InFlightGuard (skip if rule busy)      │
        │                                      │                         │
        │                                      ▼                         │
        │   execute_rule_by_name ─▶ QueryExecutor ─▶ events ─▶ EventSink │
        │                │                                               │
        │                └──────────▶ ExecutionRecord ─▶ HistoryStore    │
        └───────────────────────────────────────────────────────────────┘

Lifecycle:
    ``not started`` ──start()──▶ ``started``.  There is no way back:
    ``shutdown()`` stops the timers for process exit but the scheduler
    cannot be started again.

Examples:
    >>> scheduler = RuleScheduler(config, store, sink=LoggingSink())
    >>> scheduler.start()
    >>> record = scheduler.execute_rule_by_name("orphaned_orders")
    >>> summary = scheduler.execute_all_rules()
    >>> summary.failed
    0

Guardrails:
    ❌ DON'T: Let one rule's failure stop the others
    ✅ DO: Record it, count it, move on

    ❌ DON'T: Fail a run because its history record could not be written
    ✅ DO: Log ``history_write_failed`` and report the run's own outcome

    ❌ DON'T: Let a broken sink (closed console, dead pipe) cost the record
    ✅ DO: Write first, relay after, log ``event_sink_failed``

Tags:
    dataspy, scheduler, apscheduler, cron, runner

Doc-Types:
    api-reference
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger

from dataspy.core.errors import (
    DataspyError,
    NotFoundError,
    RuleNotFoundError,
    ScheduleError,
    ServerNotFoundError,
    StorageError,
)
from dataspy.core.history import HistoryStore
from dataspy.core.logging import LogContext, get_logger
from dataspy.core.models import (
    EventLevel,
    ExecutionRecord,
    ExecutionResult,
    LogEvent,
    MonitorConfig,
    Rule,
    RunSummary,
    Schedule,
    Server,
)
from dataspy.core.scheduling.cron import build_trigger, next_fire_time
from dataspy.core.scheduling.guard import InFlightGuard
from dataspy.execution.events import EventSink, NullSink
from dataspy.execution.executor import QueryExecutor

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class ScheduledJob:
    """A registered timer, as reported by :meth:`RuleScheduler.jobs`."""

    job_id: str
    rule: str
    cron: str
    server: str
    next_run_time: datetime | None


@dataclass(frozen=True)
class _Entry:
    job_id: str
    schedule: Schedule
    trigger: BaseTrigger


class RuleScheduler:
    """Runs rules on demand and on their cron schedules.

    Args:
        config: Rules, servers and schedules (immutable)
        store: Where execution records are written
        sink: Receives every outcome event (defaults to discarding them)
        executor: Runs the queries (defaults to a registry-backed executor)
        max_workers: Size of the thread pool scheduled runs execute on
        timezone: Timezone cron expressions are evaluated in (local if None)
        guard: Per-rule in-flight guard for scheduled runs
        clock: Source of record start/end times
    """

    def __init__(
        self,
        config: MonitorConfig,
        store: HistoryStore,
        *,
        sink: EventSink | None = None,
        executor: QueryExecutor | None = None,
        max_workers: int = 10,
        timezone: tzinfo | str | None = None,
        guard: InFlightGuard | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._config = config
        self._store = store
        self._sink: EventSink = sink or NullSink()
        self._executor = executor or QueryExecutor()
        self._timezone = timezone or None
        self._guard = guard or InFlightGuard()
        self._clock = clock

        scheduler_kwargs = {
            "executors": {"default": ThreadPoolExecutor(max_workers)},
            "job_defaults": {
                "coalesce": True,
                # overlap policy is the in-flight guard's job
                "max_instances": max_workers,
                "misfire_grace_time": 30,
            },
        }
        if self._timezone is not None:
            scheduler_kwargs["timezone"] = self._timezone
        self._scheduler = BackgroundScheduler(**scheduler_kwargs)

        self._entries: list[_Entry] = []
        self._ids = itertools.count(1)
        self._started = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def started(self) -> bool:
        return self._started

    @property
    def guard(self) -> InFlightGuard:
        return self._guard

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _build_triggers(self, schedules: Iterable[Schedule]) -> list[tuple[Schedule, BaseTrigger]]:
        built = []
        for schedule in schedules:
            try:
                trigger = build_trigger(schedule.cron, self._timezone)
            except ScheduleError as e:
                raise ScheduleError(
                    f"failed to schedule rule {schedule.rule}: {e}", cause=e
                ).with_context(rule=schedule.rule, cron=schedule.cron) from e
            built.append((schedule, trigger))
        return built

    def _add(self, schedule: Schedule, trigger: BaseTrigger) -> None:
        job_id = f"{schedule.rule}#{next(self._ids)}"
        self._scheduler.add_job(
            self._run_scheduled,
            trigger,
            args=(schedule.rule, job_id),
            id=job_id,
            name=f"rule:{schedule.rule}",
        )
        self._entries.append(_Entry(job_id, schedule, trigger))

    def register(self, schedules: Iterable[Schedule]) -> int:
        """Add timers for *schedules* (all or none).

        Registration does not deduplicate: registering the same schedule
        twice gives two independent timers.

        Returns:
            Number of timers added

        Raises:
            ScheduleError: A cron expression is malformed (nothing is added)
        """
        built = self._build_triggers(schedules)
        for schedule, trigger in built:
            self._add(schedule, trigger)
        return len(built)

    def _check_schedule_servers(self) -> None:
        for schedule in self._config.schedules:
            rule = self._config.find_rule(schedule.rule)
            if rule is None:
                logger.warning("schedule_rule_unknown", rule=schedule.rule, cron=schedule.cron)
                continue
            if not schedule.server:
                continue
            server = self._config.find_server(schedule.server)
            if server is None:
                logger.warning("schedule_server_unknown", rule=schedule.rule, server=schedule.server)
            elif server.type != rule.db_type:
                logger.warning(
                    "schedule_server_ignored",
                    rule=schedule.rule,
                    server=schedule.server,
                    server_type=server.type,
                    db_type=rule.db_type,
                )

    def start(self) -> None:
        """Register one timer per configured schedule and start the timers.

        Raises:
            ScheduleError: A cron expression is malformed (no timer is
                started) or the scheduler was already started
        """
        if self._started:
            raise ScheduleError("scheduler already started")

        self.register(self._config.schedules)
        self._check_schedule_servers()
        self._scheduler.start()
        self._started = True
        logger.info("scheduler_started", jobs=len(self._entries))

    def shutdown(self, wait: bool = True) -> None:
        """Stop the timers; with *wait* running jobs finish first."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("scheduler_stopped")

    def jobs(self) -> list[ScheduledJob]:
        """Registered timers with their next fire time."""
        now = self._clock()
        running = self._scheduler.running
        result = []
        for entry in self._entries:
            if running:
                job = self._scheduler.get_job(entry.job_id)
                next_run = job.next_run_time if job is not None else None
            else:
                next_run = next_fire_time(entry.trigger, now)
            result.append(
                ScheduledJob(
                    job_id=entry.job_id,
                    rule=entry.schedule.rule,
                    cron=entry.schedule.cron,
                    server=entry.schedule.server,
                    next_run_time=next_run,
                )
            )
        return result

    def _run_scheduled(self, rule_name: str, job_id: str) -> None:
        if not self._guard.acquire(rule_name, job_id):
            holder = self._guard.get_lock_holder(rule_name)
            self._relay(
                LogEvent(
                    level=EventLevel.WARN,
                    message="Skipping run, previous run still in progress",
                    fields={"rule": rule_name, "job": job_id, "holder": holder},
                )
            )
            logger.warning("scheduled_run_skipped", rule=rule_name, job=job_id, holder=holder)
            return

        try:
            self.execute_rule_by_name(rule_name)
        except DataspyError as e:
            logger.warning("scheduled_run_failed", rule=rule_name, job=job_id, error=str(e))
        except Exception:
            logger.exception("scheduled_run_crashed", rule=rule_name, job=job_id)
        finally:
            self._guard.release(rule_name)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _resolve(self, name: str) -> tuple[Rule, Server]:
        rule = self._config.find_rule(name)
        if rule is None:
            raise RuleNotFoundError(name)
        server = self._config.find_server_for(rule.db_type)
        if server is None:
            raise ServerNotFoundError(rule.db_type, rule=rule.name)
        return rule, server

    def execute_rule_by_name(self, name: str) -> ExecutionRecord:
        """Run one rule now and record the outcome.

        Exactly one record is written whether the run succeeds or fails,
        including when the rule or its server cannot be found.

        Returns:
            The written record (on success)

        Raises:
            DataspyError: The run failed; the failure is already recorded
        """
        start = self._clock()
        rule = self._config.find_rule(name)
        server: Server | None = None
        outcome: ExecutionResult | None = None
        error: DataspyError | None = None
        events: list[LogEvent] = []

        try:
            rule, server = self._resolve(name)
        except NotFoundError as e:
            error = e
            events.append(
                LogEvent(level=EventLevel.ERROR, message="Failed to resolve rule", fields={"rule": name}, error=e)
            )
        else:
            with LogContext(rule=rule.name, server=server.name):
                outcome = self._executor.execute(server, rule)
            events.extend(outcome.events)
            error = outcome.error

        record = ExecutionRecord.from_outcome(
            rule_name=name,
            server_name=server.name if server is not None else "",
            description=rule.description if rule is not None else "",
            start_time=start,
            end_time=self._clock(),
            outcome=outcome,
            error=error,
        )
        self._save(record)
        for event in events:
            self._relay(event)

        if error is not None:
            raise error
        return record

    def _relay(self, event: LogEvent) -> None:
        try:
            self._sink.emit(event)
        except Exception as e:
            logger.warning("event_sink_failed", message=event.message, error=repr(e))

    def _save(self, record: ExecutionRecord) -> None:
        try:
            self._store.save_execution_record(record)
        except StorageError as e:
            logger.error(
                "history_write_failed",
                rule=record.rule_name,
                server=record.server_name,
                status=record.status.value,
                error=str(e),
            )

    def execute_all_rules(self) -> RunSummary:
        """Run every configured rule in order; failures are counted, not raised."""
        succeeded = failed = 0
        for rule in self._config.rules:
            try:
                self.execute_rule_by_name(rule.name)
                succeeded += 1
            except DataspyError:
                failed += 1
        summary = RunSummary(succeeded=succeeded, failed=failed)
        logger.info("all_rules_executed", succeeded=summary.succeeded, failed=summary.failed)
        return summary


__all__ = ["RuleScheduler", "ScheduledJob"]
