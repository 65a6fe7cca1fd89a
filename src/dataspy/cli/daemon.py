"""
CLI: ``dataspy daemon`` — run rules on their schedules until interrupted.
"""

from __future__ import annotations

import signal
import threading

import typer

from dataspy.cli.utils import ConsoleSink, build_scheduler, console, fail, get_state, load_config, open_store
from dataspy.core.errors import DataspyError
from dataspy.core.logging import get_logger
from dataspy.execution import LoggingSink

logger = get_logger(__name__)


def _wait_for_signal() -> int:
    """Block until SIGINT or SIGTERM; return the signal number."""
    stop = threading.Event()
    received: list[int] = []

    def _handler(signum, frame) -> None:
        received.append(signum)
        stop.set()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        while not stop.wait(timeout=1.0):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    return received[0]


def daemon(ctx: typer.Context) -> None:
    """Start the scheduler and block until SIGINT/SIGTERM."""
    state = get_state(ctx)
    settings = state.settings
    config = load_config(state)

    with open_store(settings) as store:
        sink = LoggingSink() if settings.json_logs else ConsoleSink()
        scheduler = build_scheduler(config, store, settings, sink)
        try:
            scheduler.start()
        except DataspyError as e:
            raise fail(e) from e

        console.print(
            f"[bold]dataspy daemon[/bold] running {len(config.schedules)} schedule(s); "
            "press Ctrl+C to stop"
        )
        for job in scheduler.jobs():
            logger.info("job_scheduled", job=job.job_id, cron=job.cron, next_run=str(job.next_run_time))

        signum = _wait_for_signal()
        logger.info("shutdown_requested", signal=signal.Signals(signum).name)
        scheduler.shutdown(wait=True)

    console.print("dataspy daemon stopped")
