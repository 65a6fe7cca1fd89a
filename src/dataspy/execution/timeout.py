"""Query deadlines and cancellation tokens.

A hung statement must not block a scheduler worker forever.  The executor
runs the query-and-scan step through :func:`run_with_timeout`; when the
deadline passes the :class:`CancelToken` is set, which asks the driver to
abort the statement (via callbacks registered on the token) and tells the
scan loop to stop fetching.

Manifesto:
    - **Cancellable:** Expiry interrupts the statement server-side, not just the wait
    - **Cooperative:** Long scans check the token between rows
    - **Optional:** ``None`` or ``0`` disables the deadline entirely

Examples:
    >>> token = CancelToken()
    >>> token.on_cancel(handle.cancel)
    >>> rows = run_with_timeout(lambda: fetch(handle, token), 30.0, token=token)

Guardrails:
    - Sync timeout uses a worker thread; the driver must tolerate being
      cancelled from another thread
    - The worker gets a short grace period after cancellation so the caller
      does not close a connection that is still mid-statement

Tags:
    timeout, deadline, cancellation, execution, dataspy

Doc-Types:
    api-reference
"""

from __future__ import annotations

import concurrent.futures
import threading
import time
from collections.abc import Callable
from typing import TypeVar

from dataspy.core.logging import get_logger

logger = get_logger(__name__)

#: Seconds to wait for the worker to unwind after the token is cancelled
CANCEL_GRACE_SECONDS = 5.0


class TimeoutExpired(TimeoutError):
    """Raised when an operation exceeds its deadline.

    Attributes:
        timeout: The timeout value that was exceeded
        elapsed: How long the operation ran before being interrupted
        operation: Name/description of the operation
    """

    def __init__(
        self,
        timeout: float,
        elapsed: float | None = None,
        operation: str = "operation",
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation
        msg = f"Operation '{operation}' timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"
        super().__init__(msg)


class OperationCancelled(Exception):
    """Raised inside the worker when it notices its token was cancelled."""


class CancelToken:
    """One-shot cancellation flag with callbacks.

    Callbacks registered with :meth:`on_cancel` run once, in the thread that
    calls :meth:`cancel`.  Registering after cancellation runs the callback
    immediately.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        self._invoke(callback)

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._invoke(callback)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("operation cancelled")

    @staticmethod
    def _invoke(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception as e:  # a failed cancel must not mask the timeout
            logger.warning("cancel_callback_failed", error=str(e), error_type=type(e).__name__)


T = TypeVar("T")


def run_with_timeout(
    func: Callable[[], T],
    timeout_seconds: float | None,
    *,
    token: CancelToken | None = None,
    operation: str | None = None,
    grace_seconds: float = CANCEL_GRACE_SECONDS,
) -> T:
    """Run *func* with a deadline on a dedicated worker thread.

    Args:
        func: Zero-argument callable to execute
        timeout_seconds: Maximum execution time; ``None`` or ``0`` runs
            *func* inline with no deadline
        token: Cancelled when the deadline passes
        operation: Name for error messages
        grace_seconds: How long to wait for the worker after cancelling

    Returns:
        Result of ``func()``

    Raises:
        TimeoutExpired: If execution exceeds the deadline
        Exception: Any exception raised by func
    """
    if not timeout_seconds:
        return func()
    if timeout_seconds < 0:
        raise ValueError(f"Timeout must be non-negative, got {timeout_seconds}")

    start = time.monotonic()
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="dataspy-deadline")
    try:
        future = executor.submit(func)
        try:
            return future.result(timeout=timeout_seconds)
        except concurrent.futures.TimeoutError:
            elapsed = time.monotonic() - start
            logger.warning(
                "deadline_expired",
                operation=operation or getattr(func, "__name__", "unknown"),
                timeout=timeout_seconds,
            )
            if token is not None:
                token.cancel()
            # let the worker unwind; its outcome no longer matters
            concurrent.futures.wait([future], timeout=grace_seconds)
            raise TimeoutExpired(
                timeout=timeout_seconds,
                elapsed=elapsed,
                operation=operation or getattr(func, "__name__", "unknown"),
            ) from None
    finally:
        executor.shutdown(wait=False)


__all__ = [
    "CANCEL_GRACE_SECONDS",
    "TimeoutExpired",
    "OperationCancelled",
    "CancelToken",
    "run_with_timeout",
]
