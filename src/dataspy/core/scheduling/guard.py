"""In-flight guard - at most one scheduled run per rule at a time.

WHY
───
A cron expression can fire again while the previous run of the same rule
is still waiting on a slow database.  Letting both through doubles the load
on a server that is already struggling.  The guard keeps an in-memory map
of rule name -> holder; a trigger that finds its rule held is skipped.

ARCHITECTURE
────────────
::

    InFlightGuard()
      ├── .acquire(rule, holder)  ─ atomic check-and-set, False if held
      ├── .release(rule)          ─ clear the marker
      └── .get_lock_holder(rule)  ─ who holds it, None if free

Example::

    guard = InFlightGuard()
    if guard.acquire("orphaned_orders", holder="job-1"):
        try:
            run_rule()
        finally:
            guard.release("orphaned_orders")
"""

from __future__ import annotations

import threading


class InFlightGuard:
    """Process-local guard against overlapping runs of the same rule."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holders: dict[str, str] = {}

    def acquire(self, key: str, holder: str = "") -> bool:
        """Mark *key* as in flight; ``False`` if it already is."""
        with self._lock:
            if key in self._holders:
                return False
            self._holders[key] = holder
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._holders.pop(key, None)

    def get_lock_holder(self, key: str) -> str | None:
        with self._lock:
            return self._holders.get(key)


__all__ = ["InFlightGuard"]
