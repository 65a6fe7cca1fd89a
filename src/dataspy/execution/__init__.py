"""Rule execution: the query executor, its deadline and the event sinks.

Architecture::

    executor.py   QueryExecutor: connection string -> open -> ping -> query -> rows
    timeout.py    run_with_timeout() + CancelToken
    events.py     EventSink protocol and the stock sinks
"""

from .events import CollectingSink, EventSink, LoggingSink, NullSink
from .executor import QueryExecutor, format_results
from .timeout import CancelToken, TimeoutExpired, run_with_timeout

__all__ = [
    "QueryExecutor",
    "format_results",
    "CancelToken",
    "TimeoutExpired",
    "run_with_timeout",
    "EventSink",
    "LoggingSink",
    "CollectingSink",
    "NullSink",
]
