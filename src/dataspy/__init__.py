"""
dataspy - run SQL rules against database servers on a schedule.

An operator writes rules ("does this query return anomalous rows?"),
binds each to a database type and a cron expression, and the daemon runs
them unattended, keeping a durable history of every run.
"""

__version__ = "0.3.0"
