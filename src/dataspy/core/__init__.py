"""dataspy core -- models, errors, logging, configuration, history and scheduling.

Architecture::

    errors.py        Structured error hierarchy (DataspyError and families)
    logging.py       structlog configuration + get_logger()
    models.py        Rule / Server / Schedule / ExecutionRecord dataclasses
    secrets.py       Connection string resolution from the environment
    history.py       SQLite-backed append-only execution history
    config/          Settings, .env loading, rule file parsing
    adapters/        Database backends + registry
    scheduling/      Cron translation, in-flight guard, RuleScheduler
"""
