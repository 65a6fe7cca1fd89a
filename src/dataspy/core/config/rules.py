"""
Rule configuration loading.

Reads the servers / rules / schedules file into an immutable
:class:`~dataspy.core.models.MonitorConfig`.  TOML is the native format
(``.json`` files are accepted too)::

    [[servers]]
    Name = "pg-main"
    Type = "postgres"
    ConnStringVar = "PG_MAIN_CONN"

    [[rules]]
    Name = "orphaned_orders"
    Description = "Orders without a customer"
    DbType = "postgres"
    Query = "SELECT id FROM orders WHERE customer_id IS NULL"

    [[schedules]]
    Server = "pg-main"
    Rule = "orphaned_orders"
    CronStr = "0 */5 * * * *"

Keys may be written in PascalCase (as above) or snake_case.

Tags:
    dataspy, configuration, toml, rules, loader

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

from dataspy.core.errors import InvalidConfigError, MissingConfigError
from dataspy.core.models import MonitorConfig, Rule, Schedule, Server

# field -> accepted spellings, first one is canonical
_SERVER_KEYS = {
    "name": ("Name", "name"),
    "type": ("Type", "type"),
    "conn_string_var": ("ConnStringVar", "conn_string_var"),
}
_RULE_KEYS = {
    "name": ("Name", "name"),
    "description": ("Description", "description"),
    "db_type": ("DbType", "db_type"),
    "query": ("Query", "query"),
    "timeout_seconds": ("TimeoutSeconds", "timeout_seconds"),
}
_SCHEDULE_KEYS = {
    "rule": ("Rule", "rule"),
    "cron": ("CronStr", "cron", "cron_str"),
    "server": ("Server", "server"),
}


def _lookup(entry: dict[str, Any], spellings: tuple[str, ...]) -> Any:
    for key in spellings:
        if key in entry:
            return entry[key]
    return None


def _required_str(entry: dict[str, Any], section: str, index: int, spellings: tuple[str, ...]) -> str:
    value = _lookup(entry, spellings)
    if value is None:
        raise MissingConfigError(f"{section}[{index}].{spellings[0]}")
    if not isinstance(value, str) or not value.strip():
        raise InvalidConfigError(f"{section}[{index}].{spellings[0]}", value)
    return value


def _optional_str(entry: dict[str, Any], section: str, index: int, spellings: tuple[str, ...]) -> str:
    value = _lookup(entry, spellings)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidConfigError(f"{section}[{index}].{spellings[0]}", value)
    return value


def _entries(data: dict[str, Any], section: str) -> list[dict[str, Any]]:
    raw = data.get(section, [])
    if not isinstance(raw, list) or not all(isinstance(e, dict) for e in raw):
        raise InvalidConfigError(section, raw, f"'{section}' must be a list of tables")
    return raw


def _parse_server(entry: dict[str, Any], index: int) -> Server:
    return Server(
        name=_required_str(entry, "servers", index, _SERVER_KEYS["name"]),
        type=_required_str(entry, "servers", index, _SERVER_KEYS["type"]),
        conn_string_var=_required_str(entry, "servers", index, _SERVER_KEYS["conn_string_var"]),
    )


def _parse_rule(entry: dict[str, Any], index: int) -> Rule:
    timeout = _lookup(entry, _RULE_KEYS["timeout_seconds"])
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, int | float) or timeout < 0:
            raise InvalidConfigError(f"rules[{index}].TimeoutSeconds", timeout)
        timeout = float(timeout)

    return Rule(
        name=_required_str(entry, "rules", index, _RULE_KEYS["name"]),
        description=_optional_str(entry, "rules", index, _RULE_KEYS["description"]),
        db_type=_required_str(entry, "rules", index, _RULE_KEYS["db_type"]),
        query=_required_str(entry, "rules", index, _RULE_KEYS["query"]),
        timeout_seconds=timeout,
    )


def _parse_schedule(entry: dict[str, Any], index: int) -> Schedule:
    return Schedule(
        rule=_required_str(entry, "schedules", index, _SCHEDULE_KEYS["rule"]),
        cron=_required_str(entry, "schedules", index, _SCHEDULE_KEYS["cron"]),
        server=_optional_str(entry, "schedules", index, _SCHEDULE_KEYS["server"]),
    )


def parse_monitor_config(data: dict[str, Any]) -> MonitorConfig:
    """Build a :class:`MonitorConfig` from already-decoded TOML/JSON data.

    Raises:
        MissingConfigError: A required key is absent
        InvalidConfigError: A value has the wrong type or a rule name repeats
    """
    servers = tuple(_parse_server(e, i) for i, e in enumerate(_entries(data, "servers")))
    rules = tuple(_parse_rule(e, i) for i, e in enumerate(_entries(data, "rules")))
    schedules = tuple(_parse_schedule(e, i) for i, e in enumerate(_entries(data, "schedules")))

    seen: set[str] = set()
    for rule in rules:
        if rule.name in seen:
            raise InvalidConfigError("rules.Name", rule.name, f"Duplicate rule name: {rule.name}")
        seen.add(rule.name)

    return MonitorConfig(servers=servers, rules=rules, schedules=schedules)


def load_monitor_config(path: Path | str) -> MonitorConfig:
    """Read and parse the configuration file at *path*."""
    config_path = Path(path)
    if not config_path.is_file():
        raise MissingConfigError(str(config_path), f"Configuration file not found: {config_path}")

    text = config_path.read_text(encoding="utf-8")
    try:
        if config_path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = tomllib.loads(text)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise InvalidConfigError(str(config_path), None, f"Cannot parse {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise InvalidConfigError(str(config_path), None, f"{config_path} must contain a table/object")
    return parse_monitor_config(data)


__all__ = ["parse_monitor_config", "load_monitor_config"]
