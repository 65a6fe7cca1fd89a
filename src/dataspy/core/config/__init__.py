"""Configuration: process settings, environment files and the rule file.

Architecture::

    settings.py   DataspySettings (pydantic-settings, DATASPY_*) + get_settings()
    loader.py     .env parsing and loading into os.environ
    rules.py      TOML/JSON rule file -> MonitorConfig

Guardrails:
    ❌ Putting connection strings in the rule file
    ✅ ``ConnStringVar`` names an environment variable instead
"""

from .loader import load_env_file, parse_env_file
from .rules import load_monitor_config, parse_monitor_config
from .settings import DataspySettings, get_settings

__all__ = [
    "DataspySettings",
    "get_settings",
    "load_env_file",
    "parse_env_file",
    "load_monitor_config",
    "parse_monitor_config",
]
