"""
Process settings for dataspy.

:class:`DataspySettings` holds everything that is *not* part of the rule
configuration: where the config and history files live, timeouts, worker
counts and logging.  Values come from ``DATASPY_*`` environment variables
or a ``.env`` file.

Tags:
    dataspy, configuration, settings, pydantic

Doc-Types:
    api-reference
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DataspySettings(BaseSettings):
    """dataspy process configuration.

    All fields can be set via ``DATASPY_*`` environment variables (e.g.
    ``DATASPY_HISTORY_PATH=/var/lib/dataspy/history.db``).
    """

    model_config = SettingsConfigDict(
        env_prefix="DATASPY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Files ────────────────────────────────────────────────────
    config_path: Path = Field(default=Path("dataspy.toml"), description="Rules/servers/schedules file")
    history_path: Path = Field(default=Path("data/dataspy.db"), description="Execution history database")

    # ── History store ────────────────────────────────────────────
    store_lock_timeout: float = Field(default=1.0, ge=0, description="Seconds to wait for the store lock")

    # ── Execution ────────────────────────────────────────────────
    query_timeout_seconds: float = Field(default=300.0, ge=0, description="Default query deadline, 0 disables")

    # ── Scheduler ────────────────────────────────────────────────
    scheduler_max_workers: int = Field(default=10, ge=1)
    timezone: str = Field(default="", description="Cron timezone, empty for local time")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in {"console", "json"}:
            raise ValueError(f"log_format must be 'console' or 'json', got {value!r}")
        return value

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"

    @property
    def default_query_timeout(self) -> float | None:
        """Deadline handed to the executor (``None`` when disabled)."""
        return self.query_timeout_seconds or None


@lru_cache(maxsize=1)
def get_settings() -> DataspySettings:
    """Load and cache the settings (call ``get_settings.cache_clear()`` in tests)."""
    return DataspySettings()


__all__ = ["DataspySettings", "get_settings"]
