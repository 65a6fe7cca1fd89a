"""
Environment-file loading.

Connection strings live in environment variables; in development those
usually come from a ``.env`` file next to the configuration.  This module
parses such a file and applies it to ``os.environ`` without overriding
variables the real environment already defines.

All parsing is pure-Python (no ``python-dotenv`` dependency).

Tags:
    dataspy, configuration, env-files, loader

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
import re
from collections.abc import MutableMapping
from pathlib import Path

from dataspy.core.errors import MissingConfigError

_VAR_RE = re.compile(
    r"""
    ^                         # start of line
    \s*                       # optional leading whitespace
    (?:export\s+)?            # optional "export " prefix
    (?P<key>[A-Za-z_]\w*)     # variable name
    \s*=\s*                   # equals with optional whitespace
    (?P<value>.*)             # everything after =
    $                         # end of line
    """,
    re.VERBOSE,
)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a single ``.env`` file into a ``{key: value}`` mapping.

    Handles:
    * blank/comment lines
    * ``export VAR=value``
    * quoted values (single or double)
    * inline ``# comments`` outside of quotes
    """
    result: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _VAR_RE.match(line)
        if match is None:
            continue
        key = match.group("key")
        value = match.group("value").strip()

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        elif " #" in value:
            value = value[: value.index(" #")].rstrip()

        result[key] = value
    return result


def load_env_file(
    path: Path | str | None = None,
    *,
    override: bool = False,
    environ: MutableMapping[str, str] | None = None,
) -> dict[str, str]:
    """Apply a ``.env`` file to the process environment.

    Parameters
    ----------
    path:
        File to load.  ``None`` means ``./.env``, which is silently skipped
        when absent; an explicitly named file must exist.
    override:
        Replace variables that are already set.  Off by default so that
        real environment variables always win.
    environ:
        Target mapping (defaults to ``os.environ``).

    Returns the variables that were actually applied.
    """
    env = os.environ if environ is None else environ
    explicit = path is not None
    env_path = Path(path) if explicit else Path.cwd() / ".env"

    if not env_path.is_file():
        if explicit:
            raise MissingConfigError(str(env_path), f"Environment file not found: {env_path}")
        return {}

    applied: dict[str, str] = {}
    for key, value in parse_env_file(env_path).items():
        if override or key not in env:
            env[key] = value
            applied[key] = value
    return applied


__all__ = ["parse_env_file", "load_env_file"]
