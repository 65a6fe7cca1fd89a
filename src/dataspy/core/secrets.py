"""Connection string resolution.

A server descriptor never carries its connection string; it names the
environment variable that does.  The variable is read on every call so
that credentials rotated outside the process take effect on the next run
without a restart.

Example::

    >>> os.environ["PG_MAIN_CONN"] = "host=db user=spy"
    >>> secret = resolve_connection_string(Server("pg-main", "postgres", "PG_MAIN_CONN"))
    >>> print(secret)
    [REDACTED]
    >>> secret.get_secret()
    'host=db user=spy'

Guardrails:
    - Connection strings should NEVER be logged (use the SecretValue wrapper)
    - Errors name the variable, not its value

Tags:
    secrets, credentials, configuration, dataspy
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from dataspy.core.errors import MissingConnectionStringError
from dataspy.core.models import Server


class SecretValue:
    """Wrapper for secret values that prevents accidental logging.

    The string representation shows ``[REDACTED]`` instead of the value.
    Use ``.get_secret()`` to access the actual value.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    def get_secret(self) -> str:
        """Get the actual secret value."""
        return self._value

    def __str__(self) -> str:
        return "[REDACTED]"

    def __repr__(self) -> str:
        return "SecretValue('[REDACTED]')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretValue):
            return self._value == other._value
        return False

    def __hash__(self) -> int:
        return hash(self._value)

    def __bool__(self) -> bool:
        return bool(self._value)


def resolve_connection_string(
    server: Server,
    environ: Mapping[str, str] | None = None,
) -> SecretValue:
    """Read the connection string for *server* from the environment.

    Args:
        server: Server whose ``conn_string_var`` names the variable
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        The connection string wrapped in a :class:`SecretValue`

    Raises:
        MissingConnectionStringError: If the variable is unset, empty or
            whitespace-only, or if the server names no variable at all
    """
    env = os.environ if environ is None else environ
    var = server.conn_string_var.strip()
    if not var:
        raise MissingConnectionStringError(server.name, "")

    value = env.get(var)
    if value is None or not value.strip():
        raise MissingConnectionStringError(server.name, var)
    return SecretValue(value)


__all__ = [
    "SecretValue",
    "resolve_connection_string",
]
