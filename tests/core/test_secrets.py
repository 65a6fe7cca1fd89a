"""Tests for connection string resolution."""

import pytest

from dataspy.core.errors import ConfigError, MissingConnectionStringError
from dataspy.core.models import Server
from dataspy.core.secrets import SecretValue, resolve_connection_string

SERVER = Server(name="pg-main", type="postgres", conn_string_var="PG_MAIN_CONN")


class TestSecretValue:
    """Tests for SecretValue wrapper."""

    def test_redacted_representations(self):
        sv = SecretValue("host=db password=hunter2")
        assert str(sv) == "[REDACTED]"
        assert "hunter2" not in repr(sv)
        assert f"{sv}" == "[REDACTED]"

    def test_get_secret(self):
        assert SecretValue("x").get_secret() == "x"

    def test_equality_and_truthiness(self):
        assert SecretValue("a") == SecretValue("a")
        assert SecretValue("a") != "a"
        assert not SecretValue("")


class TestResolveConnectionString:
    def test_reads_named_variable(self):
        secret = resolve_connection_string(SERVER, {"PG_MAIN_CONN": "host=db"})
        assert secret.get_secret() == "host=db"

    def test_defaults_to_process_environment(self, monkeypatch):
        monkeypatch.setenv("PG_MAIN_CONN", "host=env")
        assert resolve_connection_string(SERVER).get_secret() == "host=env"

    @pytest.mark.parametrize("environ", [{}, {"PG_MAIN_CONN": ""}, {"PG_MAIN_CONN": "   "}])
    def test_unset_or_empty_fails(self, environ):
        with pytest.raises(MissingConnectionStringError) as exc_info:
            resolve_connection_string(SERVER, environ)
        assert isinstance(exc_info.value, ConfigError)
        assert exc_info.value.env_var == "PG_MAIN_CONN"

    def test_server_without_variable_name_fails(self):
        with pytest.raises(MissingConnectionStringError):
            resolve_connection_string(Server("x", "postgres", ""), {"": "value"})

    def test_no_caching_between_calls(self, monkeypatch):
        """A rotated credential is picked up on the next call."""
        monkeypatch.setenv("PG_MAIN_CONN", "password=old")
        assert resolve_connection_string(SERVER).get_secret() == "password=old"
        monkeypatch.setenv("PG_MAIN_CONN", "password=new")
        assert resolve_connection_string(SERVER).get_secret() == "password=new"
