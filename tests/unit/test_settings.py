"""Tests for ConnectionSettings and ODBC string assembly."""

from types import SimpleNamespace

import pytest
from pydantic import SecretStr, ValidationError

from sqltable.common.exceptions import ConfigurationError, ErrorCode
from sqltable.settings import ConnectionSettings, force_mars


def _settings(**kwargs):
    return ConnectionSettings(_env_file=None, **kwargs)


class TestForceMars:
    """Test that multiple active result sets are always on."""

    @pytest.mark.parametrize("connection_string, expected", [
        ("Server=s;Database=d", "Server=s;Database=d;MARS_Connection=yes"),
        ("Server=s;MARS_Connection=no;Database=d", "Server=s;Database=d;MARS_Connection=yes"),
        ("MultipleActiveResultSets=False;Server=s;", "Server=s;MARS_Connection=yes"),
        ("Server=s;mars_connection = YES", "Server=s;MARS_Connection=yes"),
        ("", "MARS_Connection=yes"),
    ])
    def test_force_mars(self, connection_string, expected):
        assert force_mars(connection_string) == expected


class TestOdbcString:
    """Test ODBC string assembly from discrete fields."""

    def test_sql_login(self):
        settings = _settings(server="sql01", database="hr", username="etl", password="secret")

        assert settings.get_odbc_string() == (
            "Driver={ODBC Driver 18 for SQL Server};Server=sql01;Database=hr;UID=etl;PWD=secret;"
            "Encrypt=yes;TrustServerCertificate=no;Connection Timeout=30;MARS_Connection=yes"
        )

    def test_integrated_security_without_username(self):
        settings = _settings(server="sql01", database="hr", trust_server_certificate=True)

        odbc = settings.get_odbc_string()

        assert "Trusted_Connection=yes" in odbc
        assert "UID=" not in odbc
        assert "TrustServerCertificate=yes" in odbc

    def test_special_characters_are_brace_quoted(self):
        settings = _settings(server="sql01", database="hr", username="etl", password="p;w}d")

        assert "PWD={p;w}}d}" in settings.get_odbc_string()

    def test_connection_string_takes_precedence(self):
        settings = _settings(connection_string="Driver={X};Server=other", server="sql01", database="hr")

        assert settings.get_odbc_string() == "Driver={X};Server=other;MARS_Connection=yes"

    def test_nothing_configured(self):
        with pytest.raises(ConfigurationError) as exc_info:
            _settings().get_odbc_string()

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID

    def test_secrets_are_hidden(self):
        settings = _settings(server="sql01", database="hr", username="etl", password="secret")

        assert "secret" not in repr(settings)
        assert settings.display_name == "sql01/hr"


class TestFromCredential:
    """Test credential-based construction."""

    def test_tuple_credential(self):
        settings = ConnectionSettings.from_credential("sql01", "hr", ("etl", "secret"))

        assert settings.username == "etl"
        assert settings.password.get_secret_value() == "secret"

    def test_object_credential_with_secret(self):
        credential = SimpleNamespace(username="etl", password=SecretStr("secret"))

        settings = ConnectionSettings.from_credential("sql01", "hr", credential)

        assert settings.password.get_secret_value() == "secret"

    def test_list_credential(self):
        settings = ConnectionSettings.from_credential("sql01", "hr", ["etl", "secret"])

        assert settings.username == "etl"
        assert settings.password.get_secret_value() == "secret"

    @pytest.mark.parametrize("credential", [["etl"], ("etl", "secret", "extra"), "etl:secret", 42])
    def test_unusable_credential_rejected(self, credential):
        with pytest.raises(ConfigurationError) as exc_info:
            ConnectionSettings.from_credential("sql01", "hr", credential)

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID


class TestEnvironment:
    """Test loading from SQLTABLE_ environment variables."""

    def test_reads_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("SQLTABLE_SERVER", "envhost")
        monkeypatch.setenv("SQLTABLE_DATABASE", "envdb")
        monkeypatch.setenv("SQLTABLE_FAST_EXECUTEMANY", "false")

        settings = _settings()

        assert settings.server == "envhost"
        assert settings.database == "envdb"
        assert settings.fast_executemany is False
        assert ConnectionSettings.get_env_prefix() == "SQLTABLE_"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            _settings(log_level="verbose")

    def test_log_level_is_normalized(self):
        assert _settings(log_level="debug").log_level == "DEBUG"
