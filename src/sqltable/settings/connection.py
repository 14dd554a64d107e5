import re
from collections.abc import Sequence
from typing import Any, Optional

from pydantic import Field, SecretStr, field_validator

from sqltable.common.exceptions import ErrorCode, configuration_error
from .base import SQLTableBaseSettings


_MARS_PATTERN = re.compile(
    r'(?i)(?:^|;)\s*(?:MARS_Connection|MultipleActiveResultSets)\s*=\s*[^;]*'
)


def _odbc_value(value: str) -> str:
    """Brace-quote an ODBC attribute value when it contains special characters."""
    if any(ch in value for ch in ";{}") or value != value.strip():
        return "{" + value.replace("}", "}}") + "}"
    return value


def force_mars(connection_string: str) -> str:
    """Return the ODBC string with multiple active result sets switched on.

    Any existing MARS setting is removed first, so an explicit ``no`` is
    overridden.
    """
    stripped = _MARS_PATTERN.sub("", connection_string).strip().strip(";")
    return f"{stripped};MARS_Connection=yes" if stripped else "MARS_Connection=yes"


class ConnectionSettings(SQLTableBaseSettings):
    """Connection configuration for a TableManager.

    Either ``connection_string`` or ``server`` and ``database`` must be set.
    Credentials are optional; without them Windows integrated security is
    requested.

    Example:
        ```python
        settings = ConnectionSettings(server="sql01", database="hr",
                                      username="etl", password="secret")
        settings.get_odbc_string()
        # 'Driver={ODBC Driver 18 for SQL Server};Server=sql01;Database=hr;UID=etl;PWD=secret;...'
        ```
    """

    connection_string: Optional[SecretStr] = Field(
        default=None,
        description="Complete ODBC connection string. Takes precedence over the discrete fields."
    )
    server: Optional[str] = Field(default=None, description="Hostname or IP of the SQL Server")
    database: Optional[str] = Field(default=None, description="Database to connect to")
    username: Optional[str] = Field(default=None, description="SQL login name")
    password: Optional[SecretStr] = Field(default=None, description="Password for the SQL login")

    driver: str = Field(
        default="ODBC Driver 18 for SQL Server",
        description="Installed ODBC driver name"
    )
    encrypt: bool = Field(default=True)
    trust_server_certificate: bool = Field(default=False)
    connect_timeout: int = Field(default=30, ge=1, le=600)

    fast_executemany: bool = Field(
        default=True,
        description="Use pyodbc's array binding for staging bulk loads"
    )
    echo: bool = Field(default=False, description="Echo SQL through SQLAlchemy's logger")
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level '{v}'")
        return level

    @classmethod
    def from_credential(
        cls,
        server: str,
        database: str,
        credential: Any,
        **kwargs
    ) -> "ConnectionSettings":
        """Build settings from a server, a database and a (username, password) pair.

        The pair may be any two-item sequence. Objects exposing ``username``
        and ``password`` attributes are also accepted as the credential.

        Raises:
            ConfigurationError: If the credential is neither a pair nor an
                object with username and password
        """
        if isinstance(credential, Sequence) and not isinstance(credential, (str, bytes)):
            if len(credential) != 2:
                raise configuration_error(
                    f"Credential must be a (username, password) pair, got {len(credential)} items",
                    error_code=ErrorCode.CONFIG_INVALID,
                )
            username, password = credential
        elif hasattr(credential, "username") and hasattr(credential, "password"):
            username, password = credential.username, credential.password
        else:
            raise configuration_error(
                f"Unsupported credential type: {type(credential).__qualname__}",
                error_code=ErrorCode.CONFIG_INVALID,
            )
        if isinstance(password, SecretStr):
            password = password.get_secret_value()
        return cls(server=server, database=database, username=username, password=password, **kwargs)

    def get_odbc_string(self) -> str:
        """Get the ODBC connection string with MARS forced on.

        Raises:
            ConfigurationError: If neither a connection string nor a server
                and database are configured
        """
        if self.connection_string is not None:
            return force_mars(self.connection_string.get_secret_value())

        if not self.server or not self.database:
            raise configuration_error(
                "A connection string or both server and database must be configured",
                error_code=ErrorCode.CONFIG_INVALID,
            )

        parts = [
            f"Driver={{{self.driver}}}",
            f"Server={_odbc_value(self.server)}",
            f"Database={_odbc_value(self.database)}",
        ]
        if self.username:
            parts.append(f"UID={_odbc_value(self.username)}")
            password = self.password.get_secret_value() if self.password else ""
            parts.append(f"PWD={_odbc_value(password)}")
        else:
            parts.append("Trusted_Connection=yes")

        parts.append(f"Encrypt={'yes' if self.encrypt else 'no'}")
        parts.append(f"TrustServerCertificate={'yes' if self.trust_server_certificate else 'no'}")
        parts.append(f"Connection Timeout={self.connect_timeout}")
        return force_mars(";".join(parts))

    @property
    def display_name(self) -> str:
        """Server and database for log messages, never credentials."""
        if self.server or self.database:
            return f"{self.server or '?'}/{self.database or '?'}"
        return "connection-string"


# Singleton instance
_settings: Optional[ConnectionSettings] = None


def get_settings(force_reload: bool = False) -> ConnectionSettings:
    """Get the settings instance loaded from the environment.

    Args:
        force_reload: If True, creates a new instance even if one already
            exists. Useful for testing or when environment variables changed.
    """
    global _settings

    if _settings is None or force_reload:
        _settings = ConnectionSettings()

    return _settings
