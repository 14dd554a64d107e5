from pydantic_settings import BaseSettings, SettingsConfigDict


class SQLTableBaseSettings(BaseSettings):
    """Base class for sqltable settings.

    Values come from environment variables (and an optional ``.env`` file)
    prefixed with ``SQLTABLE_``; explicit keyword arguments take precedence.
    """
    model_config = SettingsConfigDict(
        env_prefix="SQLTABLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__"
    )

    @classmethod
    def get_env_prefix(cls) -> str:
        """Get the environment variable prefix for this settings class."""
        return cls.model_config.get("env_prefix", "")
