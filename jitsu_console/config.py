"""Client configuration with pydantic-settings.

Values come from explicit arguments, ``JITSU_*`` environment variables or a ``.env`` file.

Usage:
    from jitsu_console.config import get_settings
    from jitsu_console import ConsoleClient

    client = ConsoleClient.from_settings(get_settings())
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jitsu_console import __version__

DEFAULT_USER_AGENT = f"jitsu-console-client/{__version__}"


class Settings(BaseSettings):
    """Jitsu Console client settings.

    Only ``console_url`` is mandatory at load time. Credentials are checked when the
    first session is established, the database URL only when soft-delete recovery runs.
    """

    model_config = SettingsConfigDict(
        env_prefix="JITSU_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Required ===

    console_url: str = Field(
        ...,
        description="Jitsu Console base URL",
        examples=["https://console.jitsu.example.com"],
    )

    # === Optional fields with defaults ===

    username: str | None = Field(default=None, description="Console username")
    password: str | None = Field(default=None, description="Console password")
    database_url: str | None = Field(
        default=None,
        description=(
            "PostgreSQL URL of the Console database. Needed to recreate objects whose "
            "previous incarnation was soft-deleted"
        ),
        examples=["postgresql://jitsu:secret@db:5432/jitsu"],
    )
    database_schema: str = Field(
        default="newjitsu",
        description="Schema holding the ConfigurationObject tables",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds",
    )
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent header value")

    # Logging configuration
    service_name: str = Field(
        default="jitsu-console-client",
        description="Service name for structured logging",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("console_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize console URL so paths can be appended."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("console_url must not be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Raises ValidationError if JITSU_CONSOLE_URL is missing.
    """
    return Settings()
