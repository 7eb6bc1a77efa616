"""Application configuration using Pydantic BaseSettings.

All settings are loaded from environment variables prefixed with
``FLEET_CONSOLE_``. The only durable client state (the bearer token) lives
at ``token_path``.

Usage:
    from fleet_console.config import get_settings

    settings = get_settings()
    print(settings.api_base_url)
    print(settings.reconnection_attempts)
"""

from enum import StrEnum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    """Valid deployment environments."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    DEMO = "demo"
    PRODUCTION = "production"


def _get_default_token_path() -> Path:
    return Path.home() / ".config" / "fleet-console" / "token"


class Settings(BaseSettings):
    """Client settings loaded from environment variables.

    Attributes:
        service_name: Name of this client for logging.
        environment: Deployment environment.
        api_base_url: Base URL of the mission registry (``/api`` is appended).
        socket_url: Socket.IO endpoint; defaults to ``api_base_url``.
        token_path: File holding the persisted bearer token.
        request_timeout_seconds: Timeout for REST calls.
        read_retry_total: Retries for idempotent reads on transient failures.
        reconnection_attempts: Channel reconnection attempts before giving up.
        reconnection_delay_seconds: Delay between reconnection attempts.
        history_limit: Number of finished missions kept in the history set.
        log_level: Logging level.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLEET_CONSOLE_",
        env_file=None,
        case_sensitive=False,
        extra="ignore",
        str_strip_whitespace=True,
    )

    # Service identification
    service_name: str = Field(default="fleet-console", min_length=1)
    environment: Environment = Field(default=Environment.DEVELOPMENT)

    # Registry endpoints
    api_base_url: str = Field(default="http://localhost:8080", min_length=1)
    socket_url: str = Field(default="")

    # Client-local storage
    token_path: Path = Field(default_factory=_get_default_token_path)

    # Timeouts and limits
    request_timeout_seconds: float = Field(default=30.0, gt=0, le=300)
    read_retry_total: int = Field(default=3, ge=0, le=10)
    reconnection_attempts: int = Field(default=5, ge=0, le=50)
    reconnection_delay_seconds: float = Field(default=1.0, ge=0, le=60)
    history_limit: int = Field(default=5, ge=1, le=100)

    # Logging
    log_level: str = Field(default="INFO")

    @field_validator("api_base_url", "socket_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Normalize URLs so paths can be appended safely."""
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in allowed:
            error_message = f"log_level must be one of {allowed}, got '{value}'"
            raise ValueError(error_message)
        return upper_value

    @property
    def resolved_socket_url(self) -> str:
        """Socket.IO endpoint, falling back to the REST base URL."""
        return self.socket_url or self.api_base_url

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def validate_startup_config() -> Settings:
    """Validate configuration on application startup.

    Returns:
        Validated Settings instance.

    Raises:
        pydantic.ValidationError: If configuration is invalid.
    """
    return get_settings()
