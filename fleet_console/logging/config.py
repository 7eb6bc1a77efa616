"""Logging configuration using Pydantic settings."""

from enum import StrEnum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(StrEnum):
    """Valid log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(StrEnum):
    """Valid log formats."""

    JSON = "json"
    HUMAN = "human"


class LoggingConfig(BaseSettings):
    """Logging configuration loaded from ``FLEET_CONSOLE_LOG_*`` variables.

    Attributes:
        log_level: Minimum log level to output.
        log_format: Output format - json for shipping, human for a terminal.
        service_name: Client identifier attached to every JSON record.
        use_colors: Whether the human format colors the level column.
        include_location: Whether to include module/function/line info.
        transport_log_level: Level applied to socketio/engineio/urllib3 loggers.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLEET_CONSOLE_",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_format: LogFormat = Field(default=LogFormat.HUMAN)
    service_name: str = Field(default="fleet-console")
    use_colors: bool = Field(default=True)
    include_location: bool = Field(default=False)
    transport_log_level: LogLevel = Field(default=LogLevel.WARNING)


@lru_cache
def get_logging_config() -> LoggingConfig:
    """Get cached logging configuration instance."""
    return LoggingConfig()
