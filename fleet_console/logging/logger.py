"""Root logger setup and logger factory."""

import logging
import sys
from dataclasses import dataclass, field
from typing import TextIO

from fleet_console.logging.config import LogFormat, LoggingConfig, get_logging_config
from fleet_console.logging.formatters import HumanFormatter, JSONFormatter

# Third-party loggers that are chatty at INFO while the channel reconnects.
_TRANSPORT_LOGGERS: tuple[str, ...] = ("socketio", "engineio", "urllib3", "aiohttp")


@dataclass
class LoggingState:
    """Internal state for logging configuration."""

    configured: bool = field(default=False)


_state = LoggingState()


def _create_formatter(config: LoggingConfig) -> logging.Formatter:
    if config.log_format == LogFormat.JSON:
        return JSONFormatter(
            service_name=config.service_name,
            include_location=config.include_location,
        )
    return HumanFormatter(use_colors=config.use_colors)


def setup_logging(
    config: LoggingConfig | None = None,
    stream: TextIO | None = None,
    *,
    force: bool = False,
) -> None:
    """Install a single stream handler on the root logger.

    Args:
        config: Optional LoggingConfig instance. Loads from environment if not provided.
        stream: Output stream for logs. Defaults to sys.stderr.
        force: If True, reconfigure even if already configured.
    """
    if _state.configured and not force:
        return

    if config is None:
        config = get_logging_config()

    root_logger = logging.getLogger()
    root_logger.setLevel(config.log_level.value)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(_create_formatter(config))
    root_logger.addHandler(handler)

    for logger_name in _TRANSPORT_LOGGERS:
        logging.getLogger(logger_name).setLevel(config.transport_log_level.value)

    _state.configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name.

    Args:
        name: Logger name, typically __name__ of the calling module.

    Returns:
        A configured logger instance.
    """
    return logging.getLogger(name)


def reset_logging() -> None:
    """Reset logging configuration. Primarily for testing."""
    _state.configured = False

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    get_logging_config.cache_clear()
