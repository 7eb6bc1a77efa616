"""Structured logging for the fleet console client.

Usage:
    from fleet_console.logging import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("Mission paused", extra={"mission_id": "m1"})
"""

from fleet_console.logging.config import LoggingConfig
from fleet_console.logging.context import (
    bind_command_context,
    clear_context,
    correlation_id,
    get_correlation_id,
    get_extra_context,
    set_correlation_id,
    set_extra_context,
)
from fleet_console.logging.formatters import HumanFormatter, JSONFormatter
from fleet_console.logging.logger import get_logger, setup_logging

__all__ = [
    "HumanFormatter",
    "JSONFormatter",
    "LoggingConfig",
    "bind_command_context",
    "clear_context",
    "correlation_id",
    "get_correlation_id",
    "get_extra_context",
    "get_logger",
    "set_correlation_id",
    "set_extra_context",
    "setup_logging",
]
