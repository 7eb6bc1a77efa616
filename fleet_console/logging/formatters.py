"""Log formatters for terminal and machine-readable output."""

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any, ClassVar

from fleet_console.logging.context import get_correlation_id, get_extra_context

# Attributes every LogRecord has; anything else came in through ``extra=``.
_STANDARD_LOG_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}

_MAX_LOGGER_NAME_LENGTH = 28


def _collect_context_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Merge correlation ID, bound context and record extras, in that order."""
    fields: dict[str, Any] = {}
    corr_id = get_correlation_id()
    if corr_id:
        fields["correlation_id"] = corr_id
    fields.update(get_extra_context())
    fields.update(
        {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_LOG_ATTRS and not key.startswith("_")
        }
    )
    return fields


def _shorten_logger_name(name: str) -> str:
    if len(name) <= _MAX_LOGGER_NAME_LENGTH:
        return name
    return "..." + name[-(_MAX_LOGGER_NAME_LENGTH - 3) :]


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def __init__(
        self,
        *,
        service_name: str = "fleet-console",
        include_location: bool = True,
    ) -> None:
        """Initialize the JSON formatter.

        Args:
            service_name: Client identifier for log aggregation.
            include_location: Whether to include module/function/line fields.
        """
        super().__init__()
        self._service_name = service_name
        self._include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as a JSON string."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service_name,
        }

        if self._include_location:
            log_entry["module"] = record.module
            log_entry["function"] = record.funcName
            log_entry["line"] = record.lineno

        log_entry.update(_collect_context_fields(record))

        if record.exc_info:
            exception_type, exception_value, _ = record.exc_info
            log_entry["exception"] = {
                "type": exception_type.__name__ if exception_type else "Unknown",
                "message": str(exception_value) if exception_value else "",
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_entry, default=str)


class HumanFormatter(logging.Formatter):
    """Format log records as aligned columns for a terminal."""

    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET: ClassVar[str] = "\033[0m"

    def __init__(self, *, use_colors: bool = True) -> None:
        """Initialize the human formatter.

        Args:
            use_colors: Whether to use ANSI colors in output.
        """
        super().__init__()
        self._use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record for human readability."""
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]

        level_string = f"{record.levelname:<8}"
        if self._use_colors:
            level_string = f"{self.COLORS.get(record.levelname, '')}{level_string}{self.RESET}"

        logger_name = _shorten_logger_name(record.name)
        padded_name = f"{logger_name:<{_MAX_LOGGER_NAME_LENGTH}}"
        line = f"{timestamp} {level_string} {padded_name} {record.getMessage()}"

        context_fields = _collect_context_fields(record)
        if context_fields:
            line += " [" + " ".join(f"{key}={value}" for key, value in context_fields.items()) + "]"

        if record.exc_info:
            line += "\n" + "".join(traceback.format_exception(*record.exc_info))

        return line
