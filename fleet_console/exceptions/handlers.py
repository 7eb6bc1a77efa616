"""Error reporting utilities.

Transport and auth failures must reach the operator as notifications and
never crash the view; these helpers convert exceptions into
``Notification`` values and wrap view actions accordingly.
"""

import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import StrEnum
from functools import wraps
from typing import Any, Protocol

from pydantic import BaseModel, Field

from fleet_console.exceptions.base import FleetConsoleError
from fleet_console.exceptions.client_errors import CommandInProgressError, InvalidTransitionError
from fleet_console.exceptions.transport_errors import ChannelDisconnectedError

logger = logging.getLogger(__name__)

_DEFAULT_NOTIFICATION_HISTORY = 50

# Local guard rejections and channel drops are not failures of the registry.
_WARNING_ERRORS: tuple[type[FleetConsoleError], ...] = (
    CommandInProgressError,
    InvalidTransitionError,
    ChannelDisconnectedError,
)


class NotificationLevel(StrEnum):
    """Severity of a user-visible notification."""

    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    """A user-visible message (the console's toast)."""

    level: NotificationLevel
    message: str
    error_code: str | None = None
    retryable: bool = False
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Notifier(Protocol):
    """Anything that can show a notification to the operator."""

    def notify(self, notification: Notification) -> None:
        """Deliver a notification."""
        ...


class NotificationLog:
    """Notifier that logs notifications and keeps the most recent ones."""

    def __init__(self, max_notifications: int = _DEFAULT_NOTIFICATION_HISTORY) -> None:
        """Initialize the notification log.

        Args:
            max_notifications: Number of notifications retained.
        """
        self._notifications: deque[Notification] = deque(maxlen=max_notifications)

    @property
    def notifications(self) -> list[Notification]:
        """Return retained notifications, oldest first."""
        return list(self._notifications)

    def notify(self, notification: Notification) -> None:
        """Record and log a notification."""
        self._notifications.append(notification)
        log_level = {
            NotificationLevel.SUCCESS: logging.INFO,
            NotificationLevel.INFO: logging.INFO,
            NotificationLevel.WARNING: logging.WARNING,
            NotificationLevel.ERROR: logging.ERROR,
        }[notification.level]
        logger.log(
            log_level,
            "Notification: %s",
            notification.message,
            extra={"error_code": notification.error_code} if notification.error_code else None,
        )

    def clear(self) -> None:
        """Drop all retained notifications."""
        self._notifications.clear()


def create_error_notification(
    exception: FleetConsoleError,
    *,
    include_context: bool = True,
) -> Notification:
    """Create a notification from an exception.

    Args:
        exception: The FleetConsoleError to convert.
        include_context: Whether to include context in the notification.

    Returns:
        Notification describing the failure.
    """
    level = (
        NotificationLevel.WARNING
        if isinstance(exception, _WARNING_ERRORS)
        else NotificationLevel.ERROR
    )
    return Notification(
        level=level,
        message=exception.message,
        error_code=exception.error_code,
        retryable=exception.retryable,
        context=dict(exception.context) if include_context else {},
    )


def create_success_notification(message: str, **context: Any) -> Notification:
    """Create a success notification.

    Args:
        message: Text shown to the operator.
        **context: Additional key-value pairs.

    Returns:
        Success notification.
    """
    return Notification(level=NotificationLevel.SUCCESS, message=message, context=context)


def create_error_reporter[**P, T](
    notifier: Notifier,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T | None]]]:
    """Build a decorator that turns FleetConsoleError into notifications.

    The wrapped coroutine returns None instead of raising when a
    FleetConsoleError escapes it.

    Args:
        notifier: Destination for error notifications.

    Returns:
        Decorator for async view actions.
    """

    def decorate(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T | None]]:
        @wraps(func)
        async def report_call(*args: P.args, **kwargs: P.kwargs) -> T | None:
            try:
                return await func(*args, **kwargs)
            except FleetConsoleError as error:
                logger.warning(
                    "%s failed: %s",
                    func.__name__,
                    error.message,
                    extra=error.log_extra(),
                )
                notifier.notify(create_error_notification(error))
                return None

        return report_call

    return decorate
