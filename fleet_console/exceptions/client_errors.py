"""Errors the operator can act on.

Registry 4xx responses map onto these classes, as do the local guards that
reject a mission command before any request is made.
"""

from http import HTTPStatus
from typing import Any, ClassVar

from fleet_console.exceptions.base import FleetConsoleError


class ClientError(FleetConsoleError):
    """The request was wrong for the registry's current state."""

    error_code: ClassVar[str] = "CLIENT_ERROR"
    http_status: ClassVar[int] = HTTPStatus.BAD_REQUEST


class ValidationError(ClientError):
    """A command argument or registry payload failed validation."""

    error_code: ClassVar[str] = "VALIDATION_ERROR"
    http_status: ClassVar[int] = HTTPStatus.BAD_REQUEST

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.with_context(field=field, value=value)


class BadRequestError(ClientError):
    """The registry refused the request without saying why."""

    error_code: ClassVar[str] = "BAD_REQUEST"
    http_status: ClassVar[int] = HTTPStatus.BAD_REQUEST


class AuthError(ClientError):
    """Credentials were rejected or the session token expired.

    Stored credentials are cleared and the session is signed out.
    """

    error_code: ClassVar[str] = "AUTHENTICATION_FAILED"
    http_status: ClassVar[int] = HTTPStatus.UNAUTHORIZED


class AuthorizationError(ClientError):
    """The signed-in operator may not perform the request."""

    error_code: ClassVar[str] = "AUTHORIZATION_FAILED"
    http_status: ClassVar[int] = HTTPStatus.FORBIDDEN


class NotFoundError(ClientError):
    """A mission, drone or report does not exist, or is not loaded."""

    error_code: ClassVar[str] = "NOT_FOUND"
    http_status: ClassVar[int] = HTTPStatus.NOT_FOUND

    def __init__(
        self,
        message: str,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.with_context(resource_type=resource_type, resource_id=resource_id)


class ConflictError(ClientError):
    """The registry refused a change that conflicts with its own state."""

    error_code: ClassVar[str] = "CONFLICT"
    http_status: ClassVar[int] = HTTPStatus.CONFLICT


class RateLimitError(ClientError):
    """Too many requests; retry later."""

    error_code: ClassVar[str] = "RATE_LIMIT_EXCEEDED"
    http_status: ClassVar[int] = HTTPStatus.TOO_MANY_REQUESTS
    retryable: ClassVar[bool] = True


class InvalidTransitionError(ClientError):
    """The action is not legal from the mission's confirmed status.

    Raised locally; nothing is sent to the registry.
    """

    error_code: ClassVar[str] = "INVALID_TRANSITION"
    http_status: ClassVar[int] = HTTPStatus.CONFLICT

    def __init__(
        self,
        message: str,
        *,
        mission_id: str | None = None,
        status: str | None = None,
        action: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.with_context(mission_id=mission_id, status=status, action=action)


class CommandInProgressError(ClientError):
    """An earlier command for the same mission has not been answered yet."""

    error_code: ClassVar[str] = "COMMAND_IN_PROGRESS"
    http_status: ClassVar[int] = HTTPStatus.CONFLICT

    def __init__(
        self,
        message: str,
        *,
        mission_id: str | None = None,
        pending_action: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.with_context(mission_id=mission_id, pending_action=pending_action)
