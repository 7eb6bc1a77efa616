"""Fleet console exception hierarchy.

Architecture:
    FleetConsoleError (base)
    ├── ClientError
    │   ├── ValidationError (400)
    │   ├── BadRequestError (400)
    │   ├── AuthError (401, forces logout)
    │   ├── AuthorizationError (403)
    │   ├── NotFoundError (404)
    │   ├── ConflictError (409)
    │   ├── RateLimitError (429)
    │   ├── InvalidTransitionError (local guard, never sent)
    │   └── CommandInProgressError (local guard, never sent)
    └── TransportError
        ├── NetworkError (connection failure/timeout, retryable)
        ├── RegistryError (5xx or error envelope)
        └── ChannelDisconnectedError (informational, self-heals)

Usage:
    from fleet_console.exceptions import InvalidTransitionError

    def check_action(mission: Mission, action: MissionAction) -> None:
        if not is_action_allowed(mission.status, action):
            raise InvalidTransitionError(
                f"Cannot {action} a {mission.status} mission",
                mission_id=mission.id,
            )
"""

from fleet_console.exceptions.base import FleetConsoleError
from fleet_console.exceptions.client_errors import (
    AuthError,
    AuthorizationError,
    BadRequestError,
    ClientError,
    CommandInProgressError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from fleet_console.exceptions.handlers import (
    Notification,
    NotificationLevel,
    NotificationLog,
    Notifier,
    create_error_notification,
    create_error_reporter,
    create_success_notification,
)
from fleet_console.exceptions.transport_errors import (
    ChannelDisconnectedError,
    NetworkError,
    RegistryError,
    TransportError,
)

__all__ = [
    "AuthError",
    "AuthorizationError",
    "BadRequestError",
    "ChannelDisconnectedError",
    "ClientError",
    "CommandInProgressError",
    "ConflictError",
    "FleetConsoleError",
    "InvalidTransitionError",
    "NetworkError",
    "NotFoundError",
    "Notification",
    "NotificationLevel",
    "NotificationLog",
    "Notifier",
    "RateLimitError",
    "RegistryError",
    "TransportError",
    "ValidationError",
    "create_error_notification",
    "create_error_reporter",
    "create_success_notification",
]
