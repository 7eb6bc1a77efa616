"""Failures to reach the registry or to keep the push channel alive."""

from http import HTTPStatus
from typing import Any, ClassVar

from fleet_console.exceptions.base import FleetConsoleError


class TransportError(FleetConsoleError):
    """The registry or the channel could not be talked to."""

    error_code: ClassVar[str] = "TRANSPORT_ERROR"
    http_status: ClassVar[int] = HTTPStatus.BAD_GATEWAY


class NetworkError(TransportError):
    """Connection failure or timeout.

    Reads are retried before this is raised; writes never are.
    """

    error_code: ClassVar[str] = "NETWORK_ERROR"
    http_status: ClassVar[int] = HTTPStatus.SERVICE_UNAVAILABLE
    retryable: ClassVar[bool] = True

    def __init__(
        self,
        message: str,
        *,
        method: str | None = None,
        url: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.with_context(method=method, url=url)


class RegistryError(TransportError):
    """The registry answered with a 5xx or a ``status: "error"`` envelope."""

    error_code: ClassVar[str] = "REGISTRY_ERROR"
    http_status: ClassVar[int] = HTTPStatus.BAD_GATEWAY

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.with_context(status_code=status_code)


class ChannelDisconnectedError(TransportError):
    """Push updates stopped. Reported, never raised."""

    error_code: ClassVar[str] = "CHANNEL_DISCONNECTED"
    http_status: ClassVar[int] = HTTPStatus.SERVICE_UNAVAILABLE
    retryable: ClassVar[bool] = True
