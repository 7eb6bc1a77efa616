"""Root of the fleet console's exception hierarchy.

Every failure the console reports to an operator is a ``FleetConsoleError``.
Subclasses only declare class attributes; construction, log fields and
the code-to-class lookup live here.
"""

from http import HTTPStatus
from typing import Any, ClassVar, Self


class FleetConsoleError(Exception):
    """A failure the operator may need to hear about.

    Attributes:
        message: Text suitable for a notification.
        error_code: Stable machine-readable code, also used in log records.
        http_status: Registry status code that produces this error.
        retryable: Whether repeating the same call can succeed.
        context: Ids and request details for logs and notifications.
    """

    error_code: ClassVar[str] = "INTERNAL_ERROR"
    http_status: ClassVar[int] = HTTPStatus.INTERNAL_SERVER_ERROR
    retryable: ClassVar[bool] = False

    _classes_by_code: ClassVar[dict[str, type["FleetConsoleError"]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        FleetConsoleError._classes_by_code[cls.error_code] = cls

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context) if context else {}

    def with_context(self, **fields: Any) -> Self:
        """Add context fields that are not already set and return the error.

        Lets a caller tag an error raised further down with the mission or
        drone it was working on before re-raising it.
        """
        for key, value in fields.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    def log_extra(self) -> dict[str, Any]:
        """Fields for the ``extra`` argument of a logging call."""
        return {"error_code": self.error_code, "error_context": self.context}

    @classmethod
    def get_by_error_code(cls, error_code: str) -> type["FleetConsoleError"] | None:
        """Return the subclass registered for a code, if any."""
        return cls._classes_by_code.get(error_code)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} [{details}]"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, context={self.context!r})"
