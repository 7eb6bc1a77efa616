"""Context variables for command- and session-scoped logging data.

Uses contextvars so every asyncio task sees the context it was created
with; a mission command dispatched from one task never leaks its
correlation id into the channel's event handlers.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

_extra_context: ContextVar[dict[str, Any] | None] = ContextVar("extra_context", default=None)


def get_correlation_id() -> str:
    """Return the correlation ID of the current context."""
    return correlation_id.get()


def set_correlation_id(value: str) -> None:
    """Set the correlation ID for the current context."""
    correlation_id.set(value)


def generate_correlation_id() -> str:
    """Generate and set a new correlation ID.

    Returns:
        The generated correlation ID.
    """
    new_id = uuid4().hex
    correlation_id.set(new_id)
    return new_id


def get_extra_context() -> dict[str, Any]:
    """Return a copy of the extra fields attached to log records."""
    context = _extra_context.get()
    if context is None:
        return {}
    return context.copy()


def set_extra_context(**kwargs: Any) -> None:
    """Attach fields to every log record emitted from this context.

    Args:
        **kwargs: Key-value pairs to include in log records.
    """
    current = _extra_context.get()
    current = {} if current is None else current.copy()
    current.update(kwargs)
    _extra_context.set(current)


def remove_extra_context(*keys: str) -> None:
    """Stop attaching the given fields to log records."""
    current = _extra_context.get()
    if not current:
        return
    _extra_context.set({key: value for key, value in current.items() if key not in keys})


@contextmanager
def bind_command_context(**fields: Any) -> Iterator[str]:
    """Scope a fresh correlation ID and extra fields to one command.

    The previous correlation ID and extra fields are restored on exit.

    Args:
        **fields: Fields such as ``mission_id`` and ``action``.

    Yields:
        The correlation ID generated for the command.
    """
    correlation_token = correlation_id.set(uuid4().hex)
    current = _extra_context.get()
    merged = {} if current is None else current.copy()
    merged.update(fields)
    extra_token = _extra_context.set(merged)
    try:
        yield correlation_id.get()
    finally:
        _extra_context.reset(extra_token)
        correlation_id.reset(correlation_token)


def clear_context() -> None:
    """Clear all context (correlation ID and extra context)."""
    correlation_id.set("")
    _extra_context.set(None)
