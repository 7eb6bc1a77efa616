"""Session adapter for tagging log records with the signed-in operator."""

from fleet_console.logging.context import remove_extra_context, set_extra_context
from fleet_console.registry.models import UserProfile

_SESSION_FIELDS: tuple[str, ...] = ("user_id", "user_role", "organization_id")


def set_session_context(profile: UserProfile) -> None:
    """Attach the operator's identity to every subsequent log record.

    Args:
        profile: Profile returned by the registry after sign-in.
    """
    set_extra_context(user_id=profile.id)
    if profile.role:
        set_extra_context(user_role=profile.role)
    if profile.organization_id:
        set_extra_context(organization_id=profile.organization_id)


def clear_session_context() -> None:
    """Stop tagging log records with the operator's identity."""
    remove_extra_context(*_SESSION_FIELDS)
