"""Mission domain models and the mission state machine."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from fleet_console.exceptions.client_errors import InvalidTransitionError


class MissionStatus(StrEnum):
    """Mission lifecycle states as reported by the registry."""

    SCHEDULED = "scheduled"
    PLANNED = "planned"
    IN_PROGRESS = "in-progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABORTED = "aborted"


class MissionAction(StrEnum):
    """Control actions an operator can issue against a mission."""

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    ABORT = "abort"


class RegistryModel(BaseModel):
    """Base for models read from the registry's camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class GeoPolygon(RegistryModel):
    """Mission boundary as a GeoJSON polygon of ``[longitude, latitude]`` rings."""

    type: str = Field(default="Polygon")
    coordinates: list[list[list[float]]] = Field(default_factory=list)


class MissionWaypoint(RegistryModel):
    """Single waypoint of a mission path."""

    coordinates: list[float] = Field(min_length=2, max_length=3)
    altitude: float | None = Field(default=None, ge=0)


class MissionSchedule(RegistryModel):
    """Planned time window of a mission."""

    start_time: datetime | None = None
    end_time: datetime | None = None


class MissionProgress(RegistryModel):
    """Execution progress. Meaningful only while a mission is active."""

    percent_complete: float = Field(default=0.0, ge=0, le=100)
    started_at: datetime | None = None
    estimated_time_remaining: float | None = Field(default=None, ge=0)


class Mission(RegistryModel):
    """Cached copy of a registry mission.

    Boundary and waypoints are never patched client-side; only status and
    progress change between snapshot loads.
    """

    id: str = Field(alias="_id", min_length=1)
    name: str = Field(default="")
    description: str = Field(default="")
    status: MissionStatus = Field(default=MissionStatus.SCHEDULED)
    mission_type: str | None = None
    assigned_drone_id: str | None = None
    progress: MissionProgress = Field(default_factory=MissionProgress)
    boundary: GeoPolygon | None = None
    waypoints: list[MissionWaypoint] = Field(default_factory=list)
    schedule: MissionSchedule = Field(default_factory=MissionSchedule)
    end_time: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_registry_payload(cls, data: Any) -> Any:
        """Accept the registry's loose shapes.

        ``assignedDrone`` may be an embedded drone object or a bare id, and
        older payloads carry ``percentComplete``/``estimatedTimeRemaining``
        on the mission instead of under ``progress``.
        """
        if not isinstance(data, dict):
            return data
        normalized = dict(data)

        if "_id" not in normalized and "id" in normalized:
            normalized["_id"] = normalized.pop("id")

        assigned_drone = normalized.pop("assignedDrone", None)
        if isinstance(assigned_drone, dict):
            assigned_drone = assigned_drone.get("_id") or assigned_drone.get("id")
        if assigned_drone and "assignedDroneId" not in normalized:
            normalized["assignedDroneId"] = str(assigned_drone)

        flat_keys = [
            key
            for key in ("percentComplete", "estimatedTimeRemaining", "startedAt")
            if key in normalized
        ]
        if flat_keys:
            progress = normalized.get("progress")
            if isinstance(progress, MissionProgress):
                progress = progress.model_dump(by_alias=True)
            progress = dict(progress) if isinstance(progress, dict) else {}
            for key in flat_keys:
                value = normalized.pop(key)
                if value is not None:
                    progress.setdefault(key, value)
            normalized["progress"] = progress
        return normalized

    @property
    def is_active(self) -> bool:
        """Return whether the mission is executing or paused."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        """Return whether the mission can no longer change state."""
        return is_terminal(self.status)

    @property
    def finished_at(self) -> datetime | None:
        """Best known end time, used to order the history set."""
        return self.end_time or self.schedule.end_time or self.updated_at


ACTIVE_STATUSES: frozenset[MissionStatus] = frozenset(
    {MissionStatus.IN_PROGRESS, MissionStatus.PAUSED}
)

TERMINAL_STATUSES: frozenset[MissionStatus] = frozenset(
    {MissionStatus.COMPLETED, MissionStatus.ABORTED}
)

# (current status, action) -> resulting status. Anything missing is illegal.
MISSION_TRANSITIONS: dict[tuple[MissionStatus, MissionAction], MissionStatus] = {
    (MissionStatus.SCHEDULED, MissionAction.START): MissionStatus.IN_PROGRESS,
    (MissionStatus.PLANNED, MissionAction.START): MissionStatus.IN_PROGRESS,
    (MissionStatus.IN_PROGRESS, MissionAction.PAUSE): MissionStatus.PAUSED,
    (MissionStatus.PAUSED, MissionAction.RESUME): MissionStatus.IN_PROGRESS,
    (MissionStatus.IN_PROGRESS, MissionAction.COMPLETE): MissionStatus.COMPLETED,
    (MissionStatus.IN_PROGRESS, MissionAction.ABORT): MissionStatus.ABORTED,
    (MissionStatus.PAUSED, MissionAction.ABORT): MissionStatus.ABORTED,
}


def is_terminal(status: MissionStatus) -> bool:
    """Check if a status admits no further transitions."""
    return status in TERMINAL_STATUSES


def is_action_allowed(status: MissionStatus, action: MissionAction) -> bool:
    """Check if an action is legal from a status.

    Args:
        status: Current mission status.
        action: Requested control action.

    Returns:
        True if the transition table contains the pair.
    """
    return (status, action) in MISSION_TRANSITIONS


def get_allowed_actions(status: MissionStatus) -> list[MissionAction]:
    """List the actions legal from a status, in declaration order."""
    return [action for action in MissionAction if is_action_allowed(status, action)]


def get_target_status(
    status: MissionStatus,
    action: MissionAction,
    *,
    mission_id: str | None = None,
) -> MissionStatus:
    """Resolve the status an action leads to.

    Args:
        status: Current mission status.
        action: Requested control action.
        mission_id: Mission identifier, for the error context.

    Returns:
        Status the mission is expected to reach.

    Raises:
        InvalidTransitionError: If the action is illegal from ``status``.
    """
    target = MISSION_TRANSITIONS.get((status, action))
    if target is None:
        raise InvalidTransitionError(
            f"Cannot {action} a mission that is {status}",
            mission_id=mission_id,
            status=status,
            action=action,
        )
    return target
