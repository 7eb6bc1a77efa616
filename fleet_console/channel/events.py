"""Push events received over the real-time channel.

The registry emits loosely shaped Socket.IO events; ``parse_event`` turns
one of them into typed events, each tagged with the topic it belongs to.
Payload fields that are absent stay ``None`` so reconciliation can apply
partial updates.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from fleet_console.fleet.models import DroneStatus, TelemetryPatch, parse_drone_status
from fleet_console.mission.models import MissionStatus

# Client-to-server messages.
JOIN_MISSION_EVENT = "join-mission"
LEAVE_MISSION_EVENT = "leave-mission"

DRONE_TELEMETRY_EVENT_PREFIX = "drone-telemetry-"


class TopicKind(StrEnum):
    """Subscription scopes on the channel."""

    MISSION = "mission"
    DRONE = "drone"


@dataclass(frozen=True, slots=True)
class Topic:
    """A per-mission room or a per-drone telemetry stream."""

    kind: TopicKind
    entity_id: str

    @classmethod
    def mission(cls, mission_id: str) -> "Topic":
        """Topic for a mission room."""
        return cls(TopicKind.MISSION, mission_id)

    @classmethod
    def drone(cls, drone_id: str) -> "Topic":
        """Topic for a drone's telemetry stream."""
        return cls(TopicKind.DRONE, drone_id)

    def __str__(self) -> str:
        return f"{self.kind}:{self.entity_id}"


class EventKind(StrEnum):
    """Discriminator of the event union."""

    DRONE_TELEMETRY = "drone_telemetry"
    DRONE_STATUS = "drone_status"
    MISSION_STATUS = "mission_status"
    MISSION_PROGRESS = "mission_progress"
    ALERT = "alert"


class MissionStatusChange(StrEnum):
    """Lifecycle changes announced by the registry."""

    STARTED = "started"
    PAUSED = "paused"
    RESUMED = "resumed"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def status(self) -> MissionStatus:
        """Status a mission is in after this change."""
        return _STATUS_BY_CHANGE[self]

    @property
    def is_terminal(self) -> bool:
        """Return whether the change ends the mission."""
        return self in (MissionStatusChange.COMPLETED, MissionStatusChange.ABORTED)


_STATUS_BY_CHANGE: dict[MissionStatusChange, MissionStatus] = {
    MissionStatusChange.STARTED: MissionStatus.IN_PROGRESS,
    MissionStatusChange.PAUSED: MissionStatus.PAUSED,
    MissionStatusChange.RESUMED: MissionStatus.IN_PROGRESS,
    MissionStatusChange.COMPLETED: MissionStatus.COMPLETED,
    MissionStatusChange.ABORTED: MissionStatus.ABORTED,
}


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class DroneTelemetryEvent(_Event):
    """New telemetry sample for a drone. Only set fields are applied."""

    kind: Literal[EventKind.DRONE_TELEMETRY] = EventKind.DRONE_TELEMETRY
    drone_id: str = Field(min_length=1)
    patch: TelemetryPatch

    @property
    def topic(self) -> Topic:
        return Topic.drone(self.drone_id)


class DroneStatusEvent(_Event):
    """Drone availability changed, possibly with fresh telemetry."""

    kind: Literal[EventKind.DRONE_STATUS] = EventKind.DRONE_STATUS
    drone_id: str = Field(min_length=1)
    status: DroneStatus
    patch: TelemetryPatch = Field(default_factory=TelemetryPatch)

    @property
    def topic(self) -> Topic:
        return Topic.drone(self.drone_id)


class MissionStatusEvent(_Event):
    """Mission lifecycle change."""

    kind: Literal[EventKind.MISSION_STATUS] = EventKind.MISSION_STATUS
    mission_id: str = Field(min_length=1)
    change: MissionStatusChange
    drone_id: str | None = None
    end_time: datetime | None = None
    reason: str | None = None

    @property
    def status(self) -> MissionStatus:
        return self.change.status

    @property
    def topic(self) -> Topic:
        return Topic.mission(self.mission_id)


class MissionProgressEvent(_Event):
    """Progress update. Never changes the mission's status."""

    kind: Literal[EventKind.MISSION_PROGRESS] = EventKind.MISSION_PROGRESS
    mission_id: str = Field(min_length=1)
    percent_complete: float | None = Field(default=None, ge=0, le=100)
    estimated_time_remaining: float | None = Field(default=None, ge=0)
    started_at: datetime | None = None

    @property
    def topic(self) -> Topic:
        return Topic.mission(self.mission_id)


class AlertEvent(_Event):
    """Operator alert. Scoped to a drone or mission when it names one."""

    kind: Literal[EventKind.ALERT] = EventKind.ALERT
    message: str = Field(default="")
    severity: str = Field(default="warning")
    drone_id: str | None = None
    mission_id: str | None = None

    @property
    def topic(self) -> Topic | None:
        if self.drone_id:
            return Topic.drone(self.drone_id)
        if self.mission_id:
            return Topic.mission(self.mission_id)
        return None


ChannelEvent = Annotated[
    DroneTelemetryEvent
    | DroneStatusEvent
    | MissionStatusEvent
    | MissionProgressEvent
    | AlertEvent,
    Field(discriminator="kind"),
]


_TELEMETRY_EVENT_NAMES: frozenset[str] = frozenset(
    {"drone_update", "drone_battery_update", "drone_telemetry", "drone-telemetry"}
)
_DRONE_STATUS_EVENT_NAMES: frozenset[str] = frozenset({"drone_status_update", "drone_updated"})
_MISSION_PROGRESS_EVENT_NAMES: frozenset[str] = frozenset({"mission-progress", "mission_progress"})
_ALERT_EVENT_NAMES: frozenset[str] = frozenset({"drone_alert", "alert"})
_MISSION_STATUS_EVENT_NAMES: dict[str, MissionStatusChange] = {
    f"mission{separator}{change}": change
    for change in MissionStatusChange
    for separator in ("-", "_")
}


def _get_first(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _get_entity_id(payload: dict[str, Any], *keys: str) -> str | None:
    value = _get_first(payload, *keys)
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
    return str(value) if value is not None else None


def _parse_location(value: Any) -> dict[str, float]:
    """Read ``[lng, lat]``, ``{coordinates: [lng, lat]}`` or ``{latitude, longitude}``."""
    if isinstance(value, dict) and "coordinates" in value:
        value = value["coordinates"]
    try:
        if isinstance(value, list | tuple) and len(value) >= 2:
            location = {"longitude": float(value[0]), "latitude": float(value[1])}
            if len(value) >= 3 and value[2] is not None:
                location["altitude"] = float(value[2])
            return location
        if isinstance(value, dict):
            return {
                key: float(value[key])
                for key in ("latitude", "longitude", "altitude")
                if value.get(key) is not None
            }
    except TypeError as error:
        raise ValueError(f"Invalid location {value!r}") from error
    return {}


def _parse_telemetry_patch(payload: dict[str, Any]) -> TelemetryPatch:
    telemetry = payload.get("telemetry")
    source = {**payload, **telemetry} if isinstance(telemetry, dict) else payload

    fields: dict[str, Any] = {}
    battery_level = _get_first(source, "batteryLevel", "battery_level", "battery")
    if battery_level is not None:
        fields["battery_level"] = battery_level

    location = _get_first(source, "lastKnownPosition", "location", "position")
    if location is not None:
        fields.update(_parse_location(location))
    altitude = source.get("altitude")
    if altitude is not None:
        fields["altitude"] = altitude

    timestamp = _get_first(source, "timestamp", "lastUpdated")
    if timestamp is not None:
        fields["timestamp"] = timestamp
    return TelemetryPatch(**fields)


def _parse_progress(mission_id: str, value: Any, payload: dict[str, Any]) -> MissionProgressEvent:
    progress = value if isinstance(value, dict) else {"percentComplete": value}
    merged = {**payload, **progress}
    return MissionProgressEvent(
        mission_id=mission_id,
        percent_complete=_get_first(merged, "percentComplete", "percent_complete"),
        estimated_time_remaining=_get_first(
            merged, "estimatedTimeRemaining", "estimated_time_remaining"
        ),
        started_at=_get_first(merged, "startedAt", "started_at"),
    )


def parse_event(name: str, payload: Any) -> list[ChannelEvent]:
    """Translate one Socket.IO event into typed channel events.

    ``drone_update`` can carry both a telemetry sample and the progress of
    the drone's mission; it yields one event for each.

    Args:
        name: Socket.IO event name.
        payload: Decoded event payload.

    Returns:
        Parsed events; empty for names this client does not handle.

    Raises:
        ValueError: If the payload does not match the event's shape.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Event {name!r} carried a non-object payload")

    if name.startswith(DRONE_TELEMETRY_EVENT_PREFIX):
        drone_id = _get_entity_id(payload, "droneId", "drone_id") or name.removeprefix(
            DRONE_TELEMETRY_EVENT_PREFIX
        )
        return [DroneTelemetryEvent(drone_id=drone_id, patch=_parse_telemetry_patch(payload))]

    if name in _TELEMETRY_EVENT_NAMES:
        events: list[ChannelEvent] = []
        drone_id = _get_entity_id(payload, "droneId", "drone_id", "_id")
        if drone_id is None:
            raise ValueError(f"Event {name!r} has no drone id")
        events.append(DroneTelemetryEvent(drone_id=drone_id, patch=_parse_telemetry_patch(payload)))
        mission_id = _get_entity_id(payload, "missionId", "mission_id")
        progress = payload.get("progress")
        if mission_id and progress is not None:
            events.append(_parse_progress(mission_id, progress, {}))
        return events

    if name in _DRONE_STATUS_EVENT_NAMES:
        drone_id = _get_entity_id(payload, "droneId", "drone_id", "_id")
        if drone_id is None:
            raise ValueError(f"Event {name!r} has no drone id")
        if payload.get("status") is None:
            return [DroneTelemetryEvent(drone_id=drone_id, patch=_parse_telemetry_patch(payload))]
        return [
            DroneStatusEvent(
                drone_id=drone_id,
                status=parse_drone_status(payload["status"]),
                patch=_parse_telemetry_patch(payload),
            )
        ]

    if name in _MISSION_STATUS_EVENT_NAMES:
        mission_id = _get_entity_id(payload, "missionId", "mission_id", "_id")
        if mission_id is None:
            raise ValueError(f"Event {name!r} has no mission id")
        return [
            MissionStatusEvent(
                mission_id=mission_id,
                change=_MISSION_STATUS_EVENT_NAMES[name],
                drone_id=_get_entity_id(payload, "droneId", "drone_id", "assignedDrone"),
                end_time=_get_first(payload, "endTime", "end_time"),
                reason=payload.get("reason"),
            )
        ]

    if name in _MISSION_PROGRESS_EVENT_NAMES:
        mission_id = _get_entity_id(payload, "missionId", "mission_id", "_id")
        if mission_id is None:
            raise ValueError(f"Event {name!r} has no mission id")
        return [_parse_progress(mission_id, payload.get("progress", {}), payload)]

    if name in _ALERT_EVENT_NAMES:
        return [
            AlertEvent(
                message=str(payload.get("message", "")),
                severity=str(_get_first(payload, "severity", "level", "type") or "warning"),
                drone_id=_get_entity_id(payload, "droneId", "drone_id"),
                mission_id=_get_entity_id(payload, "missionId", "mission_id"),
            )
        ]

    return []


def is_known_event(name: str) -> bool:
    """Return whether ``parse_event`` understands an event name."""
    return (
        name.startswith(DRONE_TELEMETRY_EVENT_PREFIX)
        or name in _TELEMETRY_EVENT_NAMES
        or name in _DRONE_STATUS_EVENT_NAMES
        or name in _MISSION_STATUS_EVENT_NAMES
        or name in _MISSION_PROGRESS_EVENT_NAMES
        or name in _ALERT_EVENT_NAMES
    )
