"""Fleet domain models for drones and their telemetry."""

import logging
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from fleet_console.mission.models import RegistryModel

logger = logging.getLogger(__name__)


class DroneStatus(StrEnum):
    """Drone availability states."""

    AVAILABLE = "available"
    IN_MISSION = "in-mission"
    CHARGING = "charging"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


# Older registry builds report these instead of the current vocabulary.
_LEGACY_DRONE_STATUSES: dict[str, DroneStatus] = {
    "active": DroneStatus.IN_MISSION,
    "idle": DroneStatus.AVAILABLE,
}


def parse_drone_status(value: Any) -> DroneStatus:
    """Map a registry status string onto DroneStatus.

    Unknown values are read as INACTIVE rather than failing the whole
    snapshot.
    """
    if isinstance(value, DroneStatus):
        return value
    text = str(value).strip().lower()
    if text in _LEGACY_DRONE_STATUSES:
        return _LEGACY_DRONE_STATUSES[text]
    try:
        return DroneStatus(text)
    except ValueError:
        logger.warning("Unknown drone status %r, treating as inactive", value)
        return DroneStatus.INACTIVE


class Position(RegistryModel):
    """Last known geographic position."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    altitude: float = Field(default=0.0)


class DroneTelemetry(RegistryModel):
    """Most recently received telemetry sample."""

    battery_level: float | None = Field(default=None, ge=0, le=100)
    last_known_position: Position | None = None
    last_updated: datetime | None = None


class DroneCapabilities(RegistryModel):
    """Static airframe capabilities."""

    max_flight_time: float | None = Field(default=None, ge=0)
    max_speed: float | None = Field(default=None, ge=0)
    max_altitude: float | None = Field(default=None, ge=0)
    sensors: list[str] = Field(default_factory=list)


class Drone(RegistryModel):
    """Cached copy of a registry drone."""

    id: str = Field(alias="_id", min_length=1)
    name: str = Field(default="")
    model: str = Field(default="")
    serial_number: str = Field(default="")
    status: DroneStatus = Field(default=DroneStatus.AVAILABLE)
    telemetry: DroneTelemetry = Field(default_factory=DroneTelemetry)
    capabilities: DroneCapabilities | None = None
    updated_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_identifier(cls, data: Any) -> Any:
        """Accept ``id`` as well as the registry's ``_id``."""
        if isinstance(data, dict) and "_id" not in data and "id" in data:
            normalized = dict(data)
            normalized["_id"] = normalized.pop("id")
            return normalized
        return data

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, value: Any) -> DroneStatus:
        """Read legacy and unknown status strings."""
        return parse_drone_status(value)

    @field_validator("telemetry", mode="before")
    @classmethod
    def default_missing_telemetry(cls, value: Any) -> Any:
        """The registry sends ``null`` for drones that never reported."""
        return {} if value is None else value


class TelemetryPatch(BaseModel):
    """Partial telemetry update: only fields that are set get applied."""

    battery_level: float | None = Field(default=None, ge=0, le=100)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    altitude: float | None = None
    timestamp: datetime | None = None

    @property
    def is_empty(self) -> bool:
        """Return whether the patch carries no telemetry fields."""
        return all(getattr(self, name) is None for name in type(self).model_fields)

    def apply_to(self, telemetry: DroneTelemetry) -> DroneTelemetry:
        """Return a new telemetry sample with this patch applied.

        Fields absent from the patch keep their prior values. A position
        update without a previously known position needs both coordinates.
        """
        updates: dict[str, Any] = {}
        if self.battery_level is not None:
            updates["battery_level"] = self.battery_level

        position_updates = {
            key: getattr(self, key)
            for key in ("latitude", "longitude", "altitude")
            if getattr(self, key) is not None
        }
        if position_updates:
            current_position = telemetry.last_known_position
            if current_position is not None:
                updates["last_known_position"] = current_position.model_copy(
                    update=position_updates
                )
            elif "latitude" in position_updates and "longitude" in position_updates:
                updates["last_known_position"] = Position(**position_updates)

        if self.timestamp is not None:
            updates["last_updated"] = self.timestamp

        if not updates:
            return telemetry
        return telemetry.model_copy(update=updates)


class FleetSummary(BaseModel):
    """Dashboard counters derived from the cached fleet."""

    total_drones: int = Field(ge=0)
    available_drones: int = Field(ge=0)
    in_mission_drones: int = Field(ge=0)
    maintenance_drones: int = Field(ge=0)
    total_missions: int = Field(ge=0)
    active_missions: int = Field(ge=0)
    completed_missions: int = Field(ge=0)
    total_reports: int = Field(default=0, ge=0)
