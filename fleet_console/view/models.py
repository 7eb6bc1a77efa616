"""Immutable view-model values held by the fleet store."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from fleet_console.fleet.models import Drone
from fleet_console.mission.models import ACTIVE_STATUSES, Mission, MissionAction, MissionStatus


class PendingCommand(BaseModel):
    """An issued command the registry has not answered yet."""

    model_config = ConfigDict(frozen=True)

    action: MissionAction
    target_status: MissionStatus
    prior_status: MissionStatus
    issued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class MissionView(BaseModel):
    """Confirmed mission state plus an optional optimistic overlay."""

    model_config = ConfigDict(frozen=True)

    mission: Mission
    pending: PendingCommand | None = None

    @property
    def id(self) -> str:
        return self.mission.id

    @property
    def effective_status(self) -> MissionStatus:
        """Status to display: the pending target, else the confirmed one."""
        if self.pending is not None:
            return self.pending.target_status
        return self.mission.status

    @property
    def is_pending(self) -> bool:
        return self.pending is not None

    @property
    def is_active(self) -> bool:
        return self.effective_status in ACTIVE_STATUSES


class FleetSnapshot(BaseModel):
    """Everything the console knows about the fleet at one point in time.

    Never mutated: the store builds a new snapshot for every change.
    ``missions`` holds missions that have not finished yet; finished ones
    live in ``history``, most recent first.
    """

    model_config = ConfigDict(frozen=True)

    missions: dict[str, MissionView] = Field(default_factory=dict)
    drones: dict[str, Drone] = Field(default_factory=dict)
    history: tuple[Mission, ...] = ()
    loaded_at: datetime | None = None

    @property
    def is_loaded(self) -> bool:
        return self.loaded_at is not None

    def get_mission(self, mission_id: str) -> MissionView | None:
        return self.missions.get(mission_id)

    def get_drone(self, drone_id: str) -> Drone | None:
        return self.drones.get(drone_id)
