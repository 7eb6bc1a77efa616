"""Read-only projections over a fleet snapshot.

Everything here is a pure function of its inputs. Nothing is cached; UI
layers recompute on every snapshot change.
"""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from fleet_console.fleet.models import DroneStatus, FleetSummary
from fleet_console.mission.models import Mission, MissionStatus
from fleet_console.view.models import FleetSnapshot, MissionView

ACTIVITY_MISSION_COUNT = 3
ACTIVITY_DRONE_COUNT = 2


class ActivityKind(StrEnum):
    MISSION = "mission"
    DRONE = "drone"


class ActivityItem(BaseModel):
    """One line of the dashboard's recent activity list."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: ActivityKind
    action: str
    name: str
    time_label: str

    @property
    def text(self) -> str:
        """Sentence shown to the operator."""
        if self.kind == ActivityKind.DRONE:
            if self.action == "added":
                return f'New drone "{self.name}" added'
            if self.action == "maintenance":
                return f'Drone "{self.name}" marked for maintenance'
            return f'Drone "{self.name}" {self.action}'
        return f'Mission "{self.name}" {self.action}'


_MISSION_ACTIVITY_ACTIONS: dict[MissionStatus, str] = {
    MissionStatus.IN_PROGRESS: "started",
    MissionStatus.PAUSED: "started",
    MissionStatus.COMPLETED: "completed",
    MissionStatus.ABORTED: "aborted",
}


def get_active_missions(snapshot: FleetSnapshot) -> list[MissionView]:
    """Missions that are executing or paused, judged by effective status."""
    return [view for view in snapshot.missions.values() if view.is_active]


def get_mission_history(snapshot: FleetSnapshot) -> list[Mission]:
    """Finished missions, most recently finished first."""
    return list(snapshot.history)


def get_fleet_summary(snapshot: FleetSnapshot, total_reports: int = 0) -> FleetSummary:
    """Dashboard counters.

    Mission totals cover the unfinished missions plus the retained history,
    so they undercount once more missions have finished than history keeps.
    """
    drones = list(snapshot.drones.values())
    return FleetSummary(
        total_drones=len(drones),
        available_drones=sum(1 for drone in drones if drone.status == DroneStatus.AVAILABLE),
        in_mission_drones=sum(1 for drone in drones if drone.status == DroneStatus.IN_MISSION),
        maintenance_drones=sum(1 for drone in drones if drone.status == DroneStatus.MAINTENANCE),
        total_missions=len(snapshot.missions) + len(snapshot.history),
        active_missions=len(get_active_missions(snapshot)),
        completed_missions=sum(
            1 for mission in snapshot.history if mission.status == MissionStatus.COMPLETED
        ),
        total_reports=total_reports,
    )


def format_time_ago(timestamp: datetime, now: datetime) -> str:
    """Render an age such as ``"5 minutes ago"``.

    Naive timestamps are read as UTC. Future timestamps count as zero.
    """
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    minutes = max(int((now - timestamp).total_seconds() // 60), 0)
    hours = minutes // 60
    days = hours // 24
    if minutes < 60:
        value, unit = minutes, "minute"
    elif hours < 24:
        value, unit = hours, "hour"
    else:
        value, unit = days, "day"
    return f"{value} {unit}{'' if value == 1 else 's'} ago"


def build_activity_feed(snapshot: FleetSnapshot, now: datetime) -> list[ActivityItem]:
    """Recent activity: the first three missions, then the first two drones."""
    missions = [view.mission for view in snapshot.missions.values()]
    missions.extend(snapshot.history)

    items = [
        ActivityItem(
            id=f"mission-{mission.id}",
            kind=ActivityKind.MISSION,
            action=_MISSION_ACTIVITY_ACTIONS.get(mission.status, "planned"),
            name=mission.name,
            time_label=format_time_ago(mission.updated_at or now, now),
        )
        for mission in missions[:ACTIVITY_MISSION_COUNT]
    ]
    items.extend(
        ActivityItem(
            id=f"drone-{drone.id}",
            kind=ActivityKind.DRONE,
            action="maintenance" if drone.status == DroneStatus.MAINTENANCE else "added",
            name=drone.name,
            time_label=format_time_ago(drone.updated_at or now, now),
        )
        for drone in list(snapshot.drones.values())[:ACTIVITY_DRONE_COUNT]
    )
    return items
