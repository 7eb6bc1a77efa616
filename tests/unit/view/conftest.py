"""Fleet fixtures shared by view tests."""

from datetime import UTC, datetime

import pytest

from fleet_console.fleet.models import Drone
from fleet_console.mission.models import Mission
from fleet_console.view.store import FleetStore


def make_mission(mission_id, status="in-progress", drone_id=None, **fields):
    payload = {"_id": mission_id, "name": f"Mission {mission_id}", "status": status, **fields}
    if drone_id is not None:
        payload["assignedDrone"] = drone_id
    return Mission.model_validate(payload)


def make_drone(drone_id, status="in-mission", battery=80.0, altitude=50.0, **fields):
    return Drone.model_validate(
        {
            "_id": drone_id,
            "name": f"Drone {drone_id}",
            "status": status,
            "telemetry": {
                "batteryLevel": battery,
                "lastKnownPosition": {"latitude": 10.0, "longitude": 20.0, "altitude": altitude},
            },
            **fields,
        }
    )


def finished_at(day):
    return datetime(2026, 5, day, 12, 0, tzinfo=UTC).isoformat()


@pytest.fixture
def store():
    fleet_store = FleetStore()
    fleet_store.replace_snapshot(
        [
            make_mission("m1", "in-progress", drone_id="d1"),
            make_mission("m2", "scheduled", drone_id="d2"),
            make_mission("m3", "paused", drone_id="d3"),
        ],
        [
            make_drone("d1"),
            make_drone("d2", status="available"),
            make_drone("d3"),
        ],
    )
    return fleet_store


@pytest.fixture(name="make_mission")
def make_mission_fixture():
    return make_mission


@pytest.fixture(name="make_drone")
def make_drone_fixture():
    return make_drone


@pytest.fixture(name="finished_at")
def finished_at_fixture():
    return finished_at
