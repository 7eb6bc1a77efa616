"""Tests for the fleet view-model store."""

from unittest.mock import MagicMock

import pytest

from fleet_console.channel.events import (
    AlertEvent,
    DroneStatusEvent,
    DroneTelemetryEvent,
    MissionProgressEvent,
    MissionStatusChange,
    MissionStatusEvent,
    Topic,
)
from fleet_console.exceptions.client_errors import (
    CommandInProgressError,
    InvalidTransitionError,
    NotFoundError,
)
from fleet_console.fleet.models import DroneStatus, TelemetryPatch
from fleet_console.mission.models import MissionAction, MissionStatus
from fleet_console.view.store import FleetStore


def _status_event(mission_id, change, **fields):
    return MissionStatusEvent(mission_id=mission_id, change=change, **fields)


def _telemetry_event(drone_id, **patch):
    return DroneTelemetryEvent(drone_id=drone_id, patch=TelemetryPatch(**patch))


class TestReplaceSnapshot:
    def test_splits_active_and_history(self, make_mission, make_drone, finished_at):
        store = FleetStore()
        snapshot = store.replace_snapshot(
            [
                make_mission("m1", "in-progress"),
                make_mission("m2", "completed", endTime=finished_at(1)),
                make_mission("m3", "aborted", endTime=finished_at(3)),
            ],
            [make_drone("d1")],
        )
        assert list(snapshot.missions) == ["m1"]
        assert [mission.id for mission in snapshot.history] == ["m3", "m2"]
        assert snapshot.is_loaded is True

    def test_history_capped(self, make_mission, finished_at):
        store = FleetStore(history_limit=5)
        missions = [
            make_mission(f"m{day}", "completed", endTime=finished_at(day)) for day in range(1, 8)
        ]
        snapshot = store.replace_snapshot(missions, [])
        assert [mission.id for mission in snapshot.history] == ["m7", "m6", "m5", "m4", "m3"]

    def test_history_without_end_time_last(self, make_mission, finished_at):
        store = FleetStore()
        snapshot = store.replace_snapshot(
            [
                make_mission("m1", "completed"),
                make_mission("m2", "completed", endTime=finished_at(2)),
            ],
            [],
        )
        assert [mission.id for mission in snapshot.history] == ["m2", "m1"]

    def test_replaces_wholesale(self, store, make_mission, make_drone):
        snapshot = store.replace_snapshot([make_mission("m9")], [make_drone("d9")])
        assert list(snapshot.missions) == ["m9"]
        assert list(snapshot.drones) == ["d9"]

    def test_keeps_pending_overlay(self, store, make_mission):
        store.begin_command("m1", MissionAction.PAUSE)
        snapshot = store.replace_snapshot([make_mission("m1", "in-progress")], [])
        assert snapshot.missions["m1"].pending.action == MissionAction.PAUSE
        assert snapshot.missions["m1"].effective_status == MissionStatus.PAUSED

    def test_previous_snapshot_untouched(self, store):
        before = store.snapshot
        store.replace_snapshot([], [])
        assert "m1" in before.missions


class TestTelemetryEvents:
    def test_partial_update_keeps_other_fields(self, store):
        store.apply_event(_telemetry_event("d1", battery_level=75))
        telemetry = store.snapshot.drones["d1"].telemetry
        assert telemetry.battery_level == 75
        assert telemetry.last_known_position.altitude == 50

    def test_idempotent(self, store):
        event = _telemetry_event("d1", battery_level=70, altitude=65)
        store.apply_event(event)
        once = store.snapshot
        store.apply_event(event)
        assert store.snapshot == once

    def test_unknown_drone_ignored(self, store):
        before = store.snapshot
        store.apply_event(_telemetry_event("d404", battery_level=5))
        assert store.snapshot is before

    def test_status_event(self, store):
        store.apply_event(
            DroneStatusEvent(
                drone_id="d2", status=DroneStatus.CHARGING, patch=TelemetryPatch(battery_level=15)
            )
        )
        drone = store.snapshot.drones["d2"]
        assert drone.status == DroneStatus.CHARGING
        assert drone.telemetry.battery_level == 15
        assert drone.telemetry.last_known_position.altitude == 50

    def test_alert_changes_nothing(self, store):
        before = store.snapshot
        assert store.apply_event(AlertEvent(message="Wind", drone_id="d1")) == []
        assert store.snapshot is before


class TestMissionEvents:
    def test_completed_moves_to_history_head(
        self, store, make_mission, make_drone, finished_at
    ):
        store.replace_snapshot(
            [make_mission("m1", "in-progress", drone_id="d1")]
            + [
                make_mission(f"h{day}", "completed", endTime=finished_at(day))
                for day in range(1, 6)
            ],
            [make_drone("d1")],
        )
        evicted = store.apply_event(_status_event("m1", MissionStatusChange.COMPLETED))
        snapshot = store.snapshot
        assert "m1" not in snapshot.missions
        assert snapshot.history[0].id == "m1"
        assert snapshot.history[0].status == MissionStatus.COMPLETED
        assert len(snapshot.history) == 5
        assert "h1" not in [mission.id for mission in snapshot.history]
        assert evicted == [Topic.mission("m1"), Topic.drone("d1")]

    def test_aborted_releases_drone(self, store):
        store.apply_event(_status_event("m3", MissionStatusChange.ABORTED, reason="Weather"))
        assert store.snapshot.drones["d3"].status == DroneStatus.AVAILABLE
        assert store.snapshot.history[0].end_time is not None

    def test_terminal_event_idempotent(self, store):
        event = _status_event("m1", MissionStatusChange.COMPLETED)
        store.apply_event(event)
        once = store.snapshot
        assert store.apply_event(event) == []
        assert store.snapshot is once

    def test_paused_sets_confirmed_status(self, store):
        assert store.apply_event(_status_event("m1", MissionStatusChange.PAUSED)) == []
        assert store.snapshot.missions["m1"].mission.status == MissionStatus.PAUSED

    def test_started_marks_drone_in_mission(self, store):
        store.apply_event(_status_event("m2", MissionStatusChange.STARTED))
        assert store.snapshot.missions["m2"].mission.status == MissionStatus.IN_PROGRESS
        assert store.snapshot.drones["d2"].status == DroneStatus.IN_MISSION

    def test_unknown_mission_ignored(self, store):
        before = store.snapshot
        assert store.apply_event(_status_event("m404", MissionStatusChange.ABORTED)) == []
        assert store.snapshot is before

    def test_progress_leaves_status(self, store):
        store.apply_event(
            MissionProgressEvent(mission_id="m1", percent_complete=60, estimated_time_remaining=90)
        )
        mission = store.snapshot.missions["m1"].mission
        assert mission.progress.percent_complete == 60
        assert mission.progress.estimated_time_remaining == 90
        assert mission.status == MissionStatus.IN_PROGRESS

    def test_progress_partial(self, store):
        store.apply_event(MissionProgressEvent(mission_id="m1", percent_complete=30))
        store.apply_event(MissionProgressEvent(mission_id="m1", estimated_time_remaining=45))
        progress = store.snapshot.missions["m1"].mission.progress
        assert progress.percent_complete == 30
        assert progress.estimated_time_remaining == 45


class TestCommands:
    def test_begin_records_pending(self, store):
        pending = store.begin_command("m1", MissionAction.PAUSE)
        view = store.snapshot.missions["m1"]
        assert pending.prior_status == MissionStatus.IN_PROGRESS
        assert view.effective_status == MissionStatus.PAUSED
        assert view.mission.status == MissionStatus.IN_PROGRESS

    def test_begin_twice_rejected(self, store):
        store.begin_command("m1", MissionAction.PAUSE)
        with pytest.raises(CommandInProgressError):
            store.begin_command("m1", MissionAction.ABORT)

    def test_illegal_action_rejected(self, store):
        with pytest.raises(InvalidTransitionError):
            store.begin_command("m2", MissionAction.PAUSE)
        assert store.snapshot.missions["m2"].pending is None

    def test_unknown_mission(self, store):
        with pytest.raises(NotFoundError):
            store.begin_command("m404", MissionAction.START)

    def test_confirm_uses_registry_status(self, store, make_mission):
        store.begin_command("m1", MissionAction.PAUSE)
        store.confirm_command(make_mission("m1", "in-progress", drone_id="d1"))
        view = store.snapshot.missions["m1"]
        assert view.pending is None
        assert view.effective_status == MissionStatus.IN_PROGRESS

    def test_confirm_pause_keeps_drone_in_mission(self, store, make_mission):
        store.begin_command("m1", MissionAction.PAUSE)
        store.confirm_command(make_mission("m1", "paused", drone_id="d1"))
        assert store.snapshot.missions["m1"].mission.status == MissionStatus.PAUSED
        assert store.snapshot.drones["d1"].status == DroneStatus.IN_MISSION

    def test_confirm_start_marks_drone(self, store, make_mission):
        store.begin_command("m2", MissionAction.START)
        store.confirm_command(make_mission("m2", "in-progress", drone_id="d2"))
        assert store.snapshot.drones["d2"].status == DroneStatus.IN_MISSION

    def test_confirm_complete_finishes_mission(self, store, make_mission):
        store.begin_command("m1", MissionAction.COMPLETE)
        evicted = store.confirm_command(make_mission("m1", "completed"))
        assert "m1" not in store.snapshot.missions
        assert store.snapshot.history[0].assigned_drone_id == "d1"
        assert store.snapshot.drones["d1"].status == DroneStatus.AVAILABLE
        assert evicted == [Topic.mission("m1"), Topic.drone("d1")]

    def test_confirm_after_push_finished_mission(self, store, make_mission):
        store.begin_command("m1", MissionAction.ABORT)
        store.apply_event(_status_event("m1", MissionStatusChange.ABORTED))
        assert store.confirm_command(make_mission("m1", "aborted")) == []
        assert [mission.id for mission in store.snapshot.history] == ["m1"]

    def test_rollback_restores_status(self, store):
        store.begin_command("m3", MissionAction.RESUME)
        store.rollback_command("m3")
        view = store.snapshot.missions["m3"]
        assert view.pending is None
        assert view.effective_status == MissionStatus.PAUSED

    def test_rollback_without_pending_is_noop(self, store):
        before = store.snapshot
        store.rollback_command("m1")
        store.rollback_command("m404")
        assert store.snapshot is before


class TestObservers:
    def test_notified_with_new_snapshot(self, store):
        observer = MagicMock()
        store.observe(observer)
        store.apply_event(_telemetry_event("d1", battery_level=60))
        observer.assert_called_once_with(store.snapshot)

    def test_not_notified_without_change(self, store):
        observer = MagicMock()
        store.observe(observer)
        store.apply_event(_telemetry_event("d404", battery_level=60))
        observer.assert_not_called()

    def test_unsubscribe(self, store):
        observer = MagicMock()
        remove = store.observe(observer)
        remove()
        remove()
        store.clear()
        observer.assert_not_called()

    def test_failing_observer_does_not_block_others(self, store):
        failing = MagicMock(side_effect=RuntimeError("render failed"))
        healthy = MagicMock()
        store.observe(failing)
        store.observe(healthy)
        store.clear()
        healthy.assert_called_once()

    def test_clear(self, store):
        store.clear()
        assert store.snapshot.missions == {}
        assert store.snapshot.is_loaded is False
