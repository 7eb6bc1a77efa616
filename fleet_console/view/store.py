"""Fleet view-model store.

Merges REST snapshots with channel events into a single ``FleetSnapshot``.
All mutations run on the event loop thread and swap in a freshly built
snapshot, so observers never see a half-applied update.

There is no ordering token on the wire: when a command response and a push
event touch the same mission, whichever is applied last wins.
"""

import contextlib
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from fleet_console.channel.events import (
    AlertEvent,
    ChannelEvent,
    DroneStatusEvent,
    DroneTelemetryEvent,
    MissionProgressEvent,
    MissionStatusEvent,
    Topic,
)
from fleet_console.exceptions.client_errors import CommandInProgressError, NotFoundError
from fleet_console.fleet.models import Drone, DroneStatus, TelemetryPatch
from fleet_console.mission.models import (
    ACTIVE_STATUSES,
    Mission,
    MissionAction,
    get_target_status,
)
from fleet_console.view.models import FleetSnapshot, MissionView, PendingCommand

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 5

SnapshotObserver = Callable[[FleetSnapshot], None]


def _history_sort_key(mission: Mission) -> float:
    finished_at = mission.finished_at
    return finished_at.timestamp() if finished_at is not None else float("-inf")


def _topics_for(mission_id: str, drone_id: str | None) -> list[Topic]:
    topics = [Topic.mission(mission_id)]
    if drone_id:
        topics.append(Topic.drone(drone_id))
    return topics


class FleetStore:
    """Observable cache of missions and drones."""

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        """Initialize an empty store.

        Args:
            history_limit: Number of finished missions kept in history.
        """
        self._history_limit = history_limit
        self._snapshot = FleetSnapshot()
        self._observers: list[SnapshotObserver] = []

    @property
    def snapshot(self) -> FleetSnapshot:
        """Return the current snapshot."""
        return self._snapshot

    @property
    def history_limit(self) -> int:
        return self._history_limit

    def observe(self, observer: SnapshotObserver) -> Callable[[], None]:
        """Register a callback invoked with every new snapshot.

        Returns:
            Callable that removes the observer.
        """
        self._observers.append(observer)

        def remove_observer() -> None:
            with contextlib.suppress(ValueError):
                self._observers.remove(observer)

        return remove_observer

    def clear(self) -> None:
        """Drop all cached state, e.g. on logout."""
        self._commit(FleetSnapshot())

    # ------------------------------------------------------------------
    # Snapshot loading
    # ------------------------------------------------------------------

    def replace_snapshot(
        self,
        missions: Iterable[Mission],
        drones: Iterable[Drone],
        *,
        loaded_at: datetime | None = None,
    ) -> FleetSnapshot:
        """Replace the cache wholesale with a fresh REST snapshot.

        Pending commands survive the reload when their mission is still
        unfinished, so an in-flight command is not silently forgotten.
        """
        previous = self._snapshot
        views: dict[str, MissionView] = {}
        finished: list[Mission] = []
        for mission in missions:
            if mission.is_terminal:
                finished.append(mission)
                continue
            previous_view = previous.missions.get(mission.id)
            pending = previous_view.pending if previous_view is not None else None
            views[mission.id] = MissionView(mission=mission, pending=pending)

        finished.sort(key=_history_sort_key, reverse=True)
        snapshot = FleetSnapshot(
            missions=views,
            drones={drone.id: drone for drone in drones},
            history=tuple(finished[: self._history_limit]),
            loaded_at=loaded_at or datetime.now(UTC),
        )
        logger.info(
            "Loaded fleet snapshot: %d missions, %d drones, %d in history",
            len(views),
            len(snapshot.drones),
            len(snapshot.history),
        )
        self._commit(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Push events
    # ------------------------------------------------------------------

    def apply_event(self, event: ChannelEvent) -> list[Topic]:
        """Merge one channel event into the cache.

        Events for ids that are not cached are ignored; the next snapshot
        load picks those entities up. Applying the same event twice leaves
        the same state as applying it once.

        Returns:
            Topics that should be unsubscribed because their mission ended.
        """
        match event:
            case DroneTelemetryEvent():
                self._patch_drone(event.drone_id, event.patch, status=None)
            case DroneStatusEvent():
                self._patch_drone(event.drone_id, event.patch, status=event.status)
            case MissionProgressEvent():
                self._apply_progress(event)
            case MissionStatusEvent():
                return self._apply_mission_status(event)
            case AlertEvent():
                pass
        return []

    def _patch_drone(
        self,
        drone_id: str,
        patch: TelemetryPatch,
        *,
        status: DroneStatus | None,
    ) -> None:
        snapshot = self._snapshot
        drone = snapshot.drones.get(drone_id)
        if drone is None:
            logger.debug("Ignoring update for unknown drone %s", drone_id)
            return

        updates = {}
        telemetry = patch.apply_to(drone.telemetry)
        if telemetry != drone.telemetry:
            updates["telemetry"] = telemetry
        if status is not None and status != drone.status:
            updates["status"] = status
        if not updates:
            return
        self._commit(self._with_drone(snapshot, drone.model_copy(update=updates)))

    def _apply_progress(self, event: MissionProgressEvent) -> None:
        snapshot = self._snapshot
        view = snapshot.missions.get(event.mission_id)
        if view is None:
            logger.debug("Ignoring progress for unknown mission %s", event.mission_id)
            return

        updates = {
            key: value
            for key, value in (
                ("percent_complete", event.percent_complete),
                ("estimated_time_remaining", event.estimated_time_remaining),
                ("started_at", event.started_at),
            )
            if value is not None
        }
        progress = view.mission.progress.model_copy(update=updates)
        if progress == view.mission.progress:
            return
        mission = view.mission.model_copy(update={"progress": progress})
        self._commit(self._with_view(snapshot, view.model_copy(update={"mission": mission})))

    def _apply_mission_status(self, event: MissionStatusEvent) -> list[Topic]:
        snapshot = self._snapshot
        view = snapshot.missions.get(event.mission_id)
        if view is None:
            logger.debug("Ignoring status change for unknown mission %s", event.mission_id)
            return []

        updates: dict[str, object] = {"status": event.status}
        if event.drone_id and view.mission.assigned_drone_id is None:
            updates["assigned_drone_id"] = event.drone_id
        if event.change.is_terminal:
            updates["end_time"] = event.end_time or view.mission.end_time or event.received_at
        mission = view.mission.model_copy(update=updates)

        if mission.is_terminal:
            logger.info("Mission %s %s", mission.id, event.change)
            return self._finish_mission(snapshot, mission)

        if mission == view.mission:
            return []
        snapshot = self._with_view(snapshot, view.model_copy(update={"mission": mission}))
        if mission.status in ACTIVE_STATUSES:
            snapshot = self._with_drone_status(
                snapshot, mission.assigned_drone_id, DroneStatus.IN_MISSION
            )
        self._commit(snapshot)
        return []

    # ------------------------------------------------------------------
    # Two-phase commands
    # ------------------------------------------------------------------

    def begin_command(self, mission_id: str, action: MissionAction) -> PendingCommand:
        """Record an optimistic pending command for a mission.

        Raises:
            NotFoundError: If the mission is not cached as unfinished.
            CommandInProgressError: If the mission already has a pending command.
            InvalidTransitionError: If the action is illegal from the confirmed status.
        """
        snapshot = self._snapshot
        view = snapshot.missions.get(mission_id)
        if view is None:
            raise NotFoundError(
                f"Mission {mission_id} is not loaded",
                resource_type="mission",
                resource_id=mission_id,
            )
        if view.pending is not None:
            raise CommandInProgressError(
                f"Mission {mission_id} already has a {view.pending.action} command in flight",
                mission_id=mission_id,
                pending_action=view.pending.action,
            )

        target_status = get_target_status(view.mission.status, action, mission_id=mission_id)
        pending = PendingCommand(
            action=action,
            target_status=target_status,
            prior_status=view.mission.status,
        )
        self._commit(self._with_view(snapshot, view.model_copy(update={"pending": pending})))
        return pending

    def confirm_command(self, mission: Mission) -> list[Topic]:
        """Settle a pending command with the registry's version of the mission.

        The returned mission is authoritative even when its status differs
        from the optimistic target.

        Returns:
            Topics to unsubscribe when the mission has finished.
        """
        snapshot = self._snapshot
        view = snapshot.missions.get(mission.id)
        if view is None:
            # A push event already finished the mission.
            if mission.is_terminal:
                self._commit(self._with_history_entry(snapshot, mission))
            return []

        if view.pending is not None and view.pending.target_status != mission.status:
            logger.warning(
                "Registry settled mission %s as %s, expected %s",
                mission.id,
                mission.status,
                view.pending.target_status,
            )
        if mission.assigned_drone_id is None and view.mission.assigned_drone_id:
            mission = mission.model_copy(
                update={"assigned_drone_id": view.mission.assigned_drone_id}
            )

        if mission.is_terminal:
            return self._finish_mission(snapshot, mission)

        snapshot = self._with_view(snapshot, MissionView(mission=mission))
        if mission.status in ACTIVE_STATUSES:
            snapshot = self._with_drone_status(
                snapshot, mission.assigned_drone_id, DroneStatus.IN_MISSION
            )
        self._commit(snapshot)
        return []

    def rollback_command(self, mission_id: str) -> None:
        """Discard a pending command, restoring the confirmed status."""
        snapshot = self._snapshot
        view = snapshot.missions.get(mission_id)
        if view is None or view.pending is None:
            return
        logger.info(
            "Rolled back %s on mission %s to %s",
            view.pending.action,
            mission_id,
            view.mission.status,
        )
        self._commit(self._with_view(snapshot, view.model_copy(update={"pending": None})))

    # ------------------------------------------------------------------
    # Snapshot builders
    # ------------------------------------------------------------------

    def _finish_mission(self, snapshot: FleetSnapshot, mission: Mission) -> list[Topic]:
        missions = {key: value for key, value in snapshot.missions.items() if key != mission.id}
        snapshot = snapshot.model_copy(update={"missions": missions})
        snapshot = self._with_history_entry(snapshot, mission)
        snapshot = self._with_drone_status(
            snapshot, mission.assigned_drone_id, DroneStatus.AVAILABLE
        )
        self._commit(snapshot)
        return _topics_for(mission.id, mission.assigned_drone_id)

    def _with_history_entry(self, snapshot: FleetSnapshot, mission: Mission) -> FleetSnapshot:
        history = [mission, *(entry for entry in snapshot.history if entry.id != mission.id)]
        return snapshot.model_copy(update={"history": tuple(history[: self._history_limit])})

    @staticmethod
    def _with_view(snapshot: FleetSnapshot, view: MissionView) -> FleetSnapshot:
        return snapshot.model_copy(update={"missions": {**snapshot.missions, view.id: view}})

    @staticmethod
    def _with_drone(snapshot: FleetSnapshot, drone: Drone) -> FleetSnapshot:
        return snapshot.model_copy(update={"drones": {**snapshot.drones, drone.id: drone}})

    def _with_drone_status(
        self,
        snapshot: FleetSnapshot,
        drone_id: str | None,
        status: DroneStatus,
    ) -> FleetSnapshot:
        if not drone_id:
            return snapshot
        drone = snapshot.drones.get(drone_id)
        if drone is None or drone.status == status:
            return snapshot
        return self._with_drone(snapshot, drone.model_copy(update={"status": status}))

    def _commit(self, snapshot: FleetSnapshot) -> None:
        if snapshot is self._snapshot:
            return
        self._snapshot = snapshot
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("Error in fleet snapshot observer")
