"""Mission control command dispatcher."""

import asyncio
import logging

from fleet_console.channel.manager import ChannelManager
from fleet_console.exceptions.base import FleetConsoleError
from fleet_console.exceptions.client_errors import ValidationError
from fleet_console.exceptions.handlers import (
    Notifier,
    create_error_notification,
    create_success_notification,
)
from fleet_console.logging.context import bind_command_context
from fleet_console.mission.models import Mission, MissionAction
from fleet_console.registry.client import RegistryClient
from fleet_console.view.store import FleetStore

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Sends mission control actions to the registry with optimistic updates.

    A command first records a pending overlay in the store. The registry's
    answer then either confirms it, replacing the cached mission with the
    registry's copy, or rolls it back.
    """

    def __init__(
        self,
        registry: RegistryClient,
        store: FleetStore,
        channel: ChannelManager,
        notifier: Notifier | None = None,
    ) -> None:
        """Initialize the command dispatcher.

        Args:
            registry: REST client that carries the command.
            store: Cache holding the optimistic and confirmed state.
            channel: Channel whose topics end with the mission.
            notifier: Receives success and failure notifications.
        """
        self._registry = registry
        self._store = store
        self._channel = channel
        self._notifier = notifier

    async def dispatch(
        self,
        mission_id: str,
        action: MissionAction | str,
        reason: str | None = None,
    ) -> Mission:
        """Apply a control action to a mission.

        Args:
            mission_id: Target mission.
            action: One of start, pause, resume, complete, abort.
            reason: Why the mission is aborted; required for abort.

        Returns:
            The mission as confirmed by the registry.

        Raises:
            ValidationError: If the action is unknown or abort has no reason.
            NotFoundError: If the mission is not loaded.
            CommandInProgressError: If a command for the mission is in flight.
            InvalidTransitionError: If the action is illegal from the current status.
            FleetConsoleError: If the registry rejected or never received the command.
        """
        try:
            action = MissionAction(action)
        except ValueError as error:
            raise ValidationError(
                f"Unknown mission action: {action}",
                field="action",
                value=action,
            ) from error

        with bind_command_context(mission_id=mission_id, action=str(action)):
            if action == MissionAction.ABORT and not (reason and reason.strip()):
                raise ValidationError(
                    "An abort needs a reason",
                    field="reason",
                    value=reason,
                    context={"mission_id": mission_id},
                )

            pending = self._store.begin_command(mission_id, action)
            logger.info(
                "Sending %s for mission %s (%s -> %s)",
                action,
                mission_id,
                pending.prior_status,
                pending.target_status,
            )

            try:
                mission = await self._send(mission_id, action, reason)
            except FleetConsoleError as error:
                self._store.rollback_command(mission_id)
                error.with_context(mission_id=mission_id, action=str(action))
                logger.warning(
                    "%s failed for mission %s: %s",
                    action,
                    mission_id,
                    error.message,
                    extra=error.log_extra(),
                )
                if self._notifier is not None:
                    self._notifier.notify(create_error_notification(error))
                raise
            except (Exception, asyncio.CancelledError):
                self._store.rollback_command(mission_id)
                raise

            evicted_topics = self._store.confirm_command(mission)
            for topic in evicted_topics:
                await self._channel.unsubscribe(topic)

            logger.info("Mission %s is now %s", mission_id, mission.status)
            if self._notifier is not None:
                self._notifier.notify(
                    create_success_notification(
                        f'Mission "{mission.name or mission_id}" is {mission.status}',
                        mission_id=mission_id,
                        action=str(action),
                    )
                )
            return mission

    async def _send(self, mission_id: str, action: MissionAction, reason: str | None) -> Mission:
        mission = await asyncio.to_thread(
            self._registry.send_mission_action,
            mission_id,
            action,
            reason=reason,
        )
        if mission is None:
            # Acknowledged without a body; read back the canonical state.
            mission = await asyncio.to_thread(self._registry.get_mission, mission_id)
        return mission
