"""Composition root for the fleet console client.

``FleetConsole`` owns every long-lived collaborator of a session: the token
store, the registry client, the real-time channel, the fleet store and the
command dispatcher. Views open a ``MissionMonitor`` to load the fleet and
follow live updates while they are on screen.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from fleet_console.channel.events import AlertEvent, ChannelEvent, Topic
from fleet_console.channel.manager import ChannelManager
from fleet_console.config import Settings, get_settings
from fleet_console.exceptions.base import FleetConsoleError
from fleet_console.exceptions.client_errors import AuthError
from fleet_console.exceptions.handlers import (
    Notification,
    NotificationLevel,
    NotificationLog,
    create_error_notification,
    create_error_reporter,
    create_success_notification,
)
from fleet_console.fleet.command_dispatcher import CommandDispatcher
from fleet_console.logging.adapters.session_adapter import (
    clear_session_context,
    set_session_context,
)
from fleet_console.registry.client import RegistryClient
from fleet_console.registry.token_store import TokenStore
from fleet_console.view.store import FleetStore

if TYPE_CHECKING:
    from fleet_console.exceptions.handlers import Notifier
    from fleet_console.fleet.models import Drone
    from fleet_console.mission.models import Mission, MissionAction
    from fleet_console.registry.models import AuthResult, UserProfile
    from fleet_console.view.models import FleetSnapshot

logger = logging.getLogger(__name__)

_ALERT_LEVELS: dict[str, NotificationLevel] = {
    "critical": NotificationLevel.ERROR,
    "error": NotificationLevel.ERROR,
    "info": NotificationLevel.INFO,
}


def _get_monitored_topics(snapshot: FleetSnapshot) -> list[Topic]:
    topics: list[Topic] = []
    for view in snapshot.missions.values():
        if not view.is_active:
            continue
        topics.append(Topic.mission(view.id))
        if view.mission.assigned_drone_id:
            topics.append(Topic.drone(view.mission.assigned_drone_id))
    return topics


async def _fetch_fleet(registry: RegistryClient) -> tuple[list[Mission], list[Drone]]:
    missions, drones = await asyncio.gather(
        asyncio.to_thread(registry.list_missions),
        asyncio.to_thread(registry.list_drones),
    )
    return missions, drones


class MissionMonitor:
    """Live view of the fleet, scoped to one screen.

    Snapshot loads carry a generation number; a load that resolves after
    ``close()`` or after a newer load started is discarded.
    """

    def __init__(
        self,
        registry: RegistryClient,
        store: FleetStore,
        channel: ChannelManager,
        notifier: Notifier,
    ) -> None:
        self._registry = registry
        self._store = store
        self._channel = channel
        self._notifier = notifier
        self._fetch_fleet = create_error_reporter(notifier)(_fetch_fleet)
        self._is_open = False
        self._generation = 0
        self._topics: dict[Topic, None] = {}
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def topics(self) -> list[Topic]:
        """Topics this monitor subscribed to."""
        return list(self._topics)

    async def open(self) -> FleetSnapshot | None:
        """Start receiving events and load the first snapshot."""
        self._is_open = True
        self._channel.set_dispatcher(self.handle_event)
        logger.info("Mission monitor opened")
        return await self.load_snapshot()

    async def close(self) -> None:
        """Stop following the fleet. Loads still in flight are discarded."""
        if not self._is_open:
            return
        self._is_open = False
        self._generation += 1
        self._channel.set_dispatcher(None)
        for task in list(self._background_tasks):
            task.cancel()
        for topic in list(self._topics):
            await self._channel.unsubscribe(topic)
        self._topics.clear()
        logger.info("Mission monitor closed")

    async def load_snapshot(self) -> FleetSnapshot | None:
        """Fetch missions and drones and replace the cached fleet.

        Failures become notifications; the previous snapshot stays in place.

        Returns:
            The new snapshot, or None if the load failed or went stale.
        """
        self._generation += 1
        generation = self._generation
        fleet = await self._fetch_fleet(self._registry)
        if fleet is None:
            return None

        if generation != self._generation or not self._is_open:
            logger.debug("Discarding stale fleet snapshot (generation %d)", generation)
            return None

        snapshot = self._store.replace_snapshot(*fleet)
        await self.sync_subscriptions()
        return snapshot

    async def sync_subscriptions(self) -> None:
        """Follow exactly the active missions and their drones."""
        if not self._is_open:
            return
        wanted = _get_monitored_topics(self._store.snapshot)
        for topic in list(self._topics):
            if topic not in wanted:
                del self._topics[topic]
                await self._channel.unsubscribe(topic)
        for topic in wanted:
            if topic not in self._topics:
                self._topics[topic] = None
                await self._channel.subscribe(topic)

    def handle_event(self, event: ChannelEvent) -> None:
        """Apply one channel event. Runs on the event loop thread."""
        if not self._is_open:
            return

        if isinstance(event, AlertEvent):
            self._notifier.notify(
                Notification(
                    level=_ALERT_LEVELS.get(event.severity.lower(), NotificationLevel.WARNING),
                    message=event.message or "Drone alert",
                    context={
                        key: value
                        for key, value in (
                            ("drone_id", event.drone_id),
                            ("mission_id", event.mission_id),
                        )
                        if value
                    },
                )
            )
            return

        evicted_topics = self._store.apply_event(event)
        if evicted_topics:
            task = asyncio.get_running_loop().create_task(self._evict(evicted_topics))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

    async def _evict(self, topics: list[Topic]) -> None:
        for topic in topics:
            self._topics.pop(topic, None)
            await self._channel.unsubscribe(topic)


class FleetConsole:
    """One operator session against the mission registry."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        token_store: TokenStore | None = None,
        registry: RegistryClient | None = None,
        channel: ChannelManager | None = None,
        store: FleetStore | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        """Wire the session's collaborators.

        Every collaborator can be injected; the defaults are built from
        ``settings``.
        """
        self._settings = settings or get_settings()
        self._notifier: Notifier = notifier or NotificationLog()
        self._token_store = token_store or TokenStore(self._settings.token_path)
        self._registry = registry or RegistryClient(self._settings, self._token_store)
        self._channel = channel or ChannelManager(self._settings, notifier=self._notifier)
        self._store = store or FleetStore(history_limit=self._settings.history_limit)
        self._fetch_fleet = create_error_reporter(self._notifier)(_fetch_fleet)
        self._dispatcher = CommandDispatcher(
            self._registry, self._store, self._channel, self._notifier
        )
        self._profile: UserProfile | None = None
        self._monitor: MissionMonitor | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._background_tasks: set[asyncio.Task[None]] = set()

        self._registry.set_auth_failure_handler(self._handle_auth_failure)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def profile(self) -> UserProfile | None:
        """Signed-in operator, if any."""
        return self._profile

    @property
    def is_authenticated(self) -> bool:
        return self._profile is not None

    @property
    def registry(self) -> RegistryClient:
        return self._registry

    @property
    def channel(self) -> ChannelManager:
        return self._channel

    @property
    def store(self) -> FleetStore:
        return self._store

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def monitor(self) -> MissionMonitor | None:
        return self._monitor

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> UserProfile:
        """Sign in and open the real-time channel.

        Raises:
            AuthError: If the credentials are rejected.
        """
        result = await asyncio.to_thread(self._registry.login, email, password)
        return await self._start_session(result)

    async def register(self, user_data: dict[str, Any]) -> UserProfile:
        """Create an account, then continue as its user."""
        result = await asyncio.to_thread(self._registry.register, user_data)
        return await self._start_session(result)

    async def restore_session(self) -> UserProfile | None:
        """Resume the session held by the stored token.

        A registry that cannot be reached is reported as a notification; the
        stored token is kept for the next attempt.

        Returns:
            The operator's profile, or None if the session could not be resumed.
        """
        self._loop = asyncio.get_running_loop()
        token = self._token_store.token
        if not token:
            logger.info("No stored session to restore")
            return None
        try:
            profile = await asyncio.to_thread(self._registry.get_profile)
        except AuthError:
            logger.info("Stored session has expired")
            return None
        except FleetConsoleError as error:
            logger.warning(
                "Could not restore stored session: %s",
                error.message,
                extra=error.log_extra(),
            )
            self._notifier.notify(create_error_notification(error))
            return None

        self._begin_session(profile)
        await self._channel.connect(token)
        return profile

    async def logout(self) -> None:
        """End the session. Safe to call when already signed out."""
        was_authenticated = self._profile is not None
        await self.close_monitor()
        self._token_store.clear()
        await self._channel.disconnect()
        self._store.clear()
        self._profile = None
        clear_session_context()
        if was_authenticated:
            logger.info("Signed out")

    async def close(self) -> None:
        """Release connections without forgetting the stored token."""
        await self.close_monitor()
        await self._channel.disconnect()
        self._registry.close()

    async def _start_session(self, result: AuthResult) -> UserProfile:
        self._loop = asyncio.get_running_loop()
        self._token_store.save(result.token)
        self._begin_session(result.user)
        await self._channel.connect(result.token)
        self._notifier.notify(create_success_notification(f"Signed in as {result.user.name}"))
        return result.user

    def _begin_session(self, profile: UserProfile) -> None:
        self._profile = profile
        set_session_context(profile)
        logger.info("Session started for user %s", profile.id)

    def _handle_auth_failure(self) -> None:
        # Called from the registry client's worker thread.
        loop = self._loop
        if loop is None or loop.is_closed():
            self._profile = None
            return
        loop.call_soon_threadsafe(self._schedule_logout)

    def _schedule_logout(self) -> None:
        if self._profile is None:
            return
        logger.warning("Registry rejected the session token, signing out")
        task = asyncio.get_running_loop().create_task(self.logout())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # ------------------------------------------------------------------
    # Fleet
    # ------------------------------------------------------------------

    async def open_monitor(self) -> MissionMonitor:
        """Open a live monitor, closing any previous one."""
        await self.close_monitor()
        monitor = MissionMonitor(self._registry, self._store, self._channel, self._notifier)
        self._monitor = monitor
        await monitor.open()
        return monitor

    async def close_monitor(self) -> None:
        monitor = self._monitor
        self._monitor = None
        if monitor is not None:
            await monitor.close()

    async def load_snapshot(self) -> FleetSnapshot | None:
        """Refresh the cached fleet through the open monitor, if any."""
        if self._monitor is not None:
            return await self._monitor.load_snapshot()
        fleet = await self._fetch_fleet(self._registry)
        if fleet is None:
            return None
        return self._store.replace_snapshot(*fleet)

    async def dispatch(
        self,
        mission_id: str,
        action: MissionAction | str,
        reason: str | None = None,
    ) -> Mission:
        """Send a mission control action; see ``CommandDispatcher.dispatch``."""
        mission = await self._dispatcher.dispatch(mission_id, action, reason)
        if self._monitor is not None:
            await self._monitor.sync_subscriptions()
        return mission
