"""Socket.IO channel to the mission registry.

One ``ChannelManager`` holds at most one authenticated connection. It
reconnects on its own after failures, re-joins mission rooms after every
successful connect, and hands inbound events to a single dispatcher callback
in arrival order, filtered to the subscribed topics.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import socketio

from fleet_console.channel.events import (
    JOIN_MISSION_EVENT,
    LEAVE_MISSION_EVENT,
    Topic,
    TopicKind,
    parse_event,
)
from fleet_console.exceptions.handlers import create_error_notification
from fleet_console.exceptions.transport_errors import ChannelDisconnectedError

if TYPE_CHECKING:
    from fleet_console.channel.events import ChannelEvent
    from fleet_console.config import Settings
    from fleet_console.exceptions.handlers import Notifier

logger = logging.getLogger(__name__)

EventDispatcher = Callable[["ChannelEvent"], None]
StateObserver = Callable[["ChannelState"], None]


class ChannelState(StrEnum):
    """Lifecycle of the channel connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def _create_socket_client() -> socketio.AsyncClient:
    # Reconnection is driven by ChannelManager so its state stays observable.
    return socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)


class ChannelManager:
    """Owns the real-time connection for one signed-in session."""

    def __init__(
        self,
        settings: Settings,
        dispatcher: EventDispatcher | None = None,
        *,
        client_factory: Callable[[], socketio.AsyncClient] | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        """Initialize the channel manager.

        Args:
            settings: Socket URL and reconnection policy.
            dispatcher: Receives every inbound event for a subscribed topic.
            client_factory: Builds Socket.IO clients; replaced in tests.
            notifier: Told when the channel gives up reconnecting.
        """
        self._url = settings.resolved_socket_url
        self._reconnection_attempts = settings.reconnection_attempts
        self._reconnection_delay = settings.reconnection_delay_seconds
        self._dispatcher = dispatcher
        self._client_factory = client_factory or _create_socket_client
        self._notifier = notifier

        self._state = ChannelState.DISCONNECTED
        self._client: socketio.AsyncClient | None = None
        self._token: str | None = None
        self._topics: dict[Topic, None] = {}
        self._generation = 0
        self._reconnect_task: asyncio.Task[None] | None = None
        self._state_observers: list[StateObserver] = []

    @property
    def state(self) -> ChannelState:
        """Return the current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Return whether events are currently flowing."""
        return self._state == ChannelState.CONNECTED

    @property
    def topics(self) -> list[Topic]:
        """Return subscribed topics in subscription order."""
        return list(self._topics)

    def set_dispatcher(self, dispatcher: EventDispatcher | None) -> None:
        """Replace the callback that receives inbound events."""
        self._dispatcher = dispatcher

    def observe_state(self, observer: StateObserver) -> Callable[[], None]:
        """Register a callback for state changes.

        Returns:
            Callable that removes the observer.
        """
        self._state_observers.append(observer)

        def remove_observer() -> None:
            with contextlib.suppress(ValueError):
                self._state_observers.remove(observer)

        return remove_observer

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, token: str) -> None:
        """Open the channel with a bearer token.

        Returns after the first attempt. If it fails, reconnection continues
        in the background; errors are logged, never raised.

        Args:
            token: Bearer token for the session.
        """
        if token == self._token and self._state != ChannelState.DISCONNECTED:
            logger.debug("Channel already %s, ignoring connect", self._state)
            return

        if self._state != ChannelState.DISCONNECTED:
            await self.disconnect()

        self._token = token
        self._generation += 1
        generation = self._generation
        self._set_state(ChannelState.CONNECTING)
        logger.info("Connecting to real-time channel at %s", self._url)

        if await self._attempt_connect(generation):
            return
        if generation != self._generation:
            # disconnect() or a newer connect() owns the state now.
            return
        self._schedule_reconnect(generation)

    async def disconnect(self) -> None:
        """Tear the channel down. Safe to call when already disconnected.

        No event reaches the dispatcher once this returns.
        """
        self._generation += 1
        reconnect_task = self._reconnect_task
        self._reconnect_task = None
        client = self._client
        self._client = None
        was_disconnected = self._state == ChannelState.DISCONNECTED
        self._set_state(ChannelState.DISCONNECTED)

        if reconnect_task is not None and not reconnect_task.done():
            reconnect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reconnect_task

        if client is not None:
            try:
                await client.disconnect()
            except Exception:
                logger.exception("Error while closing the real-time channel")

        if not was_disconnected:
            logger.info("Disconnected from real-time channel")

    async def wait_for_reconnection(self) -> None:
        """Wait until any background reconnection has finished."""
        task = self._reconnect_task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    async def subscribe(self, topic: Topic) -> None:
        """Start receiving events for a topic. No-op if already subscribed."""
        if topic in self._topics:
            return
        self._topics[topic] = None
        logger.debug("Subscribed to %s", topic)
        if topic.kind == TopicKind.MISSION and self.is_connected:
            await self._emit(JOIN_MISSION_EVENT, topic.entity_id)

    async def unsubscribe(self, topic: Topic) -> None:
        """Stop receiving events for a topic. No-op if not subscribed."""
        if topic not in self._topics:
            return
        del self._topics[topic]
        logger.debug("Unsubscribed from %s", topic)
        if topic.kind == TopicKind.MISSION and self.is_connected:
            await self._emit(LEAVE_MISSION_EVENT, topic.entity_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_state(self, state: ChannelState) -> None:
        if state == self._state:
            return
        logger.debug("Channel state %s -> %s", self._state, state)
        self._state = state
        for observer in list(self._state_observers):
            try:
                observer(state)
            except Exception:
                logger.exception("Error in channel state observer")

    async def _attempt_connect(self, generation: int) -> bool:
        """Try once to connect. Returns True if the channel is now live.

        A False result leaves the state alone; callers check the generation
        before treating it as a failure.
        """
        token = self._token or ""
        client = self._client_factory()
        self._register_handlers(client)
        try:
            await client.connect(
                self._url,
                headers={"Authorization": f"Bearer {token}"},
                auth={"token": token},
            )
        except Exception as error:
            logger.warning("Real-time channel connection failed: %s", error)
            return False

        if generation != self._generation:
            # disconnect() or a newer connect() won while we were connecting.
            with contextlib.suppress(Exception):
                await client.disconnect()
            return False

        self._client = client
        self._set_state(ChannelState.CONNECTED)
        logger.info("Connected to real-time channel")
        for topic in list(self._topics):
            if topic.kind == TopicKind.MISSION:
                await self._emit(JOIN_MISSION_EVENT, topic.entity_id)
        return True

    def _schedule_reconnect(self, generation: int) -> None:
        self._set_state(ChannelState.RECONNECTING)
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._run_reconnect(generation),
        )

    async def _run_reconnect(self, generation: int) -> None:
        for attempt in range(1, self._reconnection_attempts + 1):
            await asyncio.sleep(self._reconnection_delay)
            if generation != self._generation:
                return
            logger.info(
                "Reconnecting to real-time channel (attempt %d/%d)",
                attempt,
                self._reconnection_attempts,
            )
            if await self._attempt_connect(generation):
                self._reconnect_task = None
                return

        if generation != self._generation:
            return
        self._reconnect_task = None
        self._set_state(ChannelState.DISCONNECTED)
        error = ChannelDisconnectedError(
            "Real-time updates are unavailable; reconnect to resume",
            context={"attempts": self._reconnection_attempts},
        )
        logger.error(
            "Gave up reconnecting to real-time channel",
            extra=error.log_extra(),
        )
        if self._notifier is not None:
            self._notifier.notify(create_error_notification(error))

    def _register_handlers(self, client: socketio.AsyncClient) -> None:
        async def handle_disconnect(*_args: Any) -> None:
            self._handle_unexpected_disconnect(client)

        async def handle_connect_error(data: Any = None) -> None:
            logger.warning("Real-time channel connection error: %s", data)

        async def handle_event(event_name: str, *args: Any) -> None:
            self._handle_inbound(client, event_name, args[0] if args else {})

        client.on("disconnect", handle_disconnect)
        client.on("connect_error", handle_connect_error)
        client.on("*", handle_event)

    def _handle_unexpected_disconnect(self, client: socketio.AsyncClient) -> None:
        if client is not self._client or self._state != ChannelState.CONNECTED:
            return
        logger.warning("Real-time channel dropped, reconnecting")
        self._client = None
        self._schedule_reconnect(self._generation)

    def _handle_inbound(
        self,
        client: socketio.AsyncClient,
        event_name: str,
        payload: Any,
    ) -> None:
        if client is not self._client or self._state != ChannelState.CONNECTED:
            return

        try:
            events = parse_event(event_name, payload)
        except ValueError as error:
            logger.warning("Dropping malformed %r event: %s", event_name, error)
            return

        for event in events:
            topic = event.topic
            if topic is not None and topic not in self._topics:
                continue
            if self._dispatcher is None:
                continue
            try:
                self._dispatcher(event)
            except Exception:
                logger.exception("Error in channel event dispatcher for %r", event_name)

    async def _emit(self, event_name: str, data: Any) -> None:
        client = self._client
        if client is None:
            return
        try:
            await client.emit(event_name, data)
        except Exception as error:
            logger.warning("Failed to emit %r: %s", event_name, error)
