"""Tests for the console session and mission monitor."""

import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from fleet_console.channel.events import AlertEvent, MissionStatusChange, MissionStatusEvent, Topic
from fleet_console.channel.manager import ChannelManager
from fleet_console.config import Settings
from fleet_console.console import FleetConsole
from fleet_console.exceptions.client_errors import AuthError
from fleet_console.exceptions.handlers import NotificationLevel
from fleet_console.exceptions.transport_errors import NetworkError
from fleet_console.fleet.models import Drone
from fleet_console.logging.context import get_extra_context
from fleet_console.mission.models import Mission, MissionAction
from fleet_console.registry.client import RegistryClient
from fleet_console.registry.models import AuthResult, UserProfile
from fleet_console.registry.token_store import TokenStore
from fleet_console.view.store import FleetStore

PROFILE = UserProfile.model_validate({"_id": "u1", "name": "Ada", "role": "operator"})


def _mission(mission_id, status, drone_id):
    return Mission.model_validate(
        {"_id": mission_id, "name": mission_id, "status": status, "assignedDrone": drone_id}
    )


MISSIONS = [
    _mission("m1", "in-progress", "d1"),
    _mission("m2", "scheduled", "d2"),
]
DRONES = [
    Drone.model_validate({"_id": "d1", "status": "in-mission"}),
    Drone.model_validate({"_id": "d2", "status": "available"}),
]


@pytest.fixture
def token_store(tmp_path):
    return TokenStore(tmp_path / "session" / "token")


@pytest.fixture
def registry():
    client = MagicMock(spec=RegistryClient)
    client.login.return_value = AuthResult(token="tok-1", user=PROFILE)
    client.get_profile.return_value = PROFILE
    client.list_missions.return_value = MISSIONS
    client.list_drones.return_value = DRONES
    return client


@pytest.fixture
def channel():
    return MagicMock(spec=ChannelManager)


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def console(token_store, registry, channel, notifier):
    return FleetConsole(
        Settings(),
        token_store=token_store,
        registry=registry,
        channel=channel,
        store=FleetStore(),
        notifier=notifier,
    )


def _subscribed(channel):
    return [call.args[0] for call in channel.subscribe.await_args_list]


def _unsubscribed(channel):
    return [call.args[0] for call in channel.unsubscribe.await_args_list]


async def _settle():
    for _ in range(10):
        await asyncio.sleep(0)


class TestSession:
    def test_login(self, console, registry, channel, token_store, notifier):
        async def scenario():
            profile = await console.login("ada@example.com", "secret")
            return profile, get_extra_context()

        profile, log_context = asyncio.run(scenario())

        assert profile == PROFILE
        assert console.is_authenticated is True
        registry.login.assert_called_once_with("ada@example.com", "secret")
        assert token_store.load() == "tok-1"
        channel.connect.assert_awaited_once_with("tok-1")
        assert log_context["user_id"] == "u1"
        assert log_context["user_role"] == "operator"
        notification = notifier.notify.call_args.args[0]
        assert notification.level == NotificationLevel.SUCCESS
        assert notification.message == "Signed in as Ada"

    def test_rejected_login(self, console, registry, channel, token_store):
        registry.login.side_effect = AuthError("Invalid credentials")

        with pytest.raises(AuthError):
            asyncio.run(console.login("ada@example.com", "wrong"))

        assert console.is_authenticated is False
        assert token_store.token is None
        channel.connect.assert_not_awaited()

    def test_register(self, console, registry, channel):
        registry.register.return_value = AuthResult(token="tok-2", user=PROFILE)

        asyncio.run(console.register({"name": "Ada", "email": "ada@example.com"}))

        channel.connect.assert_awaited_once_with("tok-2")

    def test_restore_without_token(self, console, registry, channel):
        assert asyncio.run(console.restore_session()) is None
        registry.get_profile.assert_not_called()
        channel.connect.assert_not_awaited()

    def test_restore_with_expired_token(self, console, registry, channel, token_store):
        token_store.save("tok-old")
        registry.get_profile.side_effect = AuthError("Token expired")

        assert asyncio.run(console.restore_session()) is None
        assert console.is_authenticated is False
        channel.connect.assert_not_awaited()

    def test_restore_with_unreachable_registry(
        self, console, registry, channel, token_store, notifier
    ):
        token_store.save("tok-1")
        registry.get_profile.side_effect = NetworkError(
            "Connection refused", method="GET", url="/auth/profile"
        )

        assert asyncio.run(console.restore_session()) is None
        assert console.is_authenticated is False
        assert token_store.load() == "tok-1"
        channel.connect.assert_not_awaited()
        notification = notifier.notify.call_args.args[0]
        assert notification.error_code == "NETWORK_ERROR"
        assert notification.retryable is True

    def test_restore(self, console, channel, token_store):
        token_store.save("tok-1")

        assert asyncio.run(console.restore_session()) == PROFILE
        assert console.profile == PROFILE
        channel.connect.assert_awaited_once_with("tok-1")

    def test_logout(self, console, channel, token_store):
        async def scenario():
            await console.login("ada@example.com", "secret")
            await console.open_monitor()
            await console.logout()
            return get_extra_context()

        log_context = asyncio.run(scenario())

        assert console.is_authenticated is False
        assert console.monitor is None
        assert token_store.token is None
        channel.disconnect.assert_awaited()
        assert console.store.snapshot.is_loaded is False
        assert "user_id" not in log_context

    def test_logout_when_signed_out(self, console, channel):
        asyncio.run(console.logout())
        channel.disconnect.assert_awaited_once()

    def test_close_keeps_token(self, console, registry, channel, token_store):
        async def scenario():
            await console.login("ada@example.com", "secret")
            await console.close()

        asyncio.run(scenario())

        assert token_store.token == "tok-1"
        channel.disconnect.assert_awaited_once()
        registry.close.assert_called_once()


class TestAuthFailure:
    def test_registers_hook(self, console, registry):
        registry.set_auth_failure_handler.assert_called_once_with(console._handle_auth_failure)

    def test_rejected_token_signs_out(self, console, registry, channel):
        handler = registry.set_auth_failure_handler.call_args.args[0]

        async def scenario():
            await console.login("ada@example.com", "secret")
            await asyncio.to_thread(handler)
            await _settle()

        asyncio.run(scenario())

        assert console.is_authenticated is False
        channel.disconnect.assert_awaited_once()

    def test_ignored_when_signed_out(self, console, registry, channel):
        handler = registry.set_auth_failure_handler.call_args.args[0]

        async def scenario():
            await console.restore_session()
            await asyncio.to_thread(handler)
            await _settle()

        asyncio.run(scenario())

        channel.disconnect.assert_not_awaited()


class TestMonitor:
    def test_open_loads_and_subscribes_active(self, console, channel):
        async def scenario():
            return await console.open_monitor()

        monitor = asyncio.run(scenario())

        assert monitor.is_open is True
        assert list(console.store.snapshot.missions) == ["m1", "m2"]
        channel.set_dispatcher.assert_called_with(monitor.handle_event)
        assert _subscribed(channel) == [Topic.mission("m1"), Topic.drone("d1")]
        assert monitor.topics == [Topic.mission("m1"), Topic.drone("d1")]

    def test_close_unsubscribes(self, console, channel):
        async def scenario():
            monitor = await console.open_monitor()
            await console.close_monitor()
            return monitor

        monitor = asyncio.run(scenario())

        assert monitor.is_open is False
        assert console.monitor is None
        channel.set_dispatcher.assert_called_with(None)
        assert _unsubscribed(channel) == [Topic.mission("m1"), Topic.drone("d1")]

    def test_reopen_closes_previous(self, console):
        async def scenario():
            first = await console.open_monitor()
            second = await console.open_monitor()
            return first, second

        first, second = asyncio.run(scenario())

        assert first.is_open is False
        assert second.is_open is True

    def test_load_failure_notifies(self, console, registry, notifier):
        registry.list_missions.side_effect = NetworkError("Connection refused")

        assert asyncio.run(console.open_monitor()).is_open is True
        assert console.store.snapshot.is_loaded is False
        notification = notifier.notify.call_args.args[0]
        assert notification.error_code == "NETWORK_ERROR"

    def test_load_finishing_after_close_is_discarded(self, console, registry):
        entered = threading.Event()
        release = threading.Event()
        newer_missions = [_mission("m9", "in-progress", "d1")]

        def slow_list_missions():
            entered.set()
            release.wait(timeout=5)
            return newer_missions

        async def scenario():
            monitor = await console.open_monitor()
            registry.list_missions.side_effect = slow_list_missions
            load = asyncio.create_task(monitor.load_snapshot())
            await asyncio.to_thread(entered.wait, 5)
            await monitor.close()
            release.set()
            return await load

        assert asyncio.run(scenario()) is None
        assert list(console.store.snapshot.missions) == ["m1", "m2"]

    def test_snapshot_without_monitor(self, console, channel):
        snapshot = asyncio.run(console.load_snapshot())

        assert snapshot.is_loaded is True
        channel.subscribe.assert_not_awaited()

    def test_snapshot_without_monitor_failure_notifies(self, console, registry, notifier):
        registry.list_drones.side_effect = NetworkError("Connection refused")

        assert asyncio.run(console.load_snapshot()) is None
        assert console.store.snapshot.is_loaded is False
        notification = notifier.notify.call_args.args[0]
        assert notification.error_code == "NETWORK_ERROR"


class TestMonitorEvents:
    def test_alert_becomes_notification(self, console, notifier):
        async def scenario():
            monitor = await console.open_monitor()
            notifier.reset_mock()
            monitor.handle_event(
                AlertEvent(message="Battery critical", severity="critical", drone_id="d1")
            )

        asyncio.run(scenario())

        notification = notifier.notify.call_args.args[0]
        assert notification.level == NotificationLevel.ERROR
        assert notification.message == "Battery critical"
        assert notification.context == {"drone_id": "d1"}

    def test_alert_without_message(self, console, notifier):
        async def scenario():
            monitor = await console.open_monitor()
            monitor.handle_event(AlertEvent(mission_id="m1"))

        asyncio.run(scenario())

        notification = notifier.notify.call_args.args[0]
        assert notification.level == NotificationLevel.WARNING
        assert notification.message == "Drone alert"

    def test_finished_mission_leaves_topics(self, console, channel):
        async def scenario():
            monitor = await console.open_monitor()
            monitor.handle_event(
                MissionStatusEvent(mission_id="m1", change=MissionStatusChange.COMPLETED)
            )
            await _settle()
            return monitor

        monitor = asyncio.run(scenario())

        assert console.store.snapshot.history[0].id == "m1"
        assert _unsubscribed(channel) == [Topic.mission("m1"), Topic.drone("d1")]
        assert monitor.topics == []

    def test_events_ignored_after_close(self, console):
        async def scenario():
            monitor = await console.open_monitor()
            await monitor.close()
            monitor.handle_event(
                MissionStatusEvent(mission_id="m1", change=MissionStatusChange.PAUSED)
            )

        asyncio.run(scenario())

        assert console.store.snapshot.missions["m1"].mission.status == "in-progress"


class TestDispatch:
    def test_started_mission_is_followed(self, console, registry, channel):
        registry.send_mission_action.return_value = _mission("m2", "in-progress", "d2")

        async def scenario():
            await console.open_monitor()
            return await console.dispatch("m2", MissionAction.START)

        mission = asyncio.run(scenario())

        assert mission.status == "in-progress"
        assert _subscribed(channel)[-2:] == [Topic.mission("m2"), Topic.drone("d2")]
