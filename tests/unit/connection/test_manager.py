"""Tests for ConnectionManager.

Tests cover:
- Transport lifecycle (initialize, replacement, require_transport)
- Event fan-out surviving transport replacement
- Automatic reconnection triggers, supersession and coalescing
- Network/visibility handling and the attempt cap
- disconnect/close teardown
"""

import asyncio

import pytest
import pytest_asyncio

from chatline.chat.models import ChatError, ChatErrorCode, ConnectionStatus, Message
from chatline.config.models.connection import TransportConfig
from chatline.connection.backoff import FixedDelayPolicy
from chatline.connection.manager import ConnectionManager
from chatline.errors import ConnectionNotInitializedError, TransportError
from chatline.runtime.scheduler import ManualScheduler
from chatline.transport.mock import MockTransport

# =============================================================================
# Fixtures
# =============================================================================


class GatedRefreshTransport(MockTransport):
    """MockTransport whose token refresh waits for a gate."""

    def __init__(self) -> None:
        super().__init__()
        self.refresh_gate = asyncio.Event()

    async def refresh_connection_token(self) -> None:
        self._call_history.append(("refresh_connection_token", {}))
        await self.refresh_gate.wait()


@pytest_asyncio.fixture
async def connected(connection: ConnectionManager, transport_config: TransportConfig):
    await connection.initialize(transport_config)
    return connection


def refresh_calls(transport_factory) -> int:
    return sum(t.call_count("refresh_connection_token") for t in transport_factory.created)


# =============================================================================
# Transport lifecycle
# =============================================================================


class TestInitialize:
    """Tests for initialize()."""

    @pytest.mark.asyncio
    async def test_opens_transport_and_connects(
        self, connection: ConnectionManager, transport_factory, transport_config
    ) -> None:
        statuses: list[ConnectionStatus] = []
        connection.on_status_change(statuses.append)

        transport = await connection.initialize(transport_config)

        assert transport is transport_factory.latest
        assert transport_factory.latest.is_open is True
        assert transport_factory.configs == [transport_config]
        assert connection.status is ConnectionStatus.CONNECTED
        assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
        assert connection.is_connecting is False

    @pytest.mark.asyncio
    async def test_replaces_previous_transport(
        self, connection: ConnectionManager, transport_factory, transport_config
    ) -> None:
        """The old transport is unsubscribed, then closed."""
        await connection.initialize(transport_config)
        first = transport_factory.latest

        await connection.initialize(transport_config)

        assert len(transport_factory.created) == 2
        assert first.closed is True
        assert first.listener_count == 0
        assert connection.transport is transport_factory.latest

    @pytest.mark.asyncio
    async def test_failure_enters_failed_and_raises(
        self, connection: ConnectionManager, transport_factory, transport_config
    ) -> None:
        transport_factory.kwargs["open_error"] = TransportError("handshake refused")

        with pytest.raises(TransportError, match="handshake refused"):
            await connection.initialize(transport_config)

        assert connection.status is ConnectionStatus.FAILED
        assert isinstance(connection.last_error, TransportError)
        assert connection.is_connecting is False

    @pytest.mark.asyncio
    async def test_clear_error(
        self, connection: ConnectionManager, transport_factory, transport_config
    ) -> None:
        transport_factory.kwargs["open_error"] = TransportError("refused")
        with pytest.raises(TransportError):
            await connection.initialize(transport_config)

        connection.clear_error()

        assert connection.last_error is None


class TestRequireTransport:
    """Tests for require_transport()."""

    @pytest.mark.asyncio
    async def test_returns_live_transport(self, connected: ConnectionManager, transport_factory) -> None:
        assert await connected.require_transport() is transport_factory.latest
        assert len(transport_factory.created) == 1

    @pytest.mark.asyncio
    async def test_initializes_from_last_config(
        self, connection: ConnectionManager, transport_factory
    ) -> None:
        transport = await connection.require_transport()

        assert transport is transport_factory.latest
        assert connection.status is ConnectionStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_raises_without_config(self, scheduler: ManualScheduler, transport_factory) -> None:
        manager = ConnectionManager(transport_factory, scheduler=scheduler)

        with pytest.raises(ConnectionNotInitializedError):
            await manager.require_transport()


# =============================================================================
# Event fan-out
# =============================================================================


class TestEventFanOut:
    """Subscribers survive transport replacement and see each event once."""

    @pytest.mark.asyncio
    async def test_messages_after_replacement(
        self, connection: ConnectionManager, transport_factory, transport_config
    ) -> None:
        received: list[Message] = []
        connection.on_message_received(received.append)

        await connection.initialize(transport_config)
        old = transport_factory.latest
        await connection.initialize(transport_config)

        old.simulate_message("stale")
        message = transport_factory.latest.simulate_message("fresh")

        assert received == [message]

    @pytest.mark.asyncio
    async def test_errors_and_raw_status_forwarded(
        self, connected: ConnectionManager, transport_factory
    ) -> None:
        errors: list[ChatError] = []
        raw: list[ConnectionStatus] = []
        connected.on_error(errors.append)
        connected.on_transport_status_change(raw.append)

        transport_factory.latest.simulate_error(ChatErrorCode.RATE_LIMIT_EXCEEDED, "slow down")
        transport_factory.latest.simulate_connection_status(ConnectionStatus.CONNECTING)

        assert [e.code for e in errors] == [ChatErrorCode.RATE_LIMIT_EXCEEDED]
        assert raw == [ConnectionStatus.CONNECTING]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, connected: ConnectionManager, transport_factory) -> None:
        received: list[Message] = []
        unsubscribe = connected.on_message_received(received.append)

        unsubscribe()
        transport_factory.latest.simulate_message("hello")

        assert received == []


# =============================================================================
# Automatic reconnection
# =============================================================================


class TestUnexpectedClose:
    """Tests for reconnection after the transport drops."""

    @pytest.mark.asyncio
    async def test_schedules_one_attempt_after_fixed_delay(
        self, connected: ConnectionManager, transport_factory, scheduler: ManualScheduler
    ) -> None:
        transport = transport_factory.latest
        transport.simulate_connection_status(ConnectionStatus.DISCONNECTED)

        assert connected.status is ConnectionStatus.DISCONNECTED
        assert connected.reconnect_pending is True
        assert scheduler.pending == 1

        await scheduler.advance(4.9)
        assert transport.call_count("refresh_connection_token") == 0

        await scheduler.advance(0.1)
        assert transport.call_count("refresh_connection_token") == 1
        assert connected.status is ConnectionStatus.CONNECTED
        assert connected.reconnect_attempts == 0

    @pytest.mark.asyncio
    async def test_refresh_failure_falls_back_to_initialize(
        self, connected: ConnectionManager, transport_factory, scheduler: ManualScheduler
    ) -> None:
        first = transport_factory.latest
        first.refresh_error = TransportError("token expired")

        first.simulate_connection_status(ConnectionStatus.DISCONNECTED)
        await scheduler.advance(5.0)

        assert len(transport_factory.created) == 2
        assert first.closed is True
        assert connected.status is ConnectionStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_scheduled_failure_is_logged_not_raised(
        self, connected: ConnectionManager, transport_factory, scheduler: ManualScheduler
    ) -> None:
        transport_factory.latest.refresh_error = TransportError("token expired")
        transport_factory.kwargs["open_error"] = TransportError("unreachable")

        transport_factory.latest.simulate_connection_status(ConnectionStatus.DISCONNECTED)
        await scheduler.advance(5.0)

        assert connected.status is ConnectionStatus.FAILED
        assert str(connected.last_error) == "token expired"

    @pytest.mark.asyncio
    async def test_attempt_cap_stops_scheduling(
        self,
        transport_factory,
        scheduler: ManualScheduler,
        transport_config: TransportConfig,
    ) -> None:
        manager = ConnectionManager(
            transport_factory,
            scheduler=scheduler,
            policy=FixedDelayPolicy(delay_seconds=5.0, max_attempts=1),
        )
        await manager.initialize(transport_config)
        transport_factory.latest.refresh_error = TransportError("token expired")
        transport_factory.kwargs["open_error"] = TransportError("unreachable")

        transport_factory.latest.simulate_connection_status(ConnectionStatus.DISCONNECTED)
        await scheduler.advance(5.0)
        assert manager.reconnect_attempts == 1

        transport_factory.latest.simulate_connection_status(ConnectionStatus.DISCONNECTED)

        assert manager.reconnect_pending is False
        assert scheduler.pending == 0
        assert manager.status is ConnectionStatus.FAILED


class TestReconnect:
    """Tests for a direct reconnect() call."""

    @pytest.mark.asyncio
    async def test_enters_reconnecting_then_connected(
        self, connected: ConnectionManager
    ) -> None:
        statuses: list[ConnectionStatus] = []
        connected.on_status_change(statuses.append)

        await connected.reconnect()

        assert statuses == [ConnectionStatus.RECONNECTING, ConnectionStatus.CONNECTED]

    @pytest.mark.asyncio
    async def test_raises_refresh_error_when_both_fail(
        self, connected: ConnectionManager, transport_factory
    ) -> None:
        transport_factory.latest.refresh_error = TransportError("token expired")
        transport_factory.kwargs["open_error"] = TransportError("unreachable")

        with pytest.raises(TransportError, match="token expired"):
            await connected.reconnect()

        assert connected.status is ConnectionStatus.FAILED

    @pytest.mark.asyncio
    async def test_requires_config(self, scheduler: ManualScheduler, transport_factory) -> None:
        manager = ConnectionManager(transport_factory, scheduler=scheduler)

        with pytest.raises(ConnectionNotInitializedError):
            await manager.reconnect()


class TestNetworkAndVisibility:
    """Tests for browser network and visibility signals."""

    @pytest.mark.asyncio
    async def test_offline_forces_disconnected_and_cancels_timer(
        self, connected: ConnectionManager, transport_factory, scheduler: ManualScheduler
    ) -> None:
        transport_factory.latest.simulate_connection_status(ConnectionStatus.DISCONNECTED)
        assert connected.reconnect_pending is True

        connected.handle_network_change(False)

        assert connected.status is ConnectionStatus.DISCONNECTED
        assert connected.reconnect_pending is False
        await scheduler.advance(10.0)
        assert refresh_calls(transport_factory) == 0

    @pytest.mark.asyncio
    async def test_online_reconnects_after_recovery_delay(
        self, connected: ConnectionManager, transport_factory, scheduler: ManualScheduler
    ) -> None:
        connected.handle_network_change(False)
        connected.handle_network_change(True)
        await scheduler.advance(0.0)

        assert refresh_calls(transport_factory) == 1
        assert connected.status is ConnectionStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_rapid_offline_online_yields_one_attempt(
        self, connected: ConnectionManager, transport_factory, scheduler: ManualScheduler
    ) -> None:
        for _ in range(5):
            connected.handle_network_change(False)
            connected.handle_network_change(True)

        await scheduler.advance(30.0)

        assert refresh_calls(transport_factory) == 1

    @pytest.mark.asyncio
    async def test_success_while_offline_stays_disconnected(
        self, connected: ConnectionManager
    ) -> None:
        connected.handle_network_change(False)

        await connected.reconnect()

        assert connected.status is ConnectionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_visible_supersedes_pending_timer(
        self, connected: ConnectionManager, transport_factory, scheduler: ManualScheduler
    ) -> None:
        transport_factory.latest.simulate_connection_status(ConnectionStatus.DISCONNECTED)

        connected.handle_visibility_change(True)
        await scheduler.advance(0.0)
        assert refresh_calls(transport_factory) == 1

        await scheduler.advance(10.0)
        assert refresh_calls(transport_factory) == 1

    @pytest.mark.asyncio
    async def test_visible_while_connected_is_noop(
        self, connected: ConnectionManager, scheduler: ManualScheduler
    ) -> None:
        connected.handle_visibility_change(True)

        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_triggers_during_attempt_are_coalesced(
        self,
        scheduler: ManualScheduler,
        transport_config: TransportConfig,
    ) -> None:
        created: list[GatedRefreshTransport] = []

        def factory(_: TransportConfig) -> GatedRefreshTransport:
            created.append(GatedRefreshTransport())
            return created[-1]

        manager = ConnectionManager(factory, scheduler=scheduler)
        await manager.initialize(transport_config)
        transport = created[0]

        transport.simulate_connection_status(ConnectionStatus.DISCONNECTED)
        attempt = asyncio.create_task(scheduler.advance(5.0))
        for _ in range(3):
            await asyncio.sleep(0)
        assert manager.status is ConnectionStatus.RECONNECTING

        transport.simulate_connection_status(ConnectionStatus.DISCONNECTED)
        manager.handle_network_change(True)
        assert manager.reconnect_pending is False

        transport.refresh_gate.set()
        await attempt

        assert transport.call_count("refresh_connection_token") == 1
        assert manager.status is ConnectionStatus.CONNECTED
        assert scheduler.pending == 0


class TestPauseAutoReconnect:
    """Tests for pausing automatic reconnection."""

    @pytest.mark.asyncio
    async def test_pause_cancels_and_blocks(
        self, connected: ConnectionManager, transport_factory, scheduler: ManualScheduler
    ) -> None:
        transport_factory.latest.simulate_connection_status(ConnectionStatus.DISCONNECTED)

        connected.pause_auto_reconnect()
        connected.handle_network_change(True)
        connected.handle_visibility_change(True)
        await scheduler.advance(10.0)

        assert refresh_calls(transport_factory) == 0

    @pytest.mark.asyncio
    async def test_resume_allows_triggers(
        self, connected: ConnectionManager, transport_factory, scheduler: ManualScheduler
    ) -> None:
        connected.pause_auto_reconnect()
        transport_factory.latest.simulate_connection_status(ConnectionStatus.DISCONNECTED)

        connected.resume_auto_reconnect()
        connected.handle_visibility_change(True)
        await scheduler.advance(0.0)

        assert refresh_calls(transport_factory) == 1


# =============================================================================
# Teardown
# =============================================================================


class TestDisconnectAndClose:
    """Tests for disconnect() and close()."""

    @pytest.mark.asyncio
    async def test_disconnect_ends_chat(
        self, connected: ConnectionManager, transport_factory, scheduler: ManualScheduler
    ) -> None:
        await connected.disconnect()

        assert transport_factory.latest.call_count("end_chat") == 1
        assert connected.status is ConnectionStatus.DISCONNECTED

        transport_factory.latest.simulate_connection_status(ConnectionStatus.DISCONNECTED)
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_disconnect_failure_is_recorded(
        self, connected: ConnectionManager, transport_factory
    ) -> None:
        transport_factory.latest.end_error = TransportError("already gone")

        await connected.disconnect()

        assert isinstance(connected.last_error, TransportError)
        assert connected.status is ConnectionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_close_tears_down(
        self,
        connected: ConnectionManager,
        transport_factory,
        scheduler: ManualScheduler,
        transport_config: TransportConfig,
    ) -> None:
        transport = transport_factory.latest
        transport.simulate_connection_status(ConnectionStatus.DISCONNECTED)

        await connected.close()
        await scheduler.advance(10.0)

        assert transport.closed is True
        assert transport.listener_count == 0
        assert transport.call_count("refresh_connection_token") == 0
        assert connected.transport is None
        with pytest.raises(ConnectionNotInitializedError):
            await connected.initialize(transport_config)
