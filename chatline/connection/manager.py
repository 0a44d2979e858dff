"""ConnectionManager: connection health and reconnection for one transport.

The manager owns the single live Transport. It re-registers its own
handlers on every transport it creates and fans events out to its
subscribers, so subscribers survive a transport replacement and never
receive an event twice.

States: disconnected (initial), connecting, connected, reconnecting,
failed. Automatic reconnection is driven by:
- an unexpected transport close (after the policy delay)
- the page becoming visible while disconnected (after the recovery delay)
- the network coming back online while disconnected (after the recovery delay)

At most one reconnect timer is pending and at most one attempt runs at a
time; a new trigger replaces a pending timer and is folded into a running
attempt.
"""

from collections.abc import Callable

from chatline.chat.models import ChatError, ConnectionStatus, Message
from chatline.config.models.connection import ConnectionConfig, TransportConfig
from chatline.connection.backoff import FixedDelayPolicy, ReconnectBackoff, ReconnectPolicy
from chatline.errors import ConnectionNotInitializedError
from chatline.observability.logging import get_logger
from chatline.observability.metrics import CONNECTION_TRANSITIONS, RECONNECT_ATTEMPTS
from chatline.runtime.scheduler import AsyncioScheduler, Scheduler
from chatline.transport.base import AgentStatusUpdate, ListenerSet, Transport, Unsubscribe

logger = get_logger(__name__)

TransportFactory = Callable[[TransportConfig], Transport]


class ConnectionManager:
    """Owns connection health against an abstract Transport."""

    def __init__(
        self,
        transport_factory: TransportFactory,
        *,
        scheduler: Scheduler | None = None,
        policy: ReconnectPolicy | None = None,
        recovery_delay_seconds: float = 0.0,
    ) -> None:
        """Initialize connection manager.

        Args:
            transport_factory: Creates a transport for a configuration
            scheduler: Timer scheduler (asyncio loop by default)
            policy: Reconnect delay and attempt limit (fixed 5s by default)
            recovery_delay_seconds: Delay for visibility/network triggered attempts
        """
        self._factory = transport_factory
        self._scheduler = scheduler or AsyncioScheduler()
        self._backoff = ReconnectBackoff(self._scheduler, policy or FixedDelayPolicy())
        self._recovery_delay = recovery_delay_seconds

        self._status = ConnectionStatus.DISCONNECTED
        self._transport: Transport | None = None
        self._transport_subscriptions: list[Unsubscribe] = []
        self._config: TransportConfig | None = None
        self._last_error: Exception | None = None

        self._online = True
        self._visible = True
        self._auto_reconnect = True
        self._attempt_in_flight = False
        self._connecting = False
        self._closed = False

        self._status_listeners: ListenerSet[ConnectionStatus] = ListenerSet(
            "connection_manager_status"
        )
        self._message_listeners: ListenerSet[Message] = ListenerSet("message_received")
        self._agent_status_listeners: ListenerSet[AgentStatusUpdate] = ListenerSet(
            "agent_status_changed"
        )
        self._transport_status_listeners: ListenerSet[ConnectionStatus] = ListenerSet(
            "transport_status_changed"
        )
        self._error_listeners: ListenerSet[ChatError] = ListenerSet("transport_error")

    @classmethod
    def from_config(
        cls,
        config: ConnectionConfig,
        transport_factory: TransportFactory,
        scheduler: Scheduler | None = None,
    ) -> "ConnectionManager":
        """Create a manager using the fixed-delay policy from configuration."""
        return cls(
            transport_factory,
            scheduler=scheduler,
            policy=FixedDelayPolicy.from_config(config),
            recovery_delay_seconds=config.recovery_delay_seconds,
        )

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def config(self) -> TransportConfig | None:
        """Last configuration passed to initialize()."""
        return self._config

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def is_initialized(self) -> bool:
        return self._config is not None

    @property
    def is_connecting(self) -> bool:
        return self._connecting

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def reconnect_pending(self) -> bool:
        return self._backoff.pending

    @property
    def reconnect_attempts(self) -> int:
        return self._backoff.attempts

    def clear_error(self) -> None:
        self._last_error = None

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def on_status_change(self, listener: Callable[[ConnectionStatus], None]) -> Unsubscribe:
        """Listen to this manager's own status."""
        return self._status_listeners.add(listener)

    def on_message_received(self, listener: Callable[[Message], None]) -> Unsubscribe:
        return self._message_listeners.add(listener)

    def on_agent_status_change(
        self, listener: Callable[[AgentStatusUpdate], None]
    ) -> Unsubscribe:
        return self._agent_status_listeners.add(listener)

    def on_transport_status_change(
        self, listener: Callable[[ConnectionStatus], None]
    ) -> Unsubscribe:
        """Listen to link status exactly as the live transport reports it."""
        return self._transport_status_listeners.add(listener)

    def on_error(self, listener: Callable[[ChatError], None]) -> Unsubscribe:
        return self._error_listeners.add(listener)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def configure(self, config: TransportConfig) -> None:
        """Record the configuration used when a transport is first required."""
        self._config = config

    async def initialize(self, config: TransportConfig) -> Transport:
        """Replace the transport with a fresh one and open it.

        The previous transport is unsubscribed and closed first. Failures
        leave the manager failed and are raised to the caller.
        """
        if self._closed:
            raise ConnectionNotInitializedError("Connection manager is closed")

        self._config = config
        self._last_error = None
        self._connecting = True
        try:
            await self._dispose_transport()
            self._set_status(ConnectionStatus.CONNECTING)
            transport = self._factory(config)
            self._attach(transport)
            await transport.open()
        except Exception as e:
            self._last_error = e
            self._set_status(ConnectionStatus.FAILED)
            logger.error(
                "connection_initialize_failed",
                region=config.region,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        finally:
            self._connecting = False

        self._mark_connected()
        logger.info("connection_initialized", region=config.region)
        return transport

    async def require_transport(self) -> Transport:
        """Return the live transport, initializing from the last config if needed."""
        if self._transport is not None:
            return self._transport
        if self._config is None:
            raise ConnectionNotInitializedError()
        return await self.initialize(self._config)

    async def reconnect(self) -> None:
        """Restore the link: refresh credentials, else re-initialize.

        Raises the refresh error when re-initialization fails as well; the
        manager is then failed.
        """
        if self._config is None:
            raise ConnectionNotInitializedError(
                "No configuration available for reconnection"
            )
        if self._transport is None:
            await self.initialize(self._config)
            return

        self._backoff.record_attempt()
        self._connecting = True
        self._last_error = None
        self._set_status(ConnectionStatus.RECONNECTING)
        logger.info("reconnect_started", attempt=self._backoff.attempts)
        try:
            await self._transport.refresh_connection_token()
        except Exception as refresh_error:
            self._last_error = refresh_error
            self._set_status(ConnectionStatus.FAILED)
            logger.warning("connection_token_refresh_failed", error=str(refresh_error))
            try:
                await self.initialize(self._config)
            except Exception as init_error:
                self._last_error = refresh_error
                RECONNECT_ATTEMPTS.labels(outcome="failed").inc()
                logger.error("reconnect_failed", error=str(init_error))
                raise refresh_error from init_error
            RECONNECT_ATTEMPTS.labels(outcome="reinitialized").inc()
            return
        finally:
            self._connecting = False

        self._mark_connected()
        RECONNECT_ATTEMPTS.labels(outcome="refreshed").inc()
        logger.info("reconnect_succeeded")

    async def disconnect(self) -> None:
        """End the chat on the transport; failures are recorded, not raised.

        The manager is disconnected afterwards either way. It stays so until
        the transport reports the link again or a reconnect succeeds.
        """
        if self._transport is None:
            return
        self.pause_auto_reconnect()
        self._connecting = True
        try:
            await self._transport.end_chat()
        except Exception as e:
            self._last_error = e
            logger.warning("disconnect_failed", error=str(e), error_type=type(e).__name__)
        finally:
            self._connecting = False
        self._set_status(ConnectionStatus.DISCONNECTED)

    def pause_auto_reconnect(self) -> None:
        """Stop automatic reconnection, e.g. after the visitor ended the chat."""
        self._auto_reconnect = False
        if self._backoff.cancel():
            logger.debug("pending_reconnect_cancelled", reason="auto_reconnect_paused")

    def resume_auto_reconnect(self) -> None:
        self._auto_reconnect = True

    def handle_visibility_change(self, visible: bool) -> None:
        """Page visibility changed."""
        self._visible = visible
        if visible and self._status is ConnectionStatus.DISCONNECTED:
            self._request_reconnect("page_visible", delay=self._recovery_delay)

    def handle_network_change(self, online: bool) -> None:
        """Browser reported the network going online or offline."""
        self._online = online
        if not online:
            cancelled = self._backoff.cancel()
            self._set_status(ConnectionStatus.DISCONNECTED)
            logger.info("network_offline", cancelled_reconnect=cancelled)
            return
        if self._status is ConnectionStatus.DISCONNECTED:
            self._request_reconnect("network_online", delay=self._recovery_delay)

    async def close(self) -> None:
        """Tear down: cancel timers, dispose the transport, drop subscribers."""
        if self._closed:
            return
        self._closed = True
        self._auto_reconnect = False
        self._backoff.cancel()
        await self._dispose_transport()
        self._set_status(ConnectionStatus.DISCONNECTED)
        for listeners in (
            self._status_listeners,
            self._message_listeners,
            self._agent_status_listeners,
            self._transport_status_listeners,
            self._error_listeners,
        ):
            listeners.clear()
        logger.info("connection_manager_closed")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        previous = self._status
        self._status = status
        CONNECTION_TRANSITIONS.labels(status=status.value).inc()
        logger.debug(
            "connection_status_changed",
            previous=previous.value,
            status=status.value,
        )
        self._status_listeners.emit(status)

    def _mark_connected(self) -> None:
        self._backoff.reset()
        if not self._online:
            # Offline wins over whatever the transport reports
            self._set_status(ConnectionStatus.DISCONNECTED)
            return
        self._set_status(ConnectionStatus.CONNECTED)

    def _attach(self, transport: Transport) -> None:
        self._transport = transport
        self._transport_subscriptions = [
            transport.on_message_received(self._message_listeners.emit),
            transport.on_agent_status_change(self._agent_status_listeners.emit),
            transport.on_connection_status_change(self._handle_transport_status),
            transport.on_error(self._error_listeners.emit),
        ]

    async def _dispose_transport(self) -> None:
        transport = self._transport
        if transport is None:
            return
        for unsubscribe in self._transport_subscriptions:
            unsubscribe()
        self._transport_subscriptions = []
        self._transport = None
        try:
            await transport.close()
        except Exception as e:
            logger.warning("transport_close_failed", error=str(e))

    def _handle_transport_status(self, status: ConnectionStatus) -> None:
        self._transport_status_listeners.emit(status)
        if status is ConnectionStatus.DISCONNECTED:
            self._set_status(ConnectionStatus.DISCONNECTED)
            logger.info("transport_closed_unexpectedly")
            self._request_reconnect("transport_closed")
        elif status is ConnectionStatus.CONNECTED:
            self._mark_connected()
        else:
            self._set_status(status)

    def _request_reconnect(self, reason: str, delay: float | None = None) -> None:
        if self._closed or not self._auto_reconnect or self._config is None:
            logger.debug("reconnect_not_requested", reason=reason)
            return
        if not self._online:
            logger.debug("reconnect_deferred_offline", reason=reason)
            return
        if self._attempt_in_flight:
            logger.debug("reconnect_coalesced", reason=reason)
            return

        superseded = self._backoff.pending
        if not self._backoff.schedule(self._run_scheduled_reconnect, delay):
            logger.warning(
                "reconnect_attempts_exhausted",
                reason=reason,
                attempts=self._backoff.attempts,
            )
            self._set_status(ConnectionStatus.FAILED)
            return
        logger.info(
            "reconnect_scheduled",
            reason=reason,
            superseded=superseded,
            attempt=self._backoff.attempts + 1,
        )

    async def _run_scheduled_reconnect(self) -> None:
        # Stale timers are no-ops
        if self._closed or not self._auto_reconnect or not self._online:
            return
        if self._status is ConnectionStatus.CONNECTED:
            return

        self._attempt_in_flight = True
        try:
            await self.reconnect()
        except Exception as e:
            logger.warning("scheduled_reconnect_failed", error=str(e))
        finally:
            self._attempt_in_flight = False
