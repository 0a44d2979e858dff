"""Transport abstract interface.

A Transport is the bidirectional channel to the contact center. It owns
the wire protocol (out of scope here) and reports inbound activity
through listener callbacks. Listeners are plain callables invoked on the
event loop thread; registration returns an unsubscribe callable.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from chatline.chat.models import (
    AgentStatus,
    ChatError,
    ConnectionStatus,
    Message,
    TransportSession,
)
from chatline.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
Unsubscribe = Callable[[], None]


class ParticipantDetails(BaseModel):
    """Visitor details sent when starting a chat contact."""

    display_name: str = Field(..., description="Name shown to the agent")
    email: str | None = Field(default=None, description="Contact email")
    attributes: dict[str, str] = Field(
        default_factory=dict, description="Contact attributes for routing"
    )


class AgentStatusUpdate(BaseModel):
    """Agent presence event from the contact center."""

    agent_id: str
    status: AgentStatus
    is_typing: bool = False
    name: str | None = None
    profile_image: str | None = None


class ListenerSet(Generic[T]):
    """Ordered set of listeners for one event type.

    A failing listener is logged and does not prevent delivery to the
    others.
    """

    def __init__(self, event: str) -> None:
        self._event = event
        self._listeners: list[Callable[[T], None]] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, listener: Callable[[T], None]) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear(self) -> None:
        self._listeners.clear()

    def emit(self, payload: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(payload)
            except Exception as e:
                logger.error(
                    "listener_failed",
                    event_name=self._event,
                    error=str(e),
                    error_type=type(e).__name__,
                )


class Transport(ABC):
    """Abstract bidirectional chat channel.

    Subclasses implement the protocol operations and call the _emit_*
    helpers when the remote side reports activity.
    """

    def __init__(self) -> None:
        self._message_listeners: ListenerSet[Message] = ListenerSet("message_received")
        self._agent_status_listeners: ListenerSet[AgentStatusUpdate] = ListenerSet(
            "agent_status_changed"
        )
        self._connection_status_listeners: ListenerSet[ConnectionStatus] = ListenerSet(
            "connection_status_changed"
        )
        self._error_listeners: ListenerSet[ChatError] = ListenerSet("transport_error")

    # -------------------------------------------------------------------------
    # Protocol operations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def open(self) -> None:
        """Establish the link to the contact center."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the link and release its socket."""
        pass

    @abstractmethod
    async def initialize_chat(self, details: ParticipantDetails) -> TransportSession:
        """Start a chat contact for the visitor."""
        pass

    @abstractmethod
    async def send_message(self, content: str, *, message_id: str) -> None:
        """Send a visitor message.

        message_id is the client-side id; a server echo of the message
        carries the same id.
        """
        pass

    @abstractmethod
    async def end_chat(self) -> None:
        """Disconnect the visitor from the chat contact."""
        pass

    @abstractmethod
    async def refresh_connection_token(self) -> None:
        """Renew connection credentials on the existing contact."""
        pass

    @abstractmethod
    def handle_user_typing(self) -> None:
        """Tell the agent the visitor is typing."""
        pass

    @abstractmethod
    def stop_user_typing(self) -> None:
        """Tell the agent the visitor stopped typing."""
        pass

    # -------------------------------------------------------------------------
    # Listener registration
    # -------------------------------------------------------------------------

    def on_message_received(self, listener: Callable[[Message], None]) -> Unsubscribe:
        return self._message_listeners.add(listener)

    def on_agent_status_change(
        self, listener: Callable[[AgentStatusUpdate], None]
    ) -> Unsubscribe:
        return self._agent_status_listeners.add(listener)

    def on_connection_status_change(
        self, listener: Callable[[ConnectionStatus], None]
    ) -> Unsubscribe:
        return self._connection_status_listeners.add(listener)

    def on_error(self, listener: Callable[[ChatError], None]) -> Unsubscribe:
        return self._error_listeners.add(listener)

    def remove_all_listeners(self) -> None:
        """Drop every registered listener."""
        self._message_listeners.clear()
        self._agent_status_listeners.clear()
        self._connection_status_listeners.clear()
        self._error_listeners.clear()

    # -------------------------------------------------------------------------
    # Emission helpers for subclasses
    # -------------------------------------------------------------------------

    def _emit_message(self, message: Message) -> None:
        self._message_listeners.emit(message)

    def _emit_agent_status(self, update: AgentStatusUpdate) -> None:
        self._agent_status_listeners.emit(update)

    def _emit_connection_status(self, status: ConnectionStatus) -> None:
        self._connection_status_listeners.emit(status)

    def _emit_error(self, error: ChatError) -> None:
        self._error_listeners.emit(error)
