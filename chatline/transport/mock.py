"""Mock transport for testing."""

import asyncio
from typing import Any

from chatline.chat.models import (
    AgentStatus,
    ChatError,
    ChatErrorCode,
    ConnectionStatus,
    Message,
    MessageSender,
    MessageStatus,
    TransportSession,
    new_message_id,
)
from chatline.transport.base import AgentStatusUpdate, ParticipantDetails, Transport


def default_session() -> TransportSession:
    """Session handed out when none is configured."""
    return TransportSession(
        connection_token="mock-connection-token",
        participant_id="mock-participant",
        participant_token="mock-participant-token",
        websocket_url="wss://mock.invalid/chat",
    )


class MockTransport(Transport):
    """Mock transport for testing.

    Operations succeed unless the matching *_error attribute is set, in
    which case that exception is raised. send_gate and initialize_gate,
    when set, hold sends and contact handshakes until the event is set so
    tests can act while a call is in flight.
    The simulate_* methods play the remote side.
    """

    def __init__(
        self,
        session: TransportSession | None = None,
        *,
        open_error: Exception | None = None,
        initialize_error: Exception | None = None,
        send_error: Exception | None = None,
        end_error: Exception | None = None,
        refresh_error: Exception | None = None,
    ) -> None:
        super().__init__()
        self.session = session or default_session()
        self.open_error = open_error
        self.initialize_error = initialize_error
        self.send_error = send_error
        self.end_error = end_error
        self.refresh_error = refresh_error
        self.send_gate: asyncio.Event | None = None
        self.initialize_gate: asyncio.Event | None = None
        self.is_open = False
        self.closed = False
        self.user_typing = False
        self.sent_messages: list[tuple[str, str]] = []
        self._call_history: list[tuple[str, dict[str, Any]]] = []

    @property
    def call_history(self) -> list[tuple[str, dict[str, Any]]]:
        """Return history of calls for testing assertions."""
        return self._call_history

    def call_count(self, operation: str) -> int:
        """Number of times an operation was invoked."""
        return sum(1 for name, _ in self._call_history if name == operation)

    def clear_history(self) -> None:
        self._call_history.clear()

    @property
    def listener_count(self) -> int:
        """Total listeners registered across all event types."""
        return (
            len(self._message_listeners)
            + len(self._agent_status_listeners)
            + len(self._connection_status_listeners)
            + len(self._error_listeners)
        )

    # -------------------------------------------------------------------------
    # Transport operations
    # -------------------------------------------------------------------------

    async def open(self) -> None:
        self._call_history.append(("open", {}))
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True

    async def close(self) -> None:
        self._call_history.append(("close", {}))
        self.is_open = False
        self.closed = True

    async def initialize_chat(self, details: ParticipantDetails) -> TransportSession:
        self._call_history.append(("initialize_chat", {"details": details}))
        if self.initialize_gate is not None:
            await self.initialize_gate.wait()
        if self.initialize_error is not None:
            raise self.initialize_error
        return self.session

    async def send_message(self, content: str, *, message_id: str) -> None:
        self._call_history.append(
            ("send_message", {"content": content, "message_id": message_id})
        )
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.send_error is not None:
            raise self.send_error
        self.sent_messages.append((message_id, content))

    async def end_chat(self) -> None:
        self._call_history.append(("end_chat", {}))
        if self.end_error is not None:
            raise self.end_error

    async def refresh_connection_token(self) -> None:
        self._call_history.append(("refresh_connection_token", {}))
        if self.refresh_error is not None:
            raise self.refresh_error

    def handle_user_typing(self) -> None:
        self._call_history.append(("handle_user_typing", {}))
        self.user_typing = True

    def stop_user_typing(self) -> None:
        self._call_history.append(("stop_user_typing", {}))
        self.user_typing = False

    # -------------------------------------------------------------------------
    # Remote side simulation
    # -------------------------------------------------------------------------

    def simulate_message(
        self,
        content: str,
        *,
        sender: MessageSender = MessageSender.AGENT,
        message_id: str | None = None,
        status: MessageStatus = MessageStatus.DELIVERED,
    ) -> Message:
        """Deliver an inbound message to listeners."""
        message = Message(
            id=message_id or new_message_id(),
            content=content,
            sender=sender,
            status=status,
        )
        self._emit_message(message)
        return message

    def simulate_agent_status(
        self,
        agent_id: str = "agent-1",
        *,
        status: AgentStatus = AgentStatus.ONLINE,
        is_typing: bool = False,
        name: str | None = None,
        profile_image: str | None = None,
    ) -> None:
        """Deliver an agent presence event to listeners."""
        self._emit_agent_status(
            AgentStatusUpdate(
                agent_id=agent_id,
                status=status,
                is_typing=is_typing,
                name=name,
                profile_image=profile_image,
            )
        )

    def simulate_connection_status(self, status: ConnectionStatus) -> None:
        """Report a link status change to listeners."""
        if status is ConnectionStatus.DISCONNECTED:
            self.is_open = False
        self._emit_connection_status(status)

    def simulate_error(self, code: ChatErrorCode, message: str) -> None:
        """Report a remote-side error to listeners."""
        self._emit_error(ChatError.create(code, message))
