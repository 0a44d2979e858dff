"""Enums for the chat domain."""

from enum import Enum


class ChatStatus(str, Enum):
    """Lifecycle stage of a conversation."""

    CLOSED = "closed"
    INITIALIZING = "initializing"
    WAITING = "waiting"
    CONNECTED = "connected"
    ENDED = "ended"


class ConnectionStatus(str, Enum):
    """Lifecycle stage of the underlying transport link."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class MessageSender(str, Enum):
    """Who authored a message."""

    VISITOR = "visitor"
    AGENT = "agent"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    """Delivery status of a message."""

    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class MessageType(str, Enum):
    """Content type of a message."""

    TEXT = "text"
    FILE = "file"
    IMAGE = "image"
    SYSTEM = "system"


class AgentStatus(str, Enum):
    """Presence of the serving agent."""

    ONLINE = "online"
    AWAY = "away"
    BUSY = "busy"
    OFFLINE = "offline"


class ChatErrorCode(str, Enum):
    """Error codes surfaced on the chat state."""

    CONNECTION_LOST = "CONNECTION_LOST"
    MESSAGE_SEND_FAILED = "MESSAGE_SEND_FAILED"
    AGENT_DISCONNECTED = "AGENT_DISCONNECTED"
    SESSION_TIMEOUT = "SESSION_TIMEOUT"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"


NON_RECOVERABLE_CODES: frozenset[ChatErrorCode] = frozenset({
    ChatErrorCode.SESSION_TIMEOUT,
    ChatErrorCode.AUTHENTICATION_FAILED,
})
