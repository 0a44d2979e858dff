"""Chat domain models.

Contains all Pydantic models for chat state:
- ChatState snapshots and the ChatView handed to the presentation layer
- Messages and their delivery status
- Visitor and agent identity
- Errors surfaced to the visitor
"""

from chatline.chat.models.enums import (
    AgentStatus,
    ChatErrorCode,
    ChatStatus,
    ConnectionStatus,
    MessageSender,
    MessageStatus,
    MessageType,
)
from chatline.chat.models.message import Message, new_message_id, utc_now
from chatline.chat.models.session import (
    AgentInfo,
    ChatError,
    ChatState,
    ChatTranscript,
    ChatView,
    TransportSession,
    VisitorDraft,
    VisitorInfo,
)

__all__ = [
    # Enums
    "AgentStatus",
    "ChatErrorCode",
    "ChatStatus",
    "ConnectionStatus",
    "MessageSender",
    "MessageStatus",
    "MessageType",
    # Messages
    "Message",
    "new_message_id",
    "utc_now",
    # Session models
    "AgentInfo",
    "ChatError",
    "ChatState",
    "ChatTranscript",
    "ChatView",
    "TransportSession",
    "VisitorDraft",
    "VisitorInfo",
]
