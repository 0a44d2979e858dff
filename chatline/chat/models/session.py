"""Chat session state models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from chatline.chat.models.enums import (
    NON_RECOVERABLE_CODES,
    AgentStatus,
    ChatErrorCode,
    ChatStatus,
)
from chatline.chat.models.message import Message, utc_now


class VisitorDraft(BaseModel):
    """Identity a visitor supplies before a chat may start."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Display name")
    email: str | None = Field(default=None, description="Contact email")


class VisitorInfo(BaseModel):
    """Visitor identity bound to a browser session."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="", description="Display name")
    email: str | None = Field(default=None, description="Contact email")
    session_id: str = Field(..., description="Browser session identifier")

    @property
    def has_identity(self) -> bool:
        """Whether the visitor has supplied a name."""
        return bool(self.name)


class AgentInfo(BaseModel):
    """Agent serving the conversation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Agent identifier")
    name: str = Field(default="Agent", description="Display name")
    profile_image: str | None = Field(default=None, description="Avatar URL")
    status: AgentStatus = Field(default=AgentStatus.ONLINE, description="Presence")
    is_typing: bool = Field(default=False, description="Agent is typing")


class TransportSession(BaseModel):
    """Credentials of an established chat contact."""

    model_config = ConfigDict(frozen=True)

    connection_token: str = Field(..., description="Connection credential")
    participant_id: str = Field(..., description="Visitor participant id")
    participant_token: str = Field(..., description="Participant credential")
    websocket_url: str = Field(..., description="Real-time endpoint")
    start_time: datetime = Field(default_factory=utc_now, description="Contact start")


class ChatError(BaseModel):
    """Error surfaced to the presentation layer."""

    model_config = ConfigDict(frozen=True)

    code: ChatErrorCode = Field(..., description="Error category")
    message: str = Field(..., description="Human readable description")
    timestamp: datetime = Field(default_factory=utc_now, description="When it happened")
    recoverable: bool = Field(default=True, description="Whether the user may retry")

    @classmethod
    def create(cls, code: ChatErrorCode, message: str) -> "ChatError":
        """Build an error whose recoverable flag follows its code."""
        return cls(
            code=code,
            message=message,
            recoverable=code not in NON_RECOVERABLE_CODES,
        )


def empty_visitor() -> VisitorInfo:
    """Visitor placeholder used before identity is known."""
    return VisitorInfo(session_id="")


class ChatState(BaseModel):
    """Snapshot of a conversation.

    Snapshots are frozen. Every transition produces a new instance, so a
    snapshot handed to a subscriber never changes underneath it.
    """

    model_config = ConfigDict(frozen=True)

    status: ChatStatus = Field(default=ChatStatus.CLOSED, description="Lifecycle stage")
    session: TransportSession | None = Field(default=None, description="Contact credentials")
    messages: tuple[Message, ...] = Field(default=(), description="Ordered history")
    agent: AgentInfo | None = Field(default=None, description="Serving agent")
    visitor: VisitorInfo = Field(default_factory=empty_visitor, description="Visitor identity")
    unread_count: int = Field(default=0, ge=0, description="Messages not yet read")
    is_typing: bool = Field(default=False, description="Agent is typing")
    error: ChatError | None = Field(default=None, description="Last surfaced error")

    def find_message(self, message_id: str) -> Message | None:
        """Return the message with the given id, if present."""
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


class ChatView(BaseModel):
    """What the presentation layer renders."""

    model_config = ConfigDict(frozen=True)

    chat_state: ChatState
    is_connected: bool
    is_loading: bool


class ChatTranscript(BaseModel):
    """Finalized record of a conversation."""

    session_id: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    messages: list[Message] = Field(default_factory=list)
    agent: AgentInfo | None = None
    visitor: VisitorInfo | None = None
