"""Message model for chat transcripts."""

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from chatline.chat.models.enums import MessageSender, MessageStatus, MessageType


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


def new_message_id() -> str:
    """Generate a unique client-side message id."""
    return f"msg-{uuid4().hex}"


class Message(BaseModel):
    """A single chat message.

    Messages are immutable snapshots; delivery-status changes produce a
    new copy with the same id.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_message_id, description="Unique identifier")
    content: str = Field(..., description="Message body")
    sender: MessageSender = Field(..., description="Author")
    timestamp: datetime = Field(default_factory=utc_now, description="Creation time")
    status: MessageStatus = Field(
        default=MessageStatus.SENDING, description="Delivery status"
    )
    type: MessageType = Field(default=MessageType.TEXT, description="Content type")
