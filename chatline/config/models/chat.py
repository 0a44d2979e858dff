"""Chat session configuration models."""

from pydantic import BaseModel, Field


class ChatConfig(BaseModel):
    """Chat session behaviour."""

    max_message_length: int = Field(
        default=4096,
        gt=0,
        description="Longest message a visitor may send",
    )
    typing_stop_delay_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="Idle time after which a visitor typing indicator is stopped",
    )
    agent_typing_timeout_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="Time after which an agent typing indicator expires",
    )
