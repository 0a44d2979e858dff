"""Connection and transport configuration models."""

from pydantic import BaseModel, Field


class ConnectionConfig(BaseModel):
    """Connection health and reconnection settings."""

    reconnect_delay_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Fixed delay before reconnecting after an unexpected close",
    )
    recovery_delay_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Delay before reconnecting when the page or network recovers",
    )
    max_reconnect_attempts: int | None = Field(
        default=None,
        gt=0,
        description="Consecutive automatic attempts before giving up (unset = unlimited)",
    )


class TransportConfig(BaseModel):
    """Contact center endpoint the transport connects to."""

    region: str = Field(default="us-east-1", description="Service region")
    instance_id: str = Field(default="", description="Contact center instance")
    contact_flow_id: str = Field(default="", description="Contact flow to start")
    api_gateway_endpoint: str | None = Field(
        default=None,
        description="Gateway that starts chat contacts",
    )
