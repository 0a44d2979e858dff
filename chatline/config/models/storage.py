"""Storage backend configuration models."""

from typing import Literal

from pydantic import BaseModel, Field

BackendType = Literal["inmemory", "redis"]


class StorageConfig(BaseModel):
    """Key/value persistence backend for chat and widget state."""

    backend: BackendType = Field(
        default="inmemory",
        description="Backend type",
    )
    connection_url: str | None = Field(
        default=None,
        description="Connection URL (from env var)",
    )
    key_prefix: str = Field(
        default="chatline",
        description="Prefix for every persisted key",
    )
    ttl_seconds: int | None = Field(
        default=604800,  # 7 days
        gt=0,
        description="Expiry applied to persisted keys (unset = no expiry)",
    )
