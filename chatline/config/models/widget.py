"""Widget presentation defaults."""

from pydantic import BaseModel, Field


class PositionConfig(BaseModel):
    """Widget anchor position."""

    bottom: str = Field(default="20px", description="Offset from the bottom edge")
    right: str | None = Field(default="20px", description="Offset from the right edge")
    left: str | None = Field(default=None, description="Offset from the left edge")


class WidgetConfig(BaseModel):
    """Defaults applied before any stored preference exists."""

    position: PositionConfig = Field(
        default_factory=PositionConfig,
        description="Default anchor position",
    )
    theme: str = Field(default="default", description="Theme name")
    sound_enabled: bool = Field(default=True, description="Play notification sounds")
