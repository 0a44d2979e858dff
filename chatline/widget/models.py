"""Widget presentation models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from chatline.config.models.widget import WidgetConfig


class WidgetPresentation(str, Enum):
    """How the widget is shown, independent of chat status."""

    CLOSED = "closed"
    OPEN = "open"
    MINIMIZED = "minimized"


class WidgetPosition(BaseModel):
    """Anchor position of the widget on the page."""

    model_config = ConfigDict(frozen=True)

    bottom: str = Field(default="20px", description="Offset from the bottom edge")
    right: str | None = Field(default="20px", description="Offset from the right edge")
    left: str | None = Field(default=None, description="Offset from the left edge")


class WidgetPreferences(BaseModel):
    """User preferences persisted separately from chat data."""

    model_config = ConfigDict(frozen=True)

    position: WidgetPosition = Field(default_factory=WidgetPosition)
    theme: str = Field(default="default", description="Theme name")
    minimized: bool = Field(default=False, description="Widget was left minimized")
    sound_enabled: bool = Field(default=True, description="Play notification sounds")

    @classmethod
    def from_config(cls, config: WidgetConfig) -> "WidgetPreferences":
        """Defaults used before any preference is stored."""
        return cls(
            position=WidgetPosition(**config.position.model_dump()),
            theme=config.theme,
            sound_enabled=config.sound_enabled,
        )
