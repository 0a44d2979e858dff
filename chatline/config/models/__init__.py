"""Configuration model exports.

    from chatline.config.models import ConnectionConfig, StorageConfig
"""

from chatline.config.models.chat import ChatConfig
from chatline.config.models.connection import ConnectionConfig, TransportConfig
from chatline.config.models.observability import (
    LoggingConfig,
    MetricsConfig,
    ObservabilityConfig,
)
from chatline.config.models.storage import StorageConfig
from chatline.config.models.widget import PositionConfig, WidgetConfig

__all__ = [
    "ChatConfig",
    "ConnectionConfig",
    "LoggingConfig",
    "MetricsConfig",
    "ObservabilityConfig",
    "PositionConfig",
    "StorageConfig",
    "TransportConfig",
    "WidgetConfig",
]
