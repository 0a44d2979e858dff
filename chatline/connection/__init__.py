"""Connection health and reconnection."""

from chatline.connection.backoff import FixedDelayPolicy, ReconnectBackoff, ReconnectPolicy
from chatline.connection.manager import ConnectionManager, TransportFactory

__all__ = [
    "ConnectionManager",
    "FixedDelayPolicy",
    "ReconnectBackoff",
    "ReconnectPolicy",
    "TransportFactory",
]
