"""Transports: the channel between the widget and the contact center."""

from chatline.transport.base import (
    AgentStatusUpdate,
    ListenerSet,
    ParticipantDetails,
    Transport,
    Unsubscribe,
)
from chatline.transport.mock import MockTransport

__all__ = [
    "AgentStatusUpdate",
    "ListenerSet",
    "MockTransport",
    "ParticipantDetails",
    "Transport",
    "Unsubscribe",
]
