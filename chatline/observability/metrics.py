"""Prometheus metrics for Chatline.

Tracks message delivery, connection health and chat session lifecycle.
"""

from prometheus_client import Counter, Gauge

# Message metrics
MESSAGES_SENT = Counter(
    "chatline_messages_sent_total",
    "Visitor messages acknowledged by the transport",
)

MESSAGES_FAILED = Counter(
    "chatline_messages_failed_total",
    "Visitor messages the transport rejected",
)

MESSAGES_RECEIVED = Counter(
    "chatline_messages_received_total",
    "Inbound messages delivered by the transport",
    labelnames=["sender"],
)

# Connection metrics
CONNECTION_TRANSITIONS = Counter(
    "chatline_connection_transitions_total",
    "Connection status transitions",
    labelnames=["status"],
)

RECONNECT_ATTEMPTS = Counter(
    "chatline_reconnect_attempts_total",
    "Reconnection attempts by outcome",
    labelnames=["outcome"],
)

# Session metrics
CHAT_SESSIONS_STARTED = Counter(
    "chatline_chat_sessions_started_total",
    "Chat sessions that reached the connected state",
)

CHAT_SESSIONS_ENDED = Counter(
    "chatline_chat_sessions_ended_total",
    "Chat sessions finalized to ended",
    labelnames=["reason"],
)

ACTIVE_CHAT_SESSIONS = Gauge(
    "chatline_active_chat_sessions",
    "Chat sessions currently connected",
)
