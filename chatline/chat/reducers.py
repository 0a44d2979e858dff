"""Pure chat state transitions.

Each reducer takes the current ChatState snapshot (plus arguments) and
returns the next one. Reducers never perform I/O and return the same
object when nothing changes, which lets the controller skip a commit.
"""

from collections.abc import Callable

from chatline.chat.models import (
    AgentInfo,
    ChatError,
    ChatState,
    ChatStatus,
    ConnectionStatus,
    Message,
    MessageStatus,
    TransportSession,
    VisitorInfo,
)
from chatline.transport.base import AgentStatusUpdate

Reducer = Callable[[ChatState], ChatState]

# Transport link status -> chat status
CONNECTION_TO_CHAT_STATUS: dict[ConnectionStatus, ChatStatus] = {
    ConnectionStatus.CONNECTED: ChatStatus.CONNECTED,
    ConnectionStatus.DISCONNECTED: ChatStatus.ENDED,
    ConnectionStatus.FAILED: ChatStatus.ENDED,
    ConnectionStatus.CONNECTING: ChatStatus.WAITING,
}


def _replace(state: ChatState, **changes) -> ChatState:
    if all(getattr(state, key) == value for key, value in changes.items()):
        return state
    return state.model_copy(update=changes)


# =============================================================================
# Lifecycle
# =============================================================================


def begin_initializing(state: ChatState) -> ChatState:
    """Start a new run: clear the previous error and enter initializing."""
    return _replace(state, status=ChatStatus.INITIALIZING, error=None)


def set_status(
    state: ChatState, status: ChatStatus, error: ChatError | None = None
) -> ChatState:
    if error is None:
        return _replace(state, status=status)
    return _replace(state, status=status, error=error)


def session_connected(state: ChatState, session: TransportSession) -> ChatState:
    return _replace(state, status=ChatStatus.CONNECTED, session=session, error=None)


def end_session(state: ChatState, error: ChatError | None = None) -> ChatState:
    """Finalize the run. History and agent are kept for the transcript."""
    changes: dict = {
        "status": ChatStatus.ENDED,
        "session": None,
        "unread_count": 0,
        "is_typing": False,
    }
    if error is not None:
        changes["error"] = error
    return _replace(state, **changes)


def apply_connection_status(state: ChatState, status: ConnectionStatus) -> ChatState:
    """Map a transport link status onto the chat lifecycle.

    Reconnecting has no chat counterpart and is ignored. The session is
    kept on a link loss so a later connected report resumes the run.
    """
    target = CONNECTION_TO_CHAT_STATUS.get(status)
    if target is None:
        return state
    if target is ChatStatus.ENDED:
        return _replace(state, status=target, is_typing=False)
    return _replace(state, status=target)


# =============================================================================
# Visitor
# =============================================================================


def set_visitor(state: ChatState, visitor: VisitorInfo) -> ChatState:
    return _replace(state, visitor=visitor)


# =============================================================================
# Messages
# =============================================================================


def append_message(state: ChatState, message: Message) -> ChatState:
    return state.model_copy(update={"messages": (*state.messages, message)})


def update_message_status(
    state: ChatState,
    message_id: str,
    status: MessageStatus,
    *,
    only_from: MessageStatus | None = None,
) -> ChatState:
    """Change one message's delivery status.

    With only_from set the change applies only when the message is
    currently in that status, so a late acknowledgement cannot downgrade
    a server-confirmed message.
    """
    changed = False
    messages = []
    for message in state.messages:
        if (
            message.id == message_id
            and message.status is not status
            and (only_from is None or message.status is only_from)
        ):
            message = message.model_copy(update={"status": status})
            changed = True
        messages.append(message)
    if not changed:
        return state
    return state.model_copy(update={"messages": tuple(messages)})


def receive_message(state: ChatState, message: Message) -> ChatState:
    """Apply an inbound message.

    A new id is appended and counts as unread. A known id is the server
    copy of a message already shown and is merged in place.
    """
    if state.find_message(message.id) is None:
        return state.model_copy(
            update={
                "messages": (*state.messages, message),
                "unread_count": state.unread_count + 1,
            }
        )

    merged = tuple(
        existing.model_copy(update={"status": message.status, "content": message.content})
        if existing.id == message.id
        else existing
        for existing in state.messages
    )
    return _replace(state, messages=merged)


def clear_history(state: ChatState) -> ChatState:
    return _replace(state, messages=(), unread_count=0)


def mark_read(state: ChatState) -> ChatState:
    return _replace(state, unread_count=0)


# =============================================================================
# Agent
# =============================================================================


def apply_agent_status(state: ChatState, update: AgentStatusUpdate) -> ChatState:
    """Replace the agent wholesale and mirror its typing flag."""
    agent = AgentInfo(
        id=update.agent_id,
        name=update.name or "Agent",
        profile_image=update.profile_image,
        status=update.status,
        is_typing=update.is_typing,
    )
    return _replace(state, agent=agent, is_typing=update.is_typing)


def clear_agent_typing(state: ChatState) -> ChatState:
    if not state.is_typing:
        return state
    agent = state.agent.model_copy(update={"is_typing": False}) if state.agent else None
    return state.model_copy(update={"is_typing": False, "agent": agent})


# =============================================================================
# Errors and restore
# =============================================================================


def set_error(state: ChatState, error: ChatError | None) -> ChatState:
    return _replace(state, error=error)


def restore(state: ChatState, saved: ChatState, visitor: VisitorInfo | None) -> ChatState:  # noqa: ARG001
    """Rehydrate a persisted run, preferring the separately stored visitor."""
    restored = saved.model_copy(update={"is_typing": False})
    if visitor is not None:
        restored = restored.model_copy(update={"visitor": visitor})
    return restored

