"""SessionStore: best-effort persistence of chat state across reloads.

Persistence is never load-bearing for correctness. Every read and write
catches backend and serialization failures, logs them, and falls back to
a neutral value so the chat keeps working with storage unavailable.
"""

import time
from uuid import uuid4

from pydantic import TypeAdapter

from chatline.chat.models import (
    ChatState,
    ChatStatus,
    Message,
    VisitorInfo,
)
from chatline.errors import StorageBackendError
from chatline.observability.logging import get_logger
from chatline.storage.backend import KeyValueBackend

logger = get_logger(__name__)

_HISTORY_ADAPTER: TypeAdapter[list[Message]] = TypeAdapter(list[Message])

# A stored session in one of these states is eligible for rehydration
ACTIVE_STATUSES: frozenset[ChatStatus] = frozenset({
    ChatStatus.CONNECTED,
    ChatStatus.WAITING,
})

# Failures that persistence absorbs; pydantic's ValidationError is a ValueError
_TOLERATED = (StorageBackendError, ValueError)


def generate_session_id() -> str:
    """Create a collision-improbable browser session id."""
    return f"chat-{int(time.time() * 1000)}-{uuid4().hex[:9]}"


class SessionStore:
    """Persists chat state, visitor identity, session id and transcripts.

    Key structure:
    - {prefix}:chat-state - Serialized ChatState (absent while closed)
    - {prefix}:visitor-info - Serialized VisitorInfo
    - {prefix}:session-id - Plain session id string
    - {prefix}:chat-history - Finalized transcript of the last chat
    """

    def __init__(self, backend: KeyValueBackend, key_prefix: str = "chatline") -> None:
        """Initialize session store.

        Args:
            backend: Key/value backend to persist into
            key_prefix: Namespace for every key this store writes
        """
        self._backend = backend
        self._prefix = key_prefix

    @property
    def chat_state_key(self) -> str:
        return f"{self._prefix}:chat-state"

    @property
    def visitor_info_key(self) -> str:
        return f"{self._prefix}:visitor-info"

    @property
    def session_id_key(self) -> str:
        return f"{self._prefix}:session-id"

    @property
    def chat_history_key(self) -> str:
        return f"{self._prefix}:chat-history"

    # -------------------------------------------------------------------------
    # Chat state
    # -------------------------------------------------------------------------

    async def save_chat_state(self, state: ChatState) -> None:
        """Persist a chat state snapshot; closed states are not persisted."""
        if state.status is ChatStatus.CLOSED:
            return
        try:
            await self._backend.set(self.chat_state_key, state.model_dump_json())
        except _TOLERATED as e:
            logger.warning("chat_state_save_failed", error=str(e))

    async def load_chat_state(self) -> ChatState | None:
        """Load the persisted chat state, if any."""
        try:
            data = await self._backend.get(self.chat_state_key)
            if not data:
                return None
            return ChatState.model_validate_json(data)
        except _TOLERATED as e:
            logger.warning("chat_state_load_failed", error=str(e))
            return None

    async def clear_chat_state(self) -> None:
        """Remove the persisted chat state."""
        await self._delete(self.chat_state_key, "chat_state_clear_failed")

    # -------------------------------------------------------------------------
    # Visitor identity
    # -------------------------------------------------------------------------

    async def save_visitor_info(self, visitor: VisitorInfo) -> None:
        """Persist visitor identity."""
        try:
            await self._backend.set(self.visitor_info_key, visitor.model_dump_json())
        except _TOLERATED as e:
            logger.warning("visitor_info_save_failed", error=str(e))

    async def load_visitor_info(self) -> VisitorInfo | None:
        """Load persisted visitor identity, if any."""
        try:
            data = await self._backend.get(self.visitor_info_key)
            if not data:
                return None
            return VisitorInfo.model_validate_json(data)
        except _TOLERATED as e:
            logger.warning("visitor_info_load_failed", error=str(e))
            return None

    async def clear_visitor_info(self) -> None:
        """Remove persisted visitor identity."""
        await self._delete(self.visitor_info_key, "visitor_info_clear_failed")

    # -------------------------------------------------------------------------
    # Session id
    # -------------------------------------------------------------------------

    async def generate_session_id(self) -> str:
        """Generate a new session id and persist it.

        The id is returned even when it could not be persisted.
        """
        session_id = generate_session_id()
        try:
            await self._backend.set(self.session_id_key, session_id)
        except _TOLERATED as e:
            logger.warning("session_id_save_failed", error=str(e))
        return session_id

    async def load_session_id(self) -> str | None:
        """Load the persisted session id, if any."""
        try:
            return await self._backend.get(self.session_id_key) or None
        except _TOLERATED as e:
            logger.warning("session_id_load_failed", error=str(e))
            return None

    async def clear_session_id(self) -> None:
        """Remove the persisted session id."""
        await self._delete(self.session_id_key, "session_id_clear_failed")

    # -------------------------------------------------------------------------
    # Transcripts
    # -------------------------------------------------------------------------

    async def save_chat_history(self, messages: list[Message] | tuple[Message, ...]) -> None:
        """Persist the finalized transcript of a chat."""
        try:
            data = _HISTORY_ADAPTER.dump_json(list(messages)).decode("utf-8")
            await self._backend.set(self.chat_history_key, data)
        except _TOLERATED as e:
            logger.warning("chat_history_save_failed", error=str(e))

    async def load_chat_history(self) -> list[Message]:
        """Load the last finalized transcript; empty when none."""
        try:
            data = await self._backend.get(self.chat_history_key)
            if not data:
                return []
            return _HISTORY_ADAPTER.validate_json(data)
        except _TOLERATED as e:
            logger.warning("chat_history_load_failed", error=str(e))
            return []

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------

    async def has_active_session(self) -> bool:
        """Whether the persisted chat is still live and may be rehydrated."""
        state = await self.load_chat_state()
        return state is not None and state.status in ACTIVE_STATUSES

    async def clear_all(self) -> None:
        """Remove every chat key. Widget preferences are left untouched."""
        await self.clear_chat_state()
        await self.clear_visitor_info()
        await self.clear_session_id()
        await self._delete(self.chat_history_key, "chat_history_clear_failed")

    async def _delete(self, key: str, event: str) -> None:
        try:
            await self._backend.delete(key)
        except _TOLERATED as e:
            logger.warning(event, key=key, error=str(e))
