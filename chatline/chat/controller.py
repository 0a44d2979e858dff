"""ChatSessionController: the chat session lifecycle.

States: closed -> initializing -> waiting -> connected -> ended. A new
initialize_chat from ended (or closed) starts a fresh run.

All state changes go through _dispatch, a single writer that applies a
pure reducer to the current snapshot. Dispatches made from inside a
commit (for example by a subscriber reacting to a view) are queued and
applied in order once the current commit finishes. After each commit the
snapshot is handed to the persister and subscribers receive a ChatView.
"""

from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import partial

from chatline.chat import reducers
from chatline.chat.models import (
    ChatError,
    ChatErrorCode,
    ChatState,
    ChatStatus,
    ChatTranscript,
    ChatView,
    ConnectionStatus,
    Message,
    MessageSender,
    MessageStatus,
    MessageType,
    VisitorDraft,
    VisitorInfo,
)
from chatline.chat.persistence import StatePersister
from chatline.chat.reducers import Reducer
from chatline.config.models.chat import ChatConfig
from chatline.connection.manager import ConnectionManager
from chatline.errors import (
    InvalidMessageError,
    NoActiveSessionError,
    chat_error_from_exception,
)
from chatline.observability.logging import (
    bind_chat_context,
    clear_chat_context,
    get_logger,
)
from chatline.observability.metrics import (
    ACTIVE_CHAT_SESSIONS,
    CHAT_SESSIONS_ENDED,
    CHAT_SESSIONS_STARTED,
    MESSAGES_FAILED,
    MESSAGES_RECEIVED,
    MESSAGES_SENT,
)
from chatline.runtime.scheduler import AsyncioScheduler, Scheduler
from chatline.runtime.timers import Debouncer
from chatline.storage.store import SessionStore
from chatline.transport.base import (
    AgentStatusUpdate,
    ListenerSet,
    ParticipantDetails,
    Unsubscribe,
)

logger = get_logger(__name__)

AGENT_LEFT_MESSAGE = "The agent has left the chat. You may need to wait for another agent."


class ChatSessionController:
    """Drives one visitor's conversation against a ConnectionManager.

    The presentation layer reads `view` (or subscribes to it) and calls
    the command methods. Commands that talk to the transport are
    coroutines; inbound transport events arrive as plain callbacks.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        store: SessionStore,
        *,
        scheduler: Scheduler | None = None,
        config: ChatConfig | None = None,
        persister: StatePersister | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            connection: Connection manager owning the transport
            store: Session store for persistence across reloads
            scheduler: Timer scheduler for typing timeouts
            config: Chat behaviour settings
            persister: Post-commit persistence hook (one over store by default)
        """
        self._connection = connection
        self._store = store
        self._scheduler = scheduler or AsyncioScheduler()
        self._config = config or ChatConfig()
        self._persister = persister or StatePersister(store)

        self._state = ChatState()
        self._queue: deque[Reducer] = deque()
        self._dispatching = False
        self._loading = 0
        self._subscribers: ListenerSet[ChatView] = ListenerSet("chat_view")
        self._subscriptions: list[Unsubscribe] = []

        self._started = False
        self._closed = False
        self._ended_by_user = False
        # Bumped by every end; an initialize_chat begun before an end must not commit
        self._end_count = 0

        self._typing_stop = Debouncer(
            self._scheduler,
            self._config.typing_stop_delay_seconds,
            self._send_typing_stop,
        )
        self._agent_typing_expiry = Debouncer(
            self._scheduler,
            self._config.agent_typing_timeout_seconds,
            self._expire_agent_typing,
        )

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state.status is ChatStatus.CONNECTED

    @property
    def is_loading(self) -> bool:
        return self._loading > 0

    @property
    def view(self) -> ChatView:
        """Snapshot for the presentation layer."""
        return ChatView(
            chat_state=self._state,
            is_connected=self.is_connected,
            is_loading=self.is_loading,
        )

    def subscribe(self, listener: Callable[[ChatView], None]) -> Unsubscribe:
        """Receive a ChatView after every commit and loading change."""
        return self._subscribers.add(listener)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to connection events and rehydrate a stored session once."""
        if self._started:
            return
        self._started = True
        self._subscriptions = [
            self._connection.on_message_received(self._handle_message),
            self._connection.on_agent_status_change(self._handle_agent_status),
            self._connection.on_transport_status_change(self._handle_connection_status),
            self._connection.on_error(self._handle_transport_error),
        ]
        await self.restore_from_storage()

    async def close(self) -> None:
        """Unsubscribe, cancel timers and flush pending persistence."""
        if self._closed:
            return
        self._closed = True
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        self._typing_stop.cancel()
        self._agent_typing_expiry.cancel()
        await self._persister.flush()
        self._subscribers.clear()
        logger.info("chat_controller_closed", status=self._state.status.value)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def prepare_chat(self) -> None:
        """Enter initializing so the visitor can be asked for identity."""
        if self._state.status in (ChatStatus.CLOSED, ChatStatus.ENDED):
            self._dispatch(reducers.begin_initializing)

    async def initialize_chat(self, draft: VisitorDraft) -> ChatState:
        """Start a chat contact for the visitor.

        If the chat is ended while the handshake is in flight, the contact
        the transport hands back is ended as well and the chat stays ended.

        Raises:
            Exception: Whatever the store or transport raised; the chat is
                then ended with a recoverable CONNECTION_LOST error
        """
        with self._loading_scope():
            self._ended_by_user = False
            ends = self._end_count
            self._dispatch(reducers.begin_initializing)
            try:
                session_id = (
                    await self._store.load_session_id()
                    or await self._store.generate_session_id()
                )
                visitor = VisitorInfo(
                    name=draft.name,
                    email=draft.email,
                    session_id=session_id,
                )
                self._dispatch(partial(reducers.set_visitor, visitor=visitor))
                await self._store.save_visitor_info(visitor)
                if ends != self._end_count:
                    logger.info("chat_initialize_abandoned", stage="identity")
                    return self._state
                self._dispatch(partial(reducers.set_status, status=ChatStatus.WAITING))

                self._connection.resume_auto_reconnect()
                transport = await self._connection.require_transport()
                if ends != self._end_count:
                    logger.info("chat_initialize_abandoned", stage="transport")
                    return self._state
                session = await transport.initialize_chat(
                    ParticipantDetails(display_name=visitor.name, email=visitor.email)
                )
            except Exception as e:
                if ends != self._end_count:
                    logger.info(
                        "chat_initialize_abandoned",
                        stage="handshake",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return self._state
                error = ChatError(
                    code=ChatErrorCode.CONNECTION_LOST,
                    message=str(e) or "Failed to initialize chat",
                    recoverable=True,
                )
                self._dispatch(partial(reducers.end_session, error=error))
                CHAT_SESSIONS_ENDED.labels(reason="initialize_failed").inc()
                logger.error(
                    "chat_initialize_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            if ends != self._end_count or self._closed:
                # Ended mid-handshake: the new contact must not outlive the end
                await self._connection.disconnect()
                logger.info(
                    "chat_initialize_abandoned",
                    stage="connected",
                    participant_id=session.participant_id,
                )
                return self._state

            self._dispatch(partial(reducers.session_connected, session=session))
            CHAT_SESSIONS_STARTED.inc()
            bind_chat_context(session_id=session_id, participant_id=session.participant_id)
            logger.info("chat_initialized")
        return self._state

    async def send_message(self, content: str) -> Message:
        """Send a visitor message.

        The message is shown immediately as sending and moves to sent or
        failed once the transport answers.

        Raises:
            NoActiveSessionError: The chat is not connected
            InvalidMessageError: Content is empty or too long
            Exception: The transport error, after the message is marked failed
        """
        if self._state.status is not ChatStatus.CONNECTED:
            raise NoActiveSessionError()
        content = self._validate_content(content)

        message = Message(content=content, sender=MessageSender.VISITOR)
        self._dispatch(partial(reducers.append_message, message=message))
        await self._deliver(message)
        return self._state.find_message(message.id) or message

    async def retry_message(self, message_id: str) -> Message:
        """Resend a failed visitor message in place."""
        if self._state.status is not ChatStatus.CONNECTED:
            raise NoActiveSessionError()
        message = self._state.find_message(message_id)
        if (
            message is None
            or message.sender is not MessageSender.VISITOR
            or message.status is not MessageStatus.FAILED
        ):
            raise InvalidMessageError(f"Message {message_id} cannot be retried")

        self._dispatch(
            partial(
                reducers.update_message_status,
                message_id=message_id,
                status=MessageStatus.SENDING,
                only_from=MessageStatus.FAILED,
            )
        )
        self._dispatch(partial(reducers.set_error, error=None))
        await self._deliver(message)
        return self._state.find_message(message_id) or message

    async def end_chat(self) -> None:
        """End the conversation at the visitor's request.

        Transport failures are logged; the chat is finalized regardless.
        """
        if self._state.status is ChatStatus.CLOSED:
            return

        already_ended = self._state.status is ChatStatus.ENDED
        self._ended_by_user = True
        self._end_count += 1
        self._typing_stop.cancel()
        self._agent_typing_expiry.cancel()

        with self._loading_scope():
            # Transport failures are recorded on the manager, never raised here
            await self._connection.disconnect()
            self._connection.pause_auto_reconnect()

            self._dispatch(reducers.end_session)
            await self._store.save_chat_history(self._state.messages)
            await self._store.clear_session_id()
            await self._persister.flush()

        if not already_ended:
            CHAT_SESSIONS_ENDED.labels(reason="visitor").inc()
        logger.info("chat_ended", messages=len(self._state.messages))
        clear_chat_context()

    def mark_messages_as_read(self) -> None:
        self._dispatch(reducers.mark_read)

    def set_typing(self, is_typing: bool) -> None:
        """Report visitor typing to the agent. Never raises."""
        if self._state.status is not ChatStatus.CONNECTED:
            return
        transport = self._connection.transport
        if transport is None:
            return
        try:
            if is_typing:
                transport.handle_user_typing()
                self._typing_stop.trigger()
            else:
                self._typing_stop.cancel()
                transport.stop_user_typing()
        except Exception as e:
            logger.warning("typing_update_failed", error=str(e))

    async def update_visitor_info(
        self, *, name: str | None = None, email: str | None = None
    ) -> VisitorInfo:
        """Change the visitor's name or email mid-chat."""
        changes = {
            key: value
            for key, value in (("name", name), ("email", email))
            if value is not None
        }
        visitor = self._state.visitor.model_copy(update=changes)
        if not visitor.session_id:
            session_id = (
                await self._store.load_session_id()
                or await self._store.generate_session_id()
            )
            visitor = visitor.model_copy(update={"session_id": session_id})
        self._dispatch(partial(reducers.set_visitor, visitor=visitor))
        await self._store.save_visitor_info(visitor)
        return visitor

    async def clear_chat_history(self) -> None:
        """Drop the visible history and every stored chat key."""
        self._dispatch(reducers.clear_history)
        await self._persister.flush()
        await self._store.clear_all()

    async def restore_from_storage(self) -> bool:
        """Rehydrate a stored run if it is still active.

        Returns:
            True when state was restored
        """
        if not await self._store.has_active_session():
            return False
        saved = await self._store.load_chat_state()
        if saved is None:
            return False
        visitor = await self._store.load_visitor_info()
        self._dispatch(partial(reducers.restore, saved=saved, visitor=visitor))
        logger.info(
            "chat_state_restored",
            status=saved.status.value,
            messages=len(saved.messages),
        )
        return True

    async def load_transcript(self) -> ChatTranscript | None:
        """Transcript of the last finalized chat, if one was stored."""
        messages = await self._store.load_chat_history()
        if not messages:
            return None
        visitor = await self._store.load_visitor_info() or self._state.visitor
        return ChatTranscript(
            session_id=visitor.session_id,
            start_time=messages[0].timestamp,
            end_time=messages[-1].timestamp,
            messages=messages,
            agent=self._state.agent,
            visitor=visitor,
        )

    # -------------------------------------------------------------------------
    # Inbound events
    # -------------------------------------------------------------------------

    def _handle_message(self, message: Message) -> None:
        if self._closed:
            return
        MESSAGES_RECEIVED.labels(sender=message.sender.value).inc()
        self._dispatch(partial(reducers.receive_message, message=message))

    def _handle_agent_status(self, update: AgentStatusUpdate) -> None:
        if self._closed:
            return
        self._dispatch(partial(reducers.apply_agent_status, update=update))
        if update.is_typing:
            self._agent_typing_expiry.trigger()
        else:
            self._agent_typing_expiry.cancel()

    def _handle_connection_status(self, status: ConnectionStatus) -> None:
        if self._closed or self._ended_by_user or self._state.status is ChatStatus.CLOSED:
            logger.debug("connection_status_ignored", status=status.value)
            return
        previous = self._state.status
        self._dispatch(partial(reducers.apply_connection_status, status=status))
        if previous is not ChatStatus.ENDED and self._state.status is ChatStatus.ENDED:
            self._typing_stop.cancel()
            self._agent_typing_expiry.cancel()
            CHAT_SESSIONS_ENDED.labels(reason="transport").inc()
            logger.info("chat_ended_by_transport", status=status.value)

    def _handle_transport_error(self, error: ChatError) -> None:
        if self._closed:
            return
        logger.warning("transport_error_received", code=error.code.value)
        self._dispatch(partial(reducers.set_error, error=error))

        if error.code is ChatErrorCode.SESSION_TIMEOUT:
            if self._state.status not in (ChatStatus.CLOSED, ChatStatus.ENDED):
                self._end_count += 1
                self._connection.pause_auto_reconnect()
                self._typing_stop.cancel()
                self._agent_typing_expiry.cancel()
                self._dispatch(partial(reducers.end_session, error=error))
                CHAT_SESSIONS_ENDED.labels(reason="timeout").inc()
                clear_chat_context()
        elif error.code is ChatErrorCode.AGENT_DISCONNECTED:
            notice = Message(
                content=AGENT_LEFT_MESSAGE,
                sender=MessageSender.SYSTEM,
                status=MessageStatus.DELIVERED,
                type=MessageType.SYSTEM,
            )
            self._dispatch(partial(reducers.append_message, message=notice))

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def _send_typing_stop(self) -> None:
        if self._closed:
            return
        transport = self._connection.transport
        if transport is None:
            return
        try:
            transport.stop_user_typing()
        except Exception as e:
            logger.warning("typing_stop_failed", error=str(e))

    def _expire_agent_typing(self) -> None:
        if self._closed:
            return
        self._dispatch(reducers.clear_agent_typing)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _validate_content(self, content: str) -> str:
        text = content.strip()
        if not text:
            raise InvalidMessageError("Message cannot be empty")
        if len(text) > self._config.max_message_length:
            raise InvalidMessageError(
                f"Message exceeds {self._config.max_message_length} characters"
            )
        return text

    async def _deliver(self, message: Message) -> None:
        with self._loading_scope():
            try:
                transport = await self._connection.require_transport()
                await transport.send_message(message.content, message_id=message.id)
            except Exception as e:
                self._dispatch(
                    partial(
                        reducers.update_message_status,
                        message_id=message.id,
                        status=MessageStatus.FAILED,
                    )
                )
                error = chat_error_from_exception(
                    e, ChatErrorCode.MESSAGE_SEND_FAILED, "Failed to send message"
                )
                self._dispatch(partial(reducers.set_error, error=error))
                MESSAGES_FAILED.inc()
                logger.warning(
                    "message_send_failed",
                    message_id=message.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            self._dispatch(
                partial(
                    reducers.update_message_status,
                    message_id=message.id,
                    status=MessageStatus.SENT,
                    only_from=MessageStatus.SENDING,
                )
            )
            MESSAGES_SENT.inc()

    @contextmanager
    def _loading_scope(self) -> Iterator[None]:
        self._loading += 1
        if self._loading == 1:
            self._notify()
        try:
            yield
        finally:
            self._loading -= 1
            if self._loading == 0:
                self._notify()

    def _dispatch(self, reducer: Reducer) -> ChatState:
        self._queue.append(reducer)
        if self._dispatching:
            return self._state

        self._dispatching = True
        try:
            while self._queue:
                previous = self._state
                current = self._queue.popleft()(previous)
                if current is previous:
                    continue
                self._state = current
                self._after_commit(previous, current)
        finally:
            # A raising reducer drops whatever was queued behind it
            self._queue.clear()
            self._dispatching = False
        return self._state

    def _after_commit(self, previous: ChatState, current: ChatState) -> None:
        if previous.status is not current.status:
            logger.info(
                "chat_status_changed",
                previous=previous.status.value,
                status=current.status.value,
            )
            if current.status is ChatStatus.CONNECTED:
                ACTIVE_CHAT_SESSIONS.inc()
            elif previous.status is ChatStatus.CONNECTED:
                ACTIVE_CHAT_SESSIONS.dec()
        if current.status is not ChatStatus.CLOSED:
            self._persister(current)
        self._notify()

    def _notify(self) -> None:
        self._subscribers.emit(self.view)
