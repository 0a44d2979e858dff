"""WidgetUIState: presentation flags, preferences and the visitor gate.

Presentation (closed, open, minimized) is independent of chat status.
Preferences persist through PreferenceStore only; visitor identity and
session id persist through SessionStore. Once a controller is bound,
has_active_chat follows its views.
"""

from typing import TYPE_CHECKING, Any

from chatline.chat.models import ChatState, ChatStatus, ChatView, VisitorDraft, VisitorInfo
from chatline.config.models.widget import WidgetConfig
from chatline.errors import VisitorInfoRequiredError
from chatline.observability.logging import get_logger
from chatline.storage.preferences import PreferenceStore
from chatline.storage.store import ACTIVE_STATUSES, SessionStore
from chatline.transport.base import Unsubscribe
from chatline.widget.models import WidgetPosition, WidgetPreferences, WidgetPresentation

if TYPE_CHECKING:
    from chatline.chat.controller import ChatSessionController

logger = get_logger(__name__)


class WidgetUIState:
    """Holds what the widget shell needs between renders."""

    def __init__(
        self,
        preferences_store: PreferenceStore,
        session_store: SessionStore,
        config: WidgetConfig | None = None,
    ) -> None:
        self._preferences_store = preferences_store
        self._session_store = session_store
        self._defaults = WidgetPreferences.from_config(config or WidgetConfig())

        self.presentation = WidgetPresentation.CLOSED
        self.preferences = self._defaults
        self.visitor_info: VisitorInfo | None = None
        self.session_id: str | None = None
        self.has_active_chat = False
        self._controller: "ChatSessionController | None" = None
        self._unsubscribe: Unsubscribe | None = None

    @property
    def is_open(self) -> bool:
        return self.presentation is WidgetPresentation.OPEN

    @property
    def is_minimized(self) -> bool:
        return self.presentation is WidgetPresentation.MINIMIZED

    @property
    def position(self) -> WidgetPosition:
        return self.preferences.position

    @property
    def has_visitor_info(self) -> bool:
        return self.visitor_info is not None and self.visitor_info.has_identity

    def requires_visitor_info(self, chat_status: ChatStatus) -> bool:
        """Whether the identity form must be shown before chatting."""
        return (
            self.is_open
            and not self.has_visitor_info
            and chat_status is ChatStatus.INITIALIZING
        )

    # -------------------------------------------------------------------------
    # Presentation
    # -------------------------------------------------------------------------

    async def open_widget(self) -> None:
        self.presentation = WidgetPresentation.OPEN
        await self._save_preferences(minimized=False)

    async def close_widget(self) -> None:
        self.presentation = WidgetPresentation.CLOSED
        await self._save_preferences(minimized=False)

    async def minimize_widget(self) -> None:
        self.presentation = WidgetPresentation.MINIMIZED
        await self._save_preferences(minimized=True)

    async def toggle_widget(self) -> None:
        """Close when open or minimized, otherwise open."""
        if self.presentation is WidgetPresentation.CLOSED:
            await self.open_widget()
        else:
            await self.close_widget()

    async def update_position(
        self,
        *,
        bottom: str | None = None,
        right: str | None = None,
        left: str | None = None,
    ) -> WidgetPosition:
        changes = {
            key: value
            for key, value in (("bottom", bottom), ("right", right), ("left", left))
            if value is not None
        }
        position = self.preferences.position.model_copy(update=changes)
        await self._save_preferences(position=position)
        return position

    async def update_preferences(self, **changes: Any) -> WidgetPreferences:
        """Merge preference changes; a minimized flag also moves the widget."""
        updated = WidgetPreferences.model_validate(
            {**self.preferences.model_dump(), **changes}
        )
        self.preferences = updated
        await self._preferences_store.save(updated)
        if "minimized" in changes:
            if updated.minimized:
                self.presentation = WidgetPresentation.MINIMIZED
            elif self.is_minimized:
                self.presentation = WidgetPresentation.CLOSED
        return updated

    async def reset_preferences(self) -> None:
        self.preferences = self._defaults
        await self._preferences_store.clear()

    async def _save_preferences(self, **changes: Any) -> None:
        self.preferences = self.preferences.model_copy(update=changes)
        await self._preferences_store.save(self.preferences)

    # -------------------------------------------------------------------------
    # Visitor identity
    # -------------------------------------------------------------------------

    async def set_visitor_info(self, draft: VisitorDraft) -> VisitorInfo:
        """Store the visitor identity under the current (or a new) session id."""
        session_id = self.session_id or await self._session_store.load_session_id()
        if not session_id:
            session_id = await self._session_store.generate_session_id()
        self.session_id = session_id
        self.visitor_info = VisitorInfo(
            name=draft.name,
            email=draft.email,
            session_id=session_id,
        )
        await self._session_store.save_visitor_info(self.visitor_info)
        return self.visitor_info

    async def update_visitor_info(
        self, *, name: str | None = None, email: str | None = None
    ) -> VisitorInfo | None:
        """Change stored identity; a no-op before identity is known."""
        if self.visitor_info is None:
            return None
        changes = {
            key: value
            for key, value in (("name", name), ("email", email))
            if value is not None
        }
        self.visitor_info = self.visitor_info.model_copy(update=changes)
        await self._session_store.save_visitor_info(self.visitor_info)
        return self.visitor_info

    async def clear_visitor_info(self) -> None:
        self.visitor_info = None
        await self._session_store.clear_visitor_info()

    async def generate_new_session(self) -> str:
        """Start a new browser session id, carrying identity over."""
        self.session_id = await self._session_store.generate_session_id()
        if self.visitor_info is not None:
            self.visitor_info = self.visitor_info.model_copy(
                update={"session_id": self.session_id}
            )
            await self._session_store.save_visitor_info(self.visitor_info)
        logger.info("widget_session_generated", session_id=self.session_id)
        return self.session_id

    # -------------------------------------------------------------------------
    # Restore and reset
    # -------------------------------------------------------------------------

    async def restore_state(self) -> None:
        """Reload preferences, identity and session after a page load.

        A stored minimized flag restores the widget minimized; it is never
        restored open.
        """
        saved = await self._preferences_store.load()
        if saved is not None:
            self.preferences = saved
            if saved.minimized:
                self.presentation = WidgetPresentation.MINIMIZED

        self.visitor_info = await self._session_store.load_visitor_info()
        if self.visitor_info is not None:
            self.session_id = self.visitor_info.session_id
        else:
            self.session_id = await self._session_store.load_session_id()

        self.has_active_chat = await self._session_store.has_active_session()
        logger.debug(
            "widget_state_restored",
            presentation=self.presentation.value,
            has_active_chat=self.has_active_chat,
        )

    async def clear_all_data(self) -> None:
        """Forget chat data and preferences, returning to defaults.

        With a bound controller the clear goes through it, so a snapshot
        still waiting to be persisted cannot bring chat state back.
        """
        if self._controller is not None:
            await self._controller.clear_chat_history()
        else:
            await self._session_store.clear_all()
        await self._preferences_store.clear()
        self.visitor_info = None
        self.session_id = None
        self.preferences = self._defaults
        self.presentation = WidgetPresentation.CLOSED
        self.has_active_chat = False

    # -------------------------------------------------------------------------
    # Chat
    # -------------------------------------------------------------------------

    def bind_controller(self, controller: "ChatSessionController") -> Unsubscribe:
        """Follow a controller's views; replaces any earlier binding."""
        self.unbind_controller()
        self._controller = controller
        self._unsubscribe = controller.subscribe(self._on_chat_view)
        return self.unbind_controller

    def unbind_controller(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = None
        self._controller = None

    def _on_chat_view(self, view: ChatView) -> None:
        self.has_active_chat = view.chat_state.status in ACTIVE_STATUSES

    async def start_chat(
        self,
        controller: "ChatSessionController",
        draft: VisitorDraft | None = None,
    ) -> ChatState:
        """Start a chat once the visitor is identified.

        Raises:
            VisitorInfoRequiredError: No draft given and no identity stored
        """
        if draft is None:
            if not self.has_visitor_info:
                raise VisitorInfoRequiredError()
            draft = VisitorDraft(name=self.visitor_info.name, email=self.visitor_info.email)
        else:
            await self.set_visitor_info(draft)

        if self._controller is not controller:
            self.bind_controller(controller)
        return await controller.initialize_chat(draft)
