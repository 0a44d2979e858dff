"""Tests for WidgetUIState."""

import asyncio

import pytest
import pytest_asyncio

from chatline.chat.controller import ChatSessionController
from chatline.chat.models import (
    ChatState,
    ChatStatus,
    ConnectionStatus,
    VisitorDraft,
    VisitorInfo,
)
from chatline.config.models.widget import PositionConfig, WidgetConfig
from chatline.connection.manager import ConnectionManager
from chatline.errors import VisitorInfoRequiredError
from chatline.runtime.scheduler import ManualScheduler
from chatline.storage.preferences import PreferenceStore
from chatline.storage.store import SessionStore
from chatline.widget.models import WidgetPosition, WidgetPreferences, WidgetPresentation
from chatline.widget.state import WidgetUIState


@pytest.fixture
def ui(preference_store: PreferenceStore, session_store: SessionStore) -> WidgetUIState:
    return WidgetUIState(preference_store, session_store)


@pytest_asyncio.fixture
async def controller(
    connection: ConnectionManager,
    session_store: SessionStore,
    scheduler: ManualScheduler,
):
    controller = ChatSessionController(connection, session_store, scheduler=scheduler)
    await controller.start()
    yield controller
    await controller.close()


# =============================================================================
# Presentation
# =============================================================================


class TestPresentation:
    """Tests for open/close/minimize and preferences."""

    @pytest.mark.asyncio
    async def test_initially_closed_with_config_defaults(
        self, preference_store: PreferenceStore, session_store: SessionStore
    ) -> None:
        config = WidgetConfig(position=PositionConfig(bottom="8px", right=None, left="8px"))
        ui = WidgetUIState(preference_store, session_store, config)

        assert ui.presentation is WidgetPresentation.CLOSED
        assert ui.position == WidgetPosition(bottom="8px", right=None, left="8px")

    @pytest.mark.asyncio
    async def test_minimize_persists_flag(
        self, ui: WidgetUIState, preference_store: PreferenceStore
    ) -> None:
        await ui.minimize_widget()

        assert ui.is_minimized is True
        assert (await preference_store.load()).minimized is True

        await ui.open_widget()

        assert ui.is_open is True
        assert (await preference_store.load()).minimized is False

    @pytest.mark.asyncio
    async def test_toggle(self, ui: WidgetUIState) -> None:
        await ui.toggle_widget()
        assert ui.is_open is True

        await ui.toggle_widget()
        assert ui.presentation is WidgetPresentation.CLOSED

        await ui.minimize_widget()
        await ui.toggle_widget()
        assert ui.presentation is WidgetPresentation.CLOSED

    @pytest.mark.asyncio
    async def test_update_position_merges(
        self, ui: WidgetUIState, preference_store: PreferenceStore
    ) -> None:
        position = await ui.update_position(bottom="50px")

        assert position == WidgetPosition(bottom="50px", right="20px", left=None)
        assert (await preference_store.load()).position == position

    @pytest.mark.asyncio
    async def test_update_preferences_minimized_moves_widget(self, ui: WidgetUIState) -> None:
        await ui.update_preferences(minimized=True, theme="dark")

        assert ui.is_minimized is True
        assert ui.preferences.theme == "dark"

        await ui.update_preferences(minimized=False)

        assert ui.presentation is WidgetPresentation.CLOSED

    @pytest.mark.asyncio
    async def test_reset_preferences(
        self, ui: WidgetUIState, preference_store: PreferenceStore
    ) -> None:
        await ui.update_preferences(theme="dark")

        await ui.reset_preferences()

        assert ui.preferences == WidgetPreferences()
        assert await preference_store.load() is None

    @pytest.mark.asyncio
    async def test_preferences_do_not_touch_chat_keys(
        self, ui: WidgetUIState, session_store: SessionStore
    ) -> None:
        await ui.set_visitor_info(VisitorDraft(name="Ann"))

        await ui.update_preferences(theme="dark")
        await ui.reset_preferences()

        assert (await session_store.load_visitor_info()).name == "Ann"


# =============================================================================
# Visitor identity
# =============================================================================


class TestVisitorInfo:
    """Tests for visitor identity management."""

    @pytest.mark.asyncio
    async def test_set_uses_stored_session_id(
        self, ui: WidgetUIState, session_store: SessionStore
    ) -> None:
        session_id = await session_store.generate_session_id()

        visitor = await ui.set_visitor_info(VisitorDraft(name="Ann", email="ann@example.com"))

        assert visitor.session_id == session_id
        assert ui.has_visitor_info is True
        assert await session_store.load_visitor_info() == visitor

    @pytest.mark.asyncio
    async def test_set_generates_session_id(
        self, ui: WidgetUIState, session_store: SessionStore
    ) -> None:
        visitor = await ui.set_visitor_info(VisitorDraft(name="Ann"))

        assert visitor.session_id.startswith("chat-")
        assert await session_store.load_session_id() == visitor.session_id

    @pytest.mark.asyncio
    async def test_update_before_identity_is_noop(self, ui: WidgetUIState) -> None:
        assert await ui.update_visitor_info(name="Bo") is None

    @pytest.mark.asyncio
    async def test_update_and_clear(
        self, ui: WidgetUIState, session_store: SessionStore
    ) -> None:
        await ui.set_visitor_info(VisitorDraft(name="Ann"))

        updated = await ui.update_visitor_info(email="ann@example.com")
        assert updated.email == "ann@example.com"

        await ui.clear_visitor_info()
        assert ui.has_visitor_info is False
        assert await session_store.load_visitor_info() is None

    @pytest.mark.asyncio
    async def test_generate_new_session_carries_identity(
        self, ui: WidgetUIState, session_store: SessionStore
    ) -> None:
        visitor = await ui.set_visitor_info(VisitorDraft(name="Ann"))

        session_id = await ui.generate_new_session()

        assert session_id != visitor.session_id
        assert ui.visitor_info.session_id == session_id
        assert (await session_store.load_visitor_info()).session_id == session_id

    @pytest.mark.asyncio
    async def test_requires_visitor_info_gate(self, ui: WidgetUIState) -> None:
        assert ui.requires_visitor_info(ChatStatus.INITIALIZING) is False

        await ui.open_widget()
        assert ui.requires_visitor_info(ChatStatus.INITIALIZING) is True
        assert ui.requires_visitor_info(ChatStatus.CONNECTED) is False

        await ui.set_visitor_info(VisitorDraft(name="Ann"))
        assert ui.requires_visitor_info(ChatStatus.INITIALIZING) is False


# =============================================================================
# Restore and reset
# =============================================================================


class TestRestoreState:
    """Tests for page-load restore and full reset."""

    @pytest.mark.asyncio
    async def test_restores_minimized_not_open(
        self,
        ui: WidgetUIState,
        preference_store: PreferenceStore,
        session_store: SessionStore,
    ) -> None:
        await preference_store.save(WidgetPreferences(minimized=True, theme="dark"))
        visitor = VisitorInfo(name="Ann", session_id="chat-1")
        await session_store.save_visitor_info(visitor)
        await session_store.save_chat_state(
            ChatState(status=ChatStatus.CONNECTED, visitor=visitor)
        )

        await ui.restore_state()

        assert ui.is_minimized is True
        assert ui.preferences.theme == "dark"
        assert ui.visitor_info == visitor
        assert ui.session_id == "chat-1"
        assert ui.has_active_chat is True

    @pytest.mark.asyncio
    async def test_restore_without_visitor(
        self, ui: WidgetUIState, session_store: SessionStore
    ) -> None:
        session_id = await session_store.generate_session_id()

        await ui.restore_state()

        assert ui.presentation is WidgetPresentation.CLOSED
        assert ui.visitor_info is None
        assert ui.session_id == session_id
        assert ui.has_active_chat is False

    @pytest.mark.asyncio
    async def test_clear_all_data(
        self,
        ui: WidgetUIState,
        preference_store: PreferenceStore,
        session_store: SessionStore,
    ) -> None:
        await ui.set_visitor_info(VisitorDraft(name="Ann"))
        await ui.minimize_widget()

        await ui.clear_all_data()

        assert ui.presentation is WidgetPresentation.CLOSED
        assert ui.visitor_info is None
        assert ui.session_id is None
        assert await preference_store.load() is None
        assert await session_store.load_session_id() is None


# =============================================================================
# Chat start
# =============================================================================


class TestStartChat:
    """Tests for starting a chat through the widget."""

    @pytest.mark.asyncio
    async def test_requires_identity(
        self, ui: WidgetUIState, controller: ChatSessionController
    ) -> None:
        with pytest.raises(VisitorInfoRequiredError):
            await ui.start_chat(controller)

        assert controller.state.status is ChatStatus.CLOSED

    @pytest.mark.asyncio
    async def test_with_draft(
        self, ui: WidgetUIState, controller: ChatSessionController
    ) -> None:
        state = await ui.start_chat(controller, VisitorDraft(name="Ann"))

        assert state.status is ChatStatus.CONNECTED
        assert state.visitor.session_id == ui.session_id
        assert ui.has_active_chat is True

    @pytest.mark.asyncio
    async def test_with_stored_identity(
        self, ui: WidgetUIState, controller: ChatSessionController
    ) -> None:
        await ui.set_visitor_info(VisitorDraft(name="Ann", email="ann@example.com"))

        state = await ui.start_chat(controller)

        assert state.visitor.name == "Ann"
        assert state.visitor.email == "ann@example.com"

    @pytest.mark.asyncio
    async def test_end_clears_active_chat(
        self, ui: WidgetUIState, controller: ChatSessionController
    ) -> None:
        await ui.start_chat(controller, VisitorDraft(name="Ann"))
        assert ui.has_active_chat is True

        await controller.end_chat()

        assert ui.has_active_chat is False

    @pytest.mark.asyncio
    async def test_link_loss_and_recovery_follow_controller(
        self, ui: WidgetUIState, controller: ChatSessionController, transport_factory
    ) -> None:
        await ui.start_chat(controller, VisitorDraft(name="Ann"))

        transport_factory.latest.simulate_connection_status(ConnectionStatus.DISCONNECTED)
        assert ui.has_active_chat is False

        transport_factory.latest.simulate_connection_status(ConnectionStatus.CONNECTED)
        assert ui.has_active_chat is True

    @pytest.mark.asyncio
    async def test_unbind_stops_following(
        self, ui: WidgetUIState, controller: ChatSessionController
    ) -> None:
        unbind = ui.bind_controller(controller)
        await controller.initialize_chat(VisitorDraft(name="Ann"))
        assert ui.has_active_chat is True

        unbind()
        await controller.end_chat()

        assert ui.has_active_chat is True


class TestClearThroughController:
    """Tests for clearing data while a chat is bound."""

    @pytest.mark.asyncio
    async def test_pending_snapshot_does_not_survive_clear(
        self,
        ui: WidgetUIState,
        controller: ChatSessionController,
        session_store: SessionStore,
        transport_factory,
    ) -> None:
        await ui.start_chat(controller, VisitorDraft(name="Ann"))
        # Commits a snapshot the persister has not written yet
        transport_factory.latest.simulate_message("hello")

        await ui.clear_all_data()
        for _ in range(5):
            await asyncio.sleep(0)

        assert await session_store.load_chat_state() is None
        assert await session_store.load_visitor_info() is None
        assert await session_store.has_active_session() is False
        assert controller.state.messages == ()

    @pytest.mark.asyncio
    async def test_without_controller_clears_store(
        self, ui: WidgetUIState, session_store: SessionStore
    ) -> None:
        await session_store.save_chat_state(ChatState(status=ChatStatus.CONNECTED))

        await ui.clear_all_data()

        assert await session_store.load_chat_state() is None
