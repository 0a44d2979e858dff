"""Bootstrap module for wiring a chat widget from configuration.

Builds the full Chatline stack from Settings:
- Logging from the observability section
- The key/value backend (in-memory or Redis) and the stores over it
- The connection manager with its reconnect policy
- The chat session controller and widget UI state

Example usage:

    from chatline.bootstrap import create_chat_widget
    from chatline.config import get_settings

    widget = create_chat_widget(get_settings(), MyTransport)
    await widget.start()

    await widget.ui.start_chat(widget.controller, VisitorDraft(name="Ann"))
    await widget.controller.send_message("Hello!")

    await widget.close()
"""

from dataclasses import dataclass

from prometheus_client import start_http_server

from chatline.chat.controller import ChatSessionController
from chatline.config.settings import Settings
from chatline.connection.manager import ConnectionManager, TransportFactory
from chatline.observability.logging import get_logger, setup_logging
from chatline.runtime.scheduler import AsyncioScheduler, Scheduler
from chatline.storage.backend import KeyValueBackend
from chatline.storage.backends import InMemoryBackend, RedisBackend
from chatline.storage.preferences import PreferenceStore
from chatline.storage.store import SessionStore
from chatline.widget.state import WidgetUIState

logger = get_logger(__name__)


@dataclass
class ChatWidget:
    """Everything a presentation layer needs, wired together."""

    settings: Settings
    scheduler: Scheduler
    backend: KeyValueBackend
    session_store: SessionStore
    preference_store: PreferenceStore
    connection: ConnectionManager
    controller: ChatSessionController
    ui: WidgetUIState

    async def start(self) -> None:
        """Restore widget and chat state from storage."""
        await self.ui.restore_state()
        self.ui.bind_controller(self.controller)
        await self.controller.start()
        logger.info(
            "chat_widget_started",
            chat_status=self.controller.state.status.value,
            presentation=self.ui.presentation.value,
        )

    async def close(self) -> None:
        """Tear down in reverse order of construction."""
        self.ui.unbind_controller()
        await self.controller.close()
        await self.connection.close()
        await self.scheduler.aclose()
        if isinstance(self.backend, RedisBackend):
            await self.backend.close()
        logger.info("chat_widget_closed")


def create_backend(settings: Settings) -> KeyValueBackend:
    """Create the configured key/value backend."""
    storage = settings.storage
    if storage.backend == "redis":
        if not storage.connection_url:
            raise ValueError("storage.connection_url is required for the redis backend")
        logger.info("storage_backend_created", backend="redis")
        return RedisBackend.from_url(storage.connection_url, ttl_seconds=storage.ttl_seconds)
    logger.info("storage_backend_created", backend="inmemory")
    return InMemoryBackend()


def create_chat_widget(
    settings: Settings,
    transport_factory: TransportFactory,
    *,
    backend: KeyValueBackend | None = None,
    scheduler: Scheduler | None = None,
    configure_logging: bool = True,
    serve_metrics: bool = False,
) -> ChatWidget:
    """Create a fully wired ChatWidget.

    Args:
        settings: Loaded configuration
        transport_factory: Creates the contact center transport
        backend: Override the configured backend (tests pass InMemoryBackend)
        scheduler: Override the timer scheduler (tests pass ManualScheduler)
        configure_logging: Apply the observability logging settings
        serve_metrics: Expose Prometheus metrics when metrics are enabled

    Returns:
        ChatWidget ready to start()
    """
    observability = settings.observability
    if configure_logging:
        setup_logging(observability.logging)

    if serve_metrics and observability.metrics.enabled:
        start_http_server(observability.metrics.port)
        logger.info("metrics_server_started", port=observability.metrics.port)

    _scheduler = scheduler or AsyncioScheduler()
    _backend = backend or create_backend(settings)

    session_store = SessionStore(_backend, key_prefix=settings.storage.key_prefix)
    preference_store = PreferenceStore(_backend, key_prefix=settings.storage.key_prefix)

    connection = ConnectionManager.from_config(
        settings.connection,
        transport_factory,
        scheduler=_scheduler,
    )
    connection.configure(settings.transport)

    controller = ChatSessionController(
        connection,
        session_store,
        scheduler=_scheduler,
        config=settings.chat,
    )
    ui = WidgetUIState(preference_store, session_store, settings.widget)

    logger.info(
        "chat_widget_bootstrapped",
        app_name=settings.app_name,
        storage_backend=settings.storage.backend,
        region=settings.transport.region,
    )

    return ChatWidget(
        settings=settings,
        scheduler=_scheduler,
        backend=_backend,
        session_store=session_store,
        preference_store=preference_store,
        connection=connection,
        controller=controller,
        ui=ui,
    )
