"""PreferenceStore: widget UI preferences kept apart from chat data."""

from chatline.errors import StorageBackendError
from chatline.observability.logging import get_logger
from chatline.storage.backend import KeyValueBackend
from chatline.widget.models import WidgetPreferences

logger = get_logger(__name__)


class PreferenceStore:
    """Persists WidgetPreferences under its own key.

    Clearing preferences never touches chat keys and SessionStore.clear_all
    never touches this one, so a UI reset cannot disturb a conversation.
    """

    def __init__(self, backend: KeyValueBackend, key_prefix: str = "chatline") -> None:
        self._backend = backend
        self._key = f"{key_prefix}:widget-preferences"

    @property
    def key(self) -> str:
        return self._key

    async def save(self, preferences: WidgetPreferences) -> None:
        """Persist preferences."""
        try:
            await self._backend.set(self._key, preferences.model_dump_json())
        except (StorageBackendError, ValueError) as e:
            logger.warning("widget_preferences_save_failed", error=str(e))

    async def load(self) -> WidgetPreferences | None:
        """Load stored preferences, if any."""
        try:
            data = await self._backend.get(self._key)
            if not data:
                return None
            return WidgetPreferences.model_validate_json(data)
        except (StorageBackendError, ValueError) as e:
            logger.warning("widget_preferences_load_failed", error=str(e))
            return None

    async def clear(self) -> None:
        """Remove stored preferences."""
        try:
            await self._backend.delete(self._key)
        except StorageBackendError as e:
            logger.warning("widget_preferences_clear_failed", error=str(e))
