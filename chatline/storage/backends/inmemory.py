"""In-memory implementation of KeyValueBackend."""

from chatline.storage.backend import KeyValueBackend


class InMemoryBackend(KeyValueBackend):
    """In-memory implementation of KeyValueBackend for testing and development.

    Uses a plain dict. Nothing survives the process.
    """

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        """Get the value stored under key."""
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        """Store value under key."""
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        """Delete key."""
        if key in self._data:
            del self._data[key]
            return True
        return False

    def keys(self) -> list[str]:
        """Return stored keys, for test assertions."""
        return sorted(self._data)
