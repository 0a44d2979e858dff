"""KeyValueBackend abstract interface."""

from abc import ABC, abstractmethod


class KeyValueBackend(ABC):
    """Abstract interface for string-keyed blob storage.

    Plays the role browser local storage plays for an embedded widget.
    No transactional guarantees are required. Implementations wrap
    driver errors in StorageBackendError.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Get the value stored under key."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key, returning whether it existed."""
        pass
