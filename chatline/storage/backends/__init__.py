"""Key/value backends for chat persistence."""

from chatline.storage.backends.inmemory import InMemoryBackend
from chatline.storage.backends.redis import RedisBackend

__all__ = [
    "InMemoryBackend",
    "RedisBackend",
]
