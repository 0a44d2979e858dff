"""Persistence for chat sessions and widget preferences."""

from chatline.storage.backend import KeyValueBackend
from chatline.storage.backends import InMemoryBackend, RedisBackend
from chatline.storage.preferences import PreferenceStore
from chatline.storage.store import SessionStore, generate_session_id

__all__ = [
    "InMemoryBackend",
    "KeyValueBackend",
    "PreferenceStore",
    "RedisBackend",
    "SessionStore",
    "generate_session_id",
]
