"""Session persistence and resume."""

from .manager import DEFAULT_STORAGE_KEY, SessionManager
from .store import InMemoryStore, JsonFileStore, KeyValueStore

__all__ = [
    "DEFAULT_STORAGE_KEY",
    "SessionManager",
    "KeyValueStore",
    "InMemoryStore",
    "JsonFileStore",
]
