"""Durable storage collaborators."""

from wallet_bridge.storage.base import InMemoryStorage, KeyValueStorage
from wallet_bridge.storage.session_store import SESSION_KEY, SessionStore
from wallet_bridge.storage.sqlite import SQLiteStorage

__all__ = [
    "SESSION_KEY",
    "InMemoryStorage",
    "KeyValueStorage",
    "SQLiteStorage",
    "SessionStore",
]
