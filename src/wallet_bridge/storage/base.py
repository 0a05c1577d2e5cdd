"""Key-value storage contract and the in-memory implementation.

Storage is the only state that survives recreation of the background
process. Values are JSON-compatible data.
"""

from __future__ import annotations

import copy
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStorage(Protocol):
    """Protocol for async key-value storage implementations."""

    async def get(self, key: str) -> Any | None:
        """Return the value stored under ``key``, or None."""
        ...

    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    async def remove(self, key: str) -> bool:
        """Delete ``key``. Returns True if it existed."""
        ...

    async def clear(self) -> None:
        """Delete every key."""
        ...


class InMemoryStorage:
    """In-memory KeyValueStorage.

    Values are deep-copied in and out so callers cannot mutate stored
    state through shared references. Useful for tests and simulation.
    """

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    async def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return sorted(self._data)
