"""Ephemeral key-value storage for session data."""

from __future__ import annotations

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Abstract string key-value store scoped to one client context."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Retrieve the value at ``key``. Returns None if not found."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` at ``key``, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete ``key``. Missing keys are ignored."""


class InMemoryKeyValueStore(KeyValueStore):
    """Lives exactly as long as the process, like a browser tab's sessionStorage."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._data
