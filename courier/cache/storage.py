"""Key-value storage adapters for the response cache."""

import time
from collections.abc import Awaitable
from typing import Protocol, runtime_checkable


@runtime_checkable
class CacheStorage(Protocol):
    """Protocol for cache storage operations.

    Abstracts the storage layer to enable testing and alternative
    implementations (Redis, disk, ...). Methods may be plain or coroutine
    functions.
    """

    def get(self, key: str) -> Awaitable[str | None] | str | None:
        """Retrieve a serialized entry.

        Args:
            key: Cache key.

        Returns:
            Serialized entry if present, None otherwise.
        """
        ...

    def set(
        self, key: str, value: str, ttl: float | None = None
    ) -> Awaitable[None] | None:
        """Store a serialized entry.

        Args:
            key: Cache key.
            value: Serialized entry.
            ttl: Seconds until the entry may be evicted, None for no limit.
        """
        ...

    def delete(self, key: str) -> Awaitable[None] | None:
        """Remove an entry.

        Args:
            key: Cache key.
        """
        ...


class MemoryCacheStorage:
    """In-process cache storage with optional per-entry expiry."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, float | None]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl is not None else None
        self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()
