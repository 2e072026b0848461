"""Storage adapter interface."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class StoredEntry:
    """A physically stored payload and its absolute expiry (epoch millis)."""

    payload: str
    expires_at: int | None = None


@runtime_checkable
class Store(Protocol):
    """Abstract store interface; adapters can be swapped.

    Stores move opaque encoded payloads and know nothing about value types
    or TTL policy. Driver failures surface as ``AdapterError``.
    """

    async def initialize(self) -> None:
        """Create tables, indexes or background tasks. Idempotent."""
        ...

    async def get(self, raw_key: str) -> StoredEntry | None:
        """Return the stored entry, stale or not, or None if absent."""
        ...

    async def set(self, raw_key: str, payload: str, expires_at: int | None) -> None:
        """Upsert payload and expiry together."""
        ...

    async def remove(self, raw_key: str, now: int | None = None) -> bool:
        """Delete a key. Returns True if it held an entry.

        With ``now``, only an entry still live at ``now`` counts; a stale
        one is deleted all the same.
        """
        ...

    async def remove_many(self, raw_keys: Sequence[str], now: int | None = None) -> int:
        """Delete several keys, returning how many held entries (live ones with ``now``).

        Best-effort: a failure part way through may leave some keys removed.
        """
        ...

    async def remove_expired(self, raw_key: str, now: int) -> bool:
        """Delete a key only if its entry is stale at ``now``."""
        ...

    async def clear(self, prefix: str = "") -> None:
        """Delete every key starting with ``prefix`` (all keys when empty)."""
        ...

    async def close(self) -> None:
        """Release the backend handle. Idempotent."""
        ...
