"""In-memory implementation of Store with active expiry sweeping."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Sequence
from types import TracebackType

import structlog

from keyv_core.constants import SWEEP_INTERVAL_SECONDS
from keyv_core.expiry import Clock, live_at, now_ms
from keyv_core.interfaces.store import StoredEntry

logger = structlog.get_logger()


class InMemoryStore:
    """Process-local store backed by a dict.

    Suitable for development, testing, and single-process applications.
    A background task owned by the store evicts stale entries every
    ``sweep_interval`` seconds; it starts in ``initialize()`` and is
    cancelled in ``close()``.
    """

    def __init__(
        self,
        *,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        clock: Clock | None = None,
    ) -> None:
        """Initialize an empty store."""
        self._entries: dict[str, StoredEntry] = {}
        self._lock = asyncio.Lock()
        self._sweep_interval = sweep_interval
        self._clock = clock or now_ms
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    async def __aenter__(self) -> InMemoryStore:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Start the sweep task if it is not already running."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="keyv-memory-sweep")

    async def get(self, raw_key: str) -> StoredEntry | None:
        """Return the stored entry without interpreting expiry."""
        return self._entries.get(raw_key)

    async def set(self, raw_key: str, payload: str, expires_at: int | None) -> None:
        """Replace the entry for a key."""
        async with self._lock:
            self._entries[raw_key] = StoredEntry(payload=payload, expires_at=expires_at)

    async def remove(self, raw_key: str, now: int | None = None) -> bool:
        """Remove a key. Returns True if it held an entry (live at ``now``, if given)."""
        async with self._lock:
            entry = self._entries.pop(raw_key, None)
        return entry is not None and live_at(entry.expires_at, now)

    async def remove_many(self, raw_keys: Sequence[str], now: int | None = None) -> int:
        """Remove several keys, returning how many held entries."""
        removed = 0
        async with self._lock:
            for raw_key in raw_keys:
                entry = self._entries.pop(raw_key, None)
                if entry is not None and live_at(entry.expires_at, now):
                    removed += 1
        return removed

    async def remove_expired(self, raw_key: str, now: int) -> bool:
        """Remove a key only if its current entry is stale."""
        async with self._lock:
            entry = self._entries.get(raw_key)
            if entry is None or entry.expires_at is None or entry.expires_at > now:
                return False
            del self._entries[raw_key]
            return True

    async def clear(self, prefix: str = "") -> None:
        """Remove all entries under a key prefix."""
        async with self._lock:
            if not prefix:
                self._entries.clear()
                return
            for raw_key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[raw_key]

    async def sweep(self) -> int:
        """Evict every stale entry. Returns the number evicted.

        Scans a snapshot, then deletes a key only if it still holds the
        exact entry that was seen stale.
        """
        now = self._clock()
        snapshot = list(self._entries.items())
        stale = [
            (raw_key, entry)
            for raw_key, entry in snapshot
            if entry.expires_at is not None and entry.expires_at <= now
        ]
        if not stale:
            return 0
        evicted = 0
        async with self._lock:
            for raw_key, entry in stale:
                if self._entries.get(raw_key) is entry:
                    del self._entries[raw_key]
                    evicted += 1
        return evicted

    async def close(self) -> None:
        """Stop the sweep task."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_loop(self) -> None:
        """Run sweeps until cancelled."""
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                evicted = await self.sweep()
            except Exception:
                logger.exception("sweep_failed")
                continue
            if evicted:
                logger.debug("sweep_evicted", count=evicted)
