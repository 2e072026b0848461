"""Expiry engine: TTL normalization and staleness checks."""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from datetime import timedelta

from keyv_core.constants import MAX_TTL_MS
from keyv_core.exceptions import InvalidArgumentError

Clock = Callable[[], int]

TTL = timedelta | float | int


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def live_at(expires_at: int | None, now: int | None) -> bool:
    """True if an entry with this deadline is live at ``now`` (always, without ``now``)."""
    return now is None or expires_at is None or expires_at > now


def ttl_to_ms(ttl: TTL) -> int:
    """Convert a TTL (timedelta or seconds) to whole milliseconds.

    Sub-millisecond positive TTLs round up to 1 ms. Infinite, NaN and
    longer-than-``MAX_TTL_MS`` TTLs are rejected.
    """
    if isinstance(ttl, bool):
        msg = "ttl must be a timedelta or a number of seconds"
        raise InvalidArgumentError(msg)
    try:
        seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
    except (TypeError, ValueError, OverflowError) as e:
        msg = f"ttl must be a timedelta or a number of seconds, got {ttl!r}"
        raise InvalidArgumentError(msg) from e
    if not math.isfinite(seconds):
        msg = f"ttl must be finite, got {ttl!r}"
        raise InvalidArgumentError(msg)
    if seconds <= 0:
        msg = f"ttl must be positive, got {ttl!r}"
        raise InvalidArgumentError(msg)
    ttl_ms = max(1, round(seconds * 1000))
    if ttl_ms > MAX_TTL_MS:
        msg = f"ttl must be at most {MAX_TTL_MS // 1000} seconds, got {ttl!r}"
        raise InvalidArgumentError(msg)
    return ttl_ms


class ExpiryPolicy:
    """Computes deadlines from TTLs and decides whether entries are live."""

    def __init__(self, default_ttl: TTL | None = None, clock: Clock | None = None) -> None:
        """Initialize with an optional default TTL and clock."""
        self._default_ttl_ms = ttl_to_ms(default_ttl) if default_ttl is not None else None
        self._clock = clock or now_ms

    @property
    def default_ttl_ms(self) -> int | None:
        """Default TTL in milliseconds, if any."""
        return self._default_ttl_ms

    def now(self) -> int:
        """Current time from the configured clock."""
        return self._clock()

    def deadline(self, ttl: TTL | None = None) -> int | None:
        """Absolute expiry for a write happening now.

        A missing ttl falls back to the default; with neither the entry
        never expires.
        """
        ttl_ms = ttl_to_ms(ttl) if ttl is not None else self._default_ttl_ms
        if ttl_ms is None:
            return None
        return self.now() + ttl_ms

    def is_expired(self, expires_at: int | None, now: int | None = None) -> bool:
        """True once ``expires_at`` has been reached."""
        if expires_at is None:
            return False
        if now is None:
            now = self.now()
        return expires_at <= now
