"""Deterministic clock for expiry tests."""

from __future__ import annotations

from datetime import timedelta


class FakeClock:
    """Epoch-millis clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        """Start the clock at ``start`` milliseconds."""
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, delta: timedelta | int) -> None:
        """Move forward by a timedelta or a number of milliseconds."""
        if isinstance(delta, timedelta):
            delta = int(delta.total_seconds() * 1000)
        self.now += delta
