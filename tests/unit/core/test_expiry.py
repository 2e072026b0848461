"""Tests for the expiry engine."""

from __future__ import annotations

import math
from datetime import timedelta

import pytest

from keyv_core.constants import MAX_TTL_MS
from keyv_core.exceptions import InvalidArgumentError
from keyv_core.expiry import ExpiryPolicy, now_ms, ttl_to_ms
from tests.mocks.mock_clock import FakeClock


@pytest.mark.unit
class TestTtlToMs:
    """Tests for TTL normalization."""

    def test_timedelta(self) -> None:
        """Timedeltas convert to milliseconds."""
        assert ttl_to_ms(timedelta(minutes=1)) == 60_000

    def test_seconds(self) -> None:
        """Numbers are seconds."""
        assert ttl_to_ms(2) == 2000
        assert ttl_to_ms(0.001) == 1

    def test_sub_millisecond_rounds_up(self) -> None:
        """A positive TTL never becomes zero."""
        assert ttl_to_ms(0.0001) == 1

    @pytest.mark.parametrize("ttl", [0, -1, timedelta(0), timedelta(seconds=-5)])
    def test_non_positive_raises(self, ttl: timedelta | int) -> None:
        """Zero and negative TTLs are rejected."""
        with pytest.raises(InvalidArgumentError, match="positive"):
            ttl_to_ms(ttl)

    @pytest.mark.parametrize("ttl", [math.inf, -math.inf, math.nan])
    def test_non_finite_raises(self, ttl: float) -> None:
        """Infinite and NaN TTLs are caller errors, not overflows."""
        with pytest.raises(InvalidArgumentError):
            ttl_to_ms(ttl)

    @pytest.mark.parametrize("ttl", [1e300, 10**400, timedelta(days=999_999_999)])
    def test_too_long_raises(self, ttl: float | int | timedelta) -> None:
        """TTLs past the storable range are rejected up front."""
        with pytest.raises(InvalidArgumentError):
            ttl_to_ms(ttl)

    def test_longest_ttl_accepted(self) -> None:
        """The maximum itself is allowed."""
        assert ttl_to_ms(MAX_TTL_MS / 1000) == MAX_TTL_MS

    def test_bool_rejected(self) -> None:
        """Booleans are not durations."""
        with pytest.raises(InvalidArgumentError):
            ttl_to_ms(True)


@pytest.mark.unit
class TestExpiryPolicy:
    """Tests for deadline computation and staleness."""

    def test_no_default_never_expires(self, clock: FakeClock) -> None:
        """Without any TTL the entry has no deadline."""
        policy = ExpiryPolicy(clock=clock)
        assert policy.deadline() is None
        assert policy.deadline(None) is None

    def test_default_applies_when_omitted_or_none(self, clock: FakeClock) -> None:
        """Omitting ttl and passing None both use the default."""
        policy = ExpiryPolicy(default_ttl=10, clock=clock)
        assert policy.default_ttl_ms == 10_000
        assert policy.deadline() == clock.now + 10_000
        assert policy.deadline(None) == clock.now + 10_000

    def test_explicit_ttl_overrides_default(self, clock: FakeClock) -> None:
        """A per-call TTL wins over the default."""
        policy = ExpiryPolicy(default_ttl=10, clock=clock)
        assert policy.deadline(timedelta(seconds=1)) == clock.now + 1000

    def test_deadline_is_absolute(self, clock: FakeClock) -> None:
        """Deadlines are computed from the write time."""
        policy = ExpiryPolicy(clock=clock)
        first = policy.deadline(5)
        clock.advance(3000)
        assert policy.deadline(5) == first + 3000

    def test_is_expired_boundaries(self, clock: FakeClock) -> None:
        """An entry is dead exactly at its deadline."""
        policy = ExpiryPolicy(clock=clock)
        assert policy.is_expired(None) is False
        assert policy.is_expired(clock.now + 1) is False
        assert policy.is_expired(clock.now) is True
        assert policy.is_expired(clock.now - 1) is True

    def test_is_expired_with_explicit_now(self) -> None:
        """A caller-supplied ``now`` is used instead of the clock."""
        policy = ExpiryPolicy()
        assert policy.is_expired(100, now=100) is True
        assert policy.is_expired(100, now=99) is False

    def test_invalid_default_raises(self) -> None:
        """A non-positive default TTL fails at construction."""
        with pytest.raises(InvalidArgumentError):
            ExpiryPolicy(default_ttl=0)

    def test_now_ms_is_epoch_millis(self) -> None:
        """The wall clock is in epoch milliseconds."""
        assert now_ms() > 1_600_000_000_000
