"""Shared pytest fixtures for unit tests."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Generator

import pytest
import structlog

from keyv_client.keyv import Keyv
from keyv_infra.stores.memory import InMemoryStore
from tests.mocks.mock_clock import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    """Return a FakeClock at a fixed epoch."""
    return FakeClock()


@pytest.fixture
async def memory_store(clock: FakeClock) -> AsyncGenerator[InMemoryStore, None]:
    """Return an InMemoryStore on the fake clock (sweep task not started)."""
    store = InMemoryStore(clock=clock)
    yield store
    await store.close()


@pytest.fixture
async def keyv(memory_store: InMemoryStore, clock: FakeClock) -> AsyncGenerator[Keyv, None]:
    """Return a Keyv client over the in-memory store and fake clock."""
    client = Keyv(memory_store, clock=clock)
    yield client
    await client.close()


@pytest.fixture(autouse=True)
def _reset_logging() -> Generator[None, None, None]:
    """Save and restore root logger handlers around each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.level = original_level
    structlog.reset_defaults()
