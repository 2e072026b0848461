"""Mock backend clients for adapter unit tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from unittest.mock import AsyncMock, MagicMock


async def _aiter(items: Iterable[object]) -> AsyncIterator[object]:
    """Async iterator over a fixed list (stands in for SCAN)."""
    for item in items:
        yield item


def make_mock_redis(scan_keys: Iterable[object] = ()) -> MagicMock:
    """Create a mock redis.asyncio.Redis client."""
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock()
    mock.delete = AsyncMock(return_value=0)
    mock.getdel = AsyncMock(return_value=None)
    mock.ping = AsyncMock(return_value=True)
    mock.flushdb = AsyncMock()
    mock.aclose = AsyncMock()
    keys = list(scan_keys)
    mock.scan_iter = MagicMock(side_effect=lambda **_: _aiter(keys))
    return mock


def make_mock_pipeline(stored: object = None) -> MagicMock:
    """Create a mock transactional pipeline whose GET returns ``stored``."""
    pipe = MagicMock()
    pipe.watch = AsyncMock()
    pipe.get = AsyncMock(return_value=stored)
    pipe.multi = MagicMock()
    pipe.delete = MagicMock()
    pipe.getdel = MagicMock()
    pipe.execute = AsyncMock(return_value=[1])
    return pipe


def attach_pipeline(redis: MagicMock, pipe: MagicMock) -> None:
    """Make ``redis.pipeline()`` yield ``pipe`` as an async context manager."""
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=pipe)
    ctx.__aexit__ = AsyncMock(return_value=False)
    redis.pipeline = MagicMock(return_value=ctx)


def make_mock_motor() -> tuple[MagicMock, MagicMock]:
    """Create a mock Motor client and the collection it hands out."""
    collection = MagicMock()
    collection.name = "keyv"
    collection.find_one = AsyncMock(return_value=None)
    collection.replace_one = AsyncMock()
    collection.find_one_and_delete = AsyncMock(return_value=None)
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=0))
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))
    collection.create_index = AsyncMock(return_value="expires_1")

    database = MagicMock()
    database.__getitem__.return_value = collection
    client = MagicMock()
    client.__getitem__.return_value = database
    return client, collection
