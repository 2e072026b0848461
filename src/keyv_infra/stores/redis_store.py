"""Redis-backed implementation of Store."""

from __future__ import annotations

import re
from collections.abc import Sequence
from contextlib import AbstractContextManager

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError
from redis.exceptions import TimeoutError as RedisTimeoutError

from keyv_core.codec import unwrap, wrap
from keyv_core.constants import REDIS_CLEAR_BATCH_SIZE
from keyv_core.exceptions import ConfigError
from keyv_core.expiry import live_at
from keyv_core.interfaces.store import StoredEntry
from keyv_infra.stores.errors import translate_errors

logger = structlog.get_logger()

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _errors(operation: str) -> AbstractContextManager[None]:
    """Error translation for one Redis operation."""
    return translate_errors(
        "redis", operation, timeouts=(RedisTimeoutError,), failures=(RedisError,)
    )


def escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters so ``text`` matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


class RedisStore:
    """Store backed by Redis.

    Each key holds a payload envelope. Entries with an expiry also get a
    native ``PXAT`` deadline at the same instant, so Redis drops them on
    its own.
    """

    def __init__(self, redis: Redis) -> None:  # type: ignore[type-arg]
        """Initialize with a redis-py asyncio client."""
        self._redis = redis

    @classmethod
    def from_url(cls, uri: str, *, pool_size: int = 5) -> RedisStore:
        """Create a store with its own connection pool."""
        try:
            client = Redis.from_url(uri, max_connections=pool_size)
        except ValueError as e:
            msg = f"Invalid redis uri: {e}"
            raise ConfigError(msg) from e
        return cls(client)

    async def initialize(self) -> None:
        """Validate connectivity by pinging Redis."""
        with _errors("ping"):
            await self._redis.ping()
        logger.debug("store_initialized", backend="redis")

    async def get(self, raw_key: str) -> StoredEntry | None:
        """Retrieve the envelope stored under a key."""
        with _errors("get"):
            raw = await self._redis.get(raw_key)
        if raw is None:
            return None
        payload, expires_at = unwrap(raw)
        return StoredEntry(payload=payload, expires_at=expires_at)

    async def set(self, raw_key: str, payload: str, expires_at: int | None) -> None:
        """Store the envelope, with a native deadline when it expires."""
        text = wrap(payload, expires_at)
        with _errors("set"):
            if expires_at is None:
                await self._redis.set(raw_key, text)
            else:
                await self._redis.set(raw_key, text, pxat=expires_at)

    async def remove(self, raw_key: str, now: int | None = None) -> bool:
        """Delete a key with GETDEL, reporting whether it held a live entry."""
        with _errors("delete"):
            if now is None:
                return bool(await self._redis.delete(raw_key))
            raw = await self._redis.getdel(raw_key)
        return self._held_live(raw, now)

    async def remove_many(self, raw_keys: Sequence[str], now: int | None = None) -> int:
        """Delete several keys in one transaction, counting live entries."""
        if not raw_keys:
            return 0
        with _errors("delete"):
            if now is None:
                return int(await self._redis.delete(*raw_keys))
            async with self._redis.pipeline(transaction=True) as pipe:
                for raw_key in raw_keys:
                    pipe.getdel(raw_key)
                removed = await pipe.execute()
        return sum(1 for raw in removed if self._held_live(raw, now))

    async def remove_expired(self, raw_key: str, now: int) -> bool:
        """Delete a stale key inside a WATCH/MULTI transaction."""
        with _errors("delete"):
            async with self._redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(raw_key)
                    raw = await pipe.get(raw_key)
                    if raw is None:
                        return False
                    _, expires_at = unwrap(raw)
                    if expires_at is None or expires_at > now:
                        return False
                    pipe.multi()
                    pipe.delete(raw_key)
                    await pipe.execute()
                except WatchError:
                    return False
        return True

    async def clear(self, prefix: str = "") -> None:
        """Delete a namespace via SCAN, or flush the database."""
        with _errors("clear"):
            if not prefix:
                await self._redis.flushdb()
                return
            batch: list[str | bytes] = []
            async for key in self._redis.scan_iter(
                match=f"{escape_glob(prefix)}*", count=REDIS_CLEAR_BATCH_SIZE
            ):
                batch.append(key)
                if len(batch) >= REDIS_CLEAR_BATCH_SIZE:
                    await self._redis.delete(*batch)
                    batch.clear()
            if batch:
                await self._redis.delete(*batch)

    async def close(self) -> None:
        """Close the underlying Redis connection pool."""
        await self._redis.aclose()

    @staticmethod
    def _held_live(raw: str | bytes | None, now: int) -> bool:
        """Whether a deleted envelope was still live at ``now``."""
        if raw is None:
            return False
        _, expires_at = unwrap(raw)
        return live_at(expires_at, now)
