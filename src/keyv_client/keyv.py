"""Keyv: a typed key-value facade over pluggable stores.

Usage::

    async with await Keyv.connect("redis://localhost:6379/0", namespace="users") as kv:
        await kv.set("alice", {"age": 30}, ttl=60)
        profile = await kv.get("alice", dict[str, int])
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from types import TracebackType
from typing import Any, TypeVar, overload

import structlog
from pydantic import ValidationError

from keyv_client.observability.logging import configure_logging
from keyv_core.codec import decode, encode
from keyv_core.config.settings import KeyvSettings
from keyv_core.constants import MAX_KEY_LENGTH, NAMESPACE_SEPARATOR
from keyv_core.exceptions import ConfigError, InvalidArgumentError, KeyvError, NotFoundError
from keyv_core.expiry import TTL, Clock, ExpiryPolicy
from keyv_core.interfaces.store import Store, StoredEntry
from keyv_infra.stores.factory import create_store
from keyv_infra.stores.memory import InMemoryStore

logger = structlog.get_logger()

T = TypeVar("T")

_MISSING = object()


def load_settings(settings: KeyvSettings | str | None = None, **overrides: Any) -> KeyvSettings:  # noqa: ANN401
    """Build validated settings from a URI, an existing settings object, or the environment."""
    try:
        if isinstance(settings, KeyvSettings):
            if not overrides:
                return settings
            return KeyvSettings(**{**settings.model_dump(), **overrides})
        if isinstance(settings, str):
            overrides["uri"] = settings
        return KeyvSettings(**overrides)
    except ValidationError as e:
        msg = f"Invalid store configuration: {e}"
        raise ConfigError(msg) from e


class Keyv:
    """Typed get/set/remove over any Store, with TTLs and namespacing.

    Values are JSON-encoded on write and validated against the requested
    type on read. Entries past their deadline are never returned; the
    stale copy is deleted in the background.
    """

    def __init__(
        self,
        store: Store | None = None,
        *,
        namespace: str | None = None,
        default_ttl: TTL | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize over ``store`` (a fresh InMemoryStore by default)."""
        if namespace is not None and (not namespace or NAMESPACE_SEPARATOR in namespace):
            msg = f"namespace must be non-empty and must not contain '{NAMESPACE_SEPARATOR}'"
            raise InvalidArgumentError(msg)
        self._store: Store = store if store is not None else InMemoryStore(clock=clock)
        self._namespace = namespace
        self._prefix = f"{namespace}{NAMESPACE_SEPARATOR}" if namespace else ""
        self._expiry = ExpiryPolicy(default_ttl, clock)
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    async def connect(
        cls,
        settings: KeyvSettings | str | None = None,
        **overrides: Any,  # noqa: ANN401
    ) -> Keyv:
        """Build the configured store, initialize it and return a client.

        Raises ``ConfigError`` for bad settings and ``AdapterError`` when
        the backend cannot be reached.
        """
        resolved = load_settings(settings, **overrides)
        if resolved.setup_logging:
            configure_logging(resolved)
        store = create_store(resolved)
        keyv = cls(store, namespace=resolved.namespace, default_ttl=resolved.default_ttl)
        try:
            await keyv.initialize()
        except BaseException:
            await store.close()
            raise
        logger.info("keyv_connected", backend=resolved.backend, namespace=resolved.namespace)
        return keyv

    @property
    def store(self) -> Store:
        """The underlying store."""
        return self._store

    @property
    def namespace(self) -> str | None:
        """Namespace prefixed to every key, if any."""
        return self._namespace

    async def __aenter__(self) -> Keyv:
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
        """Prepare the store (tables, indexes, sweep task)."""
        await self._store.initialize()

    async def close(self) -> None:
        """Wait for background expiry deletes, then close the store."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self._store.close()

    async def set(self, key: str, value: object, ttl: TTL | None = None) -> None:
        """Store a value, replacing any previous value and expiry.

        ``ttl`` is a timedelta or a number of seconds; when omitted (or
        None) the client's default TTL applies.
        """
        raw_key = self._raw_key(key)
        payload = encode(value)
        await self._store.set(raw_key, payload, self._expiry.deadline(ttl))

    @overload
    async def get(self, key: str) -> Any | None: ...  # noqa: ANN401

    @overload
    async def get(self, key: str, type_: type[T]) -> T | None: ...

    async def get(self, key: str, type_: Any = Any) -> Any | None:  # noqa: ANN401
        """Return the value for a key, or None if absent or expired.

        Raises ``DecodingError`` if the stored value does not match ``type_``.
        """
        raw_key = self._raw_key(key)
        value = self._live_value(raw_key, await self._store.get(raw_key), type_)
        return None if value is _MISSING else value

    async def get_many(self, keys: Iterable[str], type_: Any = Any) -> dict[str, Any]:  # noqa: ANN401
        """Return live values for ``keys``; absent or expired keys are omitted."""
        unique = list(dict.fromkeys(keys))
        raw_keys = [self._raw_key(key) for key in unique]
        entries = await asyncio.gather(*(self._store.get(raw_key) for raw_key in raw_keys))
        found: dict[str, Any] = {}
        for key, raw_key, entry in zip(unique, raw_keys, entries, strict=True):
            value = self._live_value(raw_key, entry, type_)
            if value is not _MISSING:
                found[key] = value
        return found

    async def require(self, key: str, type_: Any = Any) -> Any:  # noqa: ANN401
        """Like ``get``, but raise ``NotFoundError`` when the key is absent or expired."""
        raw_key = self._raw_key(key)
        value = self._live_value(raw_key, await self._store.get(raw_key), type_)
        if value is _MISSING:
            msg = f"Key not found: {key!r}"
            raise NotFoundError(msg)
        return value

    async def has(self, key: str) -> bool:
        """True if the key holds a live value."""
        raw_key = self._raw_key(key)
        entry = await self._store.get(raw_key)
        return entry is not None and not self._stale(raw_key, entry)

    async def remove(self, key: str) -> bool:
        """Delete a key. Returns True if it held a live value.

        An expired entry is still deleted but reports False, whether or
        not the backend had already reaped it.
        """
        return await self._store.remove(self._raw_key(key), self._expiry.now())

    async def remove_many(self, keys: Iterable[str]) -> int:
        """Delete several keys, returning how many were removed.

        Only live values are counted. Not atomic: on failure some keys may
        already be gone.
        """
        raw_keys = list(dict.fromkeys(self._raw_key(key) for key in keys))
        return await self._store.remove_many(raw_keys, self._expiry.now())

    async def clear(self) -> None:
        """Delete every key in this client's namespace."""
        await self._store.clear(self._prefix)

    def _raw_key(self, key: str) -> str:
        """Validate a caller key and apply the namespace."""
        if not isinstance(key, str) or not key:
            msg = f"key must be a non-empty string, got {key!r}"
            raise InvalidArgumentError(msg)
        raw_key = f"{self._prefix}{key}"
        if len(raw_key) > MAX_KEY_LENGTH:
            msg = f"key exceeds {MAX_KEY_LENGTH} characters (namespace included)"
            raise InvalidArgumentError(msg)
        return raw_key

    def _live_value(self, raw_key: str, entry: StoredEntry | None, type_: Any) -> Any:  # noqa: ANN401
        """Decode a live entry, or return ``_MISSING`` for absent/stale ones."""
        if entry is None or self._stale(raw_key, entry):
            return _MISSING
        return decode(entry.payload, type_)

    def _stale(self, raw_key: str, entry: StoredEntry) -> bool:
        """Check expiry, scheduling a background delete for stale entries."""
        now = self._expiry.now()
        if not self._expiry.is_expired(entry.expires_at, now):
            return False
        task = asyncio.create_task(self._expire(raw_key, now))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _expire(self, raw_key: str, now: int) -> None:
        """Best-effort delete of a stale entry; failures are only logged."""
        try:
            removed = await self._store.remove_expired(raw_key, now)
        except KeyvError as e:
            logger.warning("lazy_expiry_failed", key=raw_key, error=str(e))
            return
        if removed:
            logger.debug("lazy_expiry_removed", key=raw_key)
