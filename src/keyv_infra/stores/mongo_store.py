"""MongoDB-backed implementation of Store."""

from __future__ import annotations

import re
from collections.abc import Sequence
from contextlib import AbstractContextManager
from datetime import UTC, datetime
from typing import Any

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import (
    ConfigurationError,
    ExecutionTimeout,
    InvalidURI,
    NetworkTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
    WTimeoutError,
)

from keyv_core.constants import DEFAULT_MONGO_DATABASE, DEFAULT_TABLE_NAME
from keyv_core.exceptions import ConfigError
from keyv_core.expiry import live_at
from keyv_core.interfaces.store import StoredEntry
from keyv_infra.stores.errors import translate_errors

logger = structlog.get_logger()

# Native TTL index field; MongoDB's TTL monitor deletes documents past this date
EXPIRES_FIELD = "expires"


def _errors(operation: str) -> AbstractContextManager[None]:
    """Error translation for one MongoDB operation."""
    return translate_errors(
        "mongodb",
        operation,
        timeouts=(ExecutionTimeout, NetworkTimeout, ServerSelectionTimeoutError, WTimeoutError),
        failures=(PyMongoError,),
    )


class MongoStore:
    """Store backed by a MongoDB collection.

    Documents are ``{_id: key, value: payload, expires_at: millis,
    expires: datetime}``. A TTL index on ``expires`` lets the server
    reap expired documents in the background.
    """

    def __init__(
        self,
        client: AsyncIOMotorClient,  # type: ignore[type-arg]
        *,
        database: str = DEFAULT_MONGO_DATABASE,
        collection: str = DEFAULT_TABLE_NAME,
    ) -> None:
        """Initialize with a Motor client."""
        self._client = client
        self._collection: AsyncIOMotorCollection = client[database][collection]  # type: ignore[type-arg]

    @classmethod
    def from_url(
        cls,
        uri: str,
        *,
        database: str | None = None,
        collection: str = DEFAULT_TABLE_NAME,
        pool_size: int = 5,
    ) -> MongoStore:
        """Create a store with its own client; the database defaults to the URI path."""
        try:
            client = AsyncIOMotorClient(uri, maxPoolSize=pool_size)
            if database is None:
                database = client.get_default_database(default=DEFAULT_MONGO_DATABASE).name
        except (ConfigurationError, InvalidURI, ValueError) as e:
            msg = f"Invalid mongodb uri: {e}"
            raise ConfigError(msg) from e
        return cls(client, database=database, collection=collection)

    async def initialize(self) -> None:
        """Create the TTL index."""
        with _errors("initialize"):
            await self._collection.create_index(EXPIRES_FIELD, expireAfterSeconds=0)
        logger.debug("store_initialized", backend="mongodb", collection=self._collection.name)

    async def get(self, raw_key: str) -> StoredEntry | None:
        """Fetch the document for a key."""
        with _errors("get"):
            doc = await self._collection.find_one({"_id": raw_key})
        if doc is None:
            return None
        return StoredEntry(payload=doc["value"], expires_at=doc.get("expires_at"))

    async def set(self, raw_key: str, payload: str, expires_at: int | None) -> None:
        """Replace the whole document for a key."""
        doc: dict[str, Any] = {"value": payload}
        if expires_at is not None:
            doc["expires_at"] = expires_at
            doc[EXPIRES_FIELD] = datetime.fromtimestamp(expires_at / 1000, tz=UTC)
        with _errors("set"):
            await self._collection.replace_one({"_id": raw_key}, doc, upsert=True)

    async def remove(self, raw_key: str, now: int | None = None) -> bool:
        """Delete the document for a key, reporting whether it was live."""
        with _errors("remove"):
            doc = await self._collection.find_one_and_delete(
                {"_id": raw_key}, projection={"expires_at": True}
            )
        return doc is not None and live_at(doc.get("expires_at"), now)

    async def remove_many(self, raw_keys: Sequence[str], now: int | None = None) -> int:
        """Delete documents for several keys, counting the live ones."""
        if not raw_keys:
            return 0
        keys: dict[str, Any] = {"_id": {"$in": list(raw_keys)}}
        with _errors("remove_many"):
            if now is None:
                result = await self._collection.delete_many(keys)
                return int(result.deleted_count)
            live = await self._collection.delete_many(
                {**keys, "expires_at": {"$not": {"$lte": now}}}
            )
            await self._collection.delete_many(keys)
        return int(live.deleted_count)

    async def remove_expired(self, raw_key: str, now: int) -> bool:
        """Delete the document only while it is still stale."""
        with _errors("remove_expired"):
            result = await self._collection.delete_one(
                {"_id": raw_key, "expires_at": {"$lte": now}}
            )
        return result.deleted_count > 0

    async def clear(self, prefix: str = "") -> None:
        """Delete every document under a key prefix."""
        query: dict[str, Any] = {}
        if prefix:
            query["_id"] = {"$regex": f"^{re.escape(prefix)}"}
        with _errors("clear"):
            await self._collection.delete_many(query)

    async def close(self) -> None:
        """Close the Motor client."""
        self._client.close()
