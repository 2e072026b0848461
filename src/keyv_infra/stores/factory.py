"""Factory for creating a Store from settings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from keyv_core.exceptions import ConfigError
from keyv_core.interfaces.store import Store

if TYPE_CHECKING:
    from keyv_core.config.settings import KeyvSettings


def create_store(settings: KeyvSettings) -> Store:
    """Create the store selected by the URI scheme in ``settings.uri``.

    Driver modules are imported lazily so only the chosen backend's client
    library has to be importable.
    """
    backend = settings.backend

    if backend == "memory":
        from keyv_infra.stores.memory import InMemoryStore

        return InMemoryStore()

    if backend == "redis":
        from keyv_infra.stores.redis_store import RedisStore

        return RedisStore.from_url(settings.uri, pool_size=settings.pool_size)

    if backend in ("postgres", "mysql", "sqlite"):
        from keyv_infra.stores.sql_store import MySqlStore, PostgresStore, SqliteStore

        store_cls = {"postgres": PostgresStore, "mysql": MySqlStore, "sqlite": SqliteStore}[backend]
        if settings.schema_name and backend != "postgres":
            msg = f"schema_name is only supported for postgres, not {backend}"
            raise ConfigError(msg)
        return store_cls.from_url(
            settings.uri,
            table_name=settings.table_name,
            pool_size=settings.pool_size,
            schema=settings.schema_name,
        )

    if backend == "mongodb":
        from keyv_infra.stores.mongo_store import MongoStore

        return MongoStore.from_url(
            settings.uri,
            database=settings.database,
            collection=settings.table_name,
            pool_size=settings.pool_size,
        )

    msg = f"Unsupported store backend: {backend}"
    raise ConfigError(msg)
