"""SQL implementations of Store on SQLAlchemy async Core.

One table per store, with the expiry held in its own column::

    key VARCHAR(255) PRIMARY KEY | value TEXT NOT NULL | expires_at BIGINT NULL

Each dialect supplies its native upsert so payload and expiry are written
by a single statement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import Any

import structlog
from sqlalchemy import (
    BigInteger,
    Column,
    MetaData,
    String,
    Table,
    Text,
    delete,
    func,
    or_,
    select,
)
from sqlalchemy.dialects import mysql
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.schema import CreateSchema
from sqlalchemy.sql.expression import ColumnElement, Executable

from keyv_core.constants import DEFAULT_TABLE_NAME, MAX_KEY_LENGTH
from keyv_core.exceptions import ConfigError
from keyv_core.interfaces.store import StoredEntry
from keyv_infra.stores.errors import translate_errors

logger = structlog.get_logger()


def build_table(metadata: MetaData, name: str, schema: str | None = None) -> Table:
    """Define the key/value table.

    MySQL compares keys with a binary collation; its case- and
    accent-insensitive default would let ``Users:x`` and ``users:x``
    share a row.
    """
    key_type = String(MAX_KEY_LENGTH).with_variant(
        mysql.VARCHAR(MAX_KEY_LENGTH, charset="utf8mb4", collation="utf8mb4_bin"), "mysql"
    )
    return Table(
        name,
        metadata,
        Column("key", key_type, primary_key=True),
        Column("value", Text, nullable=False),
        Column("expires_at", BigInteger, nullable=True, index=True),
        schema=schema,
        mysql_charset="utf8mb4",
    )


class SqlStore(ABC):
    """Store backed by a relational table."""

    backend = "sql"
    drivername = ""

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        table_name: str = DEFAULT_TABLE_NAME,
        schema: str | None = None,
    ) -> None:
        """Initialize with an async SQLAlchemy engine."""
        self._engine = engine
        self._schema = schema
        self._metadata = MetaData()
        self._table = build_table(self._metadata, table_name, schema)

    @classmethod
    def normalize_url(cls, uri: str) -> str:
        """Point a plain database URI at the async driver."""
        try:
            url = make_url(uri)
        except ArgumentError as e:
            msg = f"Invalid {cls.backend} uri: {e}"
            raise ConfigError(msg) from e
        if "+" not in url.drivername:
            url = url.set(drivername=cls.drivername)
        return url.render_as_string(hide_password=False)

    @classmethod
    def engine_options(cls, pool_size: int) -> dict[str, Any]:
        """Keyword arguments for ``create_async_engine``."""
        return {"pool_size": pool_size, "max_overflow": 10, "pool_pre_ping": True}

    @classmethod
    def from_url(
        cls,
        uri: str,
        *,
        table_name: str = DEFAULT_TABLE_NAME,
        pool_size: int = 5,
        schema: str | None = None,
    ) -> SqlStore:
        """Create a store with its own engine."""
        try:
            engine = create_async_engine(
                cls.normalize_url(uri), echo=False, **cls.engine_options(pool_size)
            )
        except (ArgumentError, NoSuchModuleError, ImportError) as e:
            msg = f"Cannot create {cls.backend} engine: {e}"
            raise ConfigError(msg) from e
        return cls(engine, table_name=table_name, schema=schema)

    @property
    def table(self) -> Table:
        """The key/value table."""
        return self._table

    def _errors(self, operation: str) -> AbstractContextManager[None]:
        """Error translation for one statement."""
        return translate_errors(
            self.backend,
            operation,
            timeouts=(PoolTimeoutError,),
            failures=(SQLAlchemyError,),
        )

    @abstractmethod
    def _upsert(self, raw_key: str, payload: str, expires_at: int | None) -> Executable:
        """Dialect-specific insert-or-replace statement."""
        ...

    async def initialize(self) -> None:
        """Create the schema (if any) and the table."""
        with self._errors("initialize"):
            async with self._engine.begin() as conn:
                if self._schema:
                    await conn.execute(CreateSchema(self._schema, if_not_exists=True))
                await conn.run_sync(self._metadata.create_all)
        logger.debug("store_initialized", backend=self.backend, table=self._table.fullname)

    async def get(self, raw_key: str) -> StoredEntry | None:
        """Fetch the row for a key."""
        t = self._table
        stmt = select(t.c.value, t.c.expires_at).where(t.c.key == raw_key)
        with self._errors("get"):
            async with self._engine.connect() as conn:
                row = (await conn.execute(stmt)).first()
        if row is None:
            return None
        return StoredEntry(payload=row.value, expires_at=row.expires_at)

    async def set(self, raw_key: str, payload: str, expires_at: int | None) -> None:
        """Upsert value and expiry in one statement."""
        stmt = self._upsert(raw_key, payload, expires_at)
        with self._errors("set"):
            async with self._engine.begin() as conn:
                await conn.execute(stmt)

    async def remove(self, raw_key: str, now: int | None = None) -> bool:
        """Delete the row for a key, reporting whether it was live at ``now``."""
        return await self._remove_counting(self._table.c.key == raw_key, now, "remove") > 0

    async def remove_many(self, raw_keys: Sequence[str], now: int | None = None) -> int:
        """Delete rows for several keys in one transaction."""
        if not raw_keys:
            return 0
        match = self._table.c.key.in_(list(raw_keys))
        return await self._remove_counting(match, now, "remove_many")

    async def remove_expired(self, raw_key: str, now: int) -> bool:
        """Delete the row only while it is still stale."""
        t = self._table
        stmt = delete(t).where(
            t.c.key == raw_key,
            t.c.expires_at.is_not(None),
            t.c.expires_at <= now,
        )
        return await self._delete(stmt, "remove_expired") > 0

    async def clear(self, prefix: str = "") -> None:
        """Delete every row under a key prefix."""
        stmt = delete(self._table)
        if prefix:
            key = self._table.c.key
            # LIKE ignores ASCII case on SQLite; substr keeps the match exact
            stmt = stmt.where(
                key.startswith(prefix, autoescape=True),
                func.substr(key, 1, len(prefix)) == prefix,
            )
        await self._delete(stmt, "clear")

    async def close(self) -> None:
        """Dispose of the engine's connection pool."""
        await self._engine.dispose()

    async def _remove_counting(
        self, match: ColumnElement[bool], now: int | None, operation: str
    ) -> int:
        """Delete matching rows, counting only those live at ``now``.

        Live rows go first so their count is exact; the stale rest is then
        deleted in the same transaction.
        """
        t = self._table
        if now is None:
            return await self._delete(delete(t).where(match), operation)
        live = delete(t).where(match, or_(t.c.expires_at.is_(None), t.c.expires_at > now))
        with self._errors(operation):
            async with self._engine.begin() as conn:
                result = await conn.execute(live)
                await conn.execute(delete(t).where(match))
        return int(result.rowcount or 0)

    async def _delete(self, stmt: Executable, operation: str) -> int:
        """Run a DELETE and return the affected row count."""
        with self._errors(operation):
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
        return int(result.rowcount or 0)


class PostgresStore(SqlStore):
    """Store backed by PostgreSQL through asyncpg."""

    backend = "postgres"
    drivername = "postgresql+asyncpg"

    @classmethod
    def normalize_url(cls, uri: str) -> str:
        """Accept the ``postgres://`` alias."""
        if uri.startswith("postgres://"):
            uri = "postgresql://" + uri.removeprefix("postgres://")
        return super().normalize_url(uri)

    def _upsert(self, raw_key: str, payload: str, expires_at: int | None) -> Executable:
        stmt = pg_insert(self._table).values(key=raw_key, value=payload, expires_at=expires_at)
        return stmt.on_conflict_do_update(
            index_elements=[self._table.c.key],
            set_={"value": stmt.excluded.value, "expires_at": stmt.excluded.expires_at},
        )


class MySqlStore(SqlStore):
    """Store backed by MySQL through aiomysql."""

    backend = "mysql"
    drivername = "mysql+aiomysql"

    @classmethod
    def engine_options(cls, pool_size: int) -> dict[str, Any]:
        """MySQL drops idle connections, so recycle them hourly."""
        return {**super().engine_options(pool_size), "pool_recycle": 3600}

    def _upsert(self, raw_key: str, payload: str, expires_at: int | None) -> Executable:
        stmt = mysql_insert(self._table).values(key=raw_key, value=payload, expires_at=expires_at)
        return stmt.on_duplicate_key_update(
            value=stmt.inserted.value, expires_at=stmt.inserted.expires_at
        )


class SqliteStore(SqlStore):
    """Store backed by SQLite through aiosqlite."""

    backend = "sqlite"
    drivername = "sqlite+aiosqlite"

    @classmethod
    def engine_options(cls, pool_size: int) -> dict[str, Any]:
        """SQLite picks its own pool; only thread checks are relaxed."""
        return {"connect_args": {"check_same_thread": False}}

    def _upsert(self, raw_key: str, payload: str, expires_at: int | None) -> Executable:
        stmt = sqlite_insert(self._table).values(key=raw_key, value=payload, expires_at=expires_at)
        return stmt.on_conflict_do_update(
            index_elements=[self._table.c.key],
            set_={"value": stmt.excluded.value, "expires_at": stmt.excluded.expires_at},
        )
