"""Shared constants for keyv."""

from __future__ import annotations

# Default table (SQL) / collection (MongoDB) name
DEFAULT_TABLE_NAME = "keyv"

# Default MongoDB database when the URI carries none
DEFAULT_MONGO_DATABASE = "keyv"

# Joins a namespace and a user key into a raw key
NAMESPACE_SEPARATOR = ":"

# Interval between active sweeps of the in-memory store
SWEEP_INTERVAL_SECONDS = 1.0

# Keys per DEL call when clearing a Redis namespace
REDIS_CLEAR_BATCH_SIZE = 500

# Longest raw key (namespace included) on any backend; sized to the SQL key column
MAX_KEY_LENGTH = 255

# Longest TTL; deadlines must stay within BIGINT and datetime range
MAX_TTL_MS = 100 * 365 * 24 * 60 * 60 * 1000

# URI scheme -> store kind
URI_SCHEMES: dict[str, str] = {
    "memory": "memory",
    "redis": "redis",
    "rediss": "redis",
    "unix": "redis",
    "postgres": "postgres",
    "postgresql": "postgres",
    "postgresql+asyncpg": "postgres",
    "mysql": "mysql",
    "mysql+aiomysql": "mysql",
    "sqlite": "sqlite",
    "sqlite+aiosqlite": "sqlite",
    "mongodb": "mongodb",
    "mongodb+srv": "mongodb",
}
