"""Store settings using pydantic-settings."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from keyv_core.constants import (
    DEFAULT_TABLE_NAME,
    MAX_TTL_MS,
    NAMESPACE_SEPARATOR,
    URI_SCHEMES,
)


class KeyvSettings(BaseSettings):
    """Central configuration for a keyv store and client."""

    model_config = SettingsConfigDict(env_prefix="KEYV_", env_file=".env", extra="ignore")

    # --- Backend ---
    uri: str = Field(
        default="memory://",
        description="Connection URI; the scheme selects the adapter",
    )
    table_name: str = Field(
        default=DEFAULT_TABLE_NAME,
        pattern=r"^[A-Za-z_][A-Za-z0-9_]*$",
        description="SQL table or MongoDB collection name",
    )
    schema_name: str | None = Field(
        default=None,
        pattern=r"^[A-Za-z_][A-Za-z0-9_]*$",
        description="PostgreSQL schema holding the table (created if missing)",
    )
    database: str | None = Field(
        default=None,
        description="MongoDB database name (defaults to the URI path, then 'keyv')",
    )
    pool_size: int = Field(
        default=5,
        ge=1,
        description="Connection pool size",
    )

    # --- Client ---
    default_ttl: float | None = Field(
        default=None,
        gt=0,
        le=MAX_TTL_MS // 1000,
        allow_inf_nan=False,
        description="Default TTL in seconds applied when a set call gives none",
    )
    namespace: str | None = Field(
        default=None,
        min_length=1,
        description="Key prefix isolating this client's keyspace",
    )

    # --- Logging ---
    log_level: str = Field(
        default="INFO",
        description="Root log level",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Log renderer",
    )
    setup_logging: bool = Field(
        default=False,
        description="Apply log_level/log_format to the root logger in Keyv.connect",
    )

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, value: str | None) -> str | None:
        """Reject namespaces containing the separator."""
        if value is not None and NAMESPACE_SEPARATOR in value:
            msg = f"namespace must not contain '{NAMESPACE_SEPARATOR}'"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def validate_uri(self) -> KeyvSettings:
        """Require a URI with a supported scheme."""
        scheme, sep, _ = self.uri.partition("://")
        if not sep or not scheme:
            msg = f"malformed store uri: {self.uri!r}"
            raise ValueError(msg)
        if scheme.lower() not in URI_SCHEMES:
            msg = f"unsupported store uri scheme: {scheme!r}"
            raise ValueError(msg)
        return self

    @property
    def backend(self) -> str:
        """Store kind selected by the URI scheme."""
        return URI_SCHEMES[self.uri.partition("://")[0].lower()]

