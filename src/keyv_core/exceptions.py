"""Custom exception hierarchy for keyv."""

from __future__ import annotations


class KeyvError(Exception):
    """Base exception for all keyv errors."""


class EncodingError(KeyvError):
    """Raised when a value cannot be represented in the neutral encoding."""


class DecodingError(KeyvError):
    """Raised when a stored payload does not match the requested type."""


class AdapterError(KeyvError):
    """Raised when a storage backend call fails.

    The driver exception is kept on ``cause`` (and chained as ``__cause__``).
    """

    def __init__(self, message: str, *, backend: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.backend = backend
        self.cause = cause


class AdapterTimeoutError(AdapterError):
    """Raised when a storage backend call times out."""


class ConfigError(KeyvError):
    """Raised when store configuration is missing or malformed."""


class NotFoundError(KeyvError, KeyError):
    """Raised by strict reads when the key is absent or expired."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class InvalidArgumentError(KeyvError, ValueError):
    """Raised for bad caller input such as an empty key or a non-positive TTL."""
