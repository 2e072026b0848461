"""Value codec and payload envelope.

Values are stored as JSON text. Decoding validates against the requested
type in strict mode, so a stored ``"42"`` never comes back as ``42``.
Expiry metadata travels next to the payload; backends without an expiry
column wrap both in an envelope::

    {"value": <encoded value>, "expires_at": <epoch millis>}
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, TypeVar, cast

import pydantic_core
from pydantic import TypeAdapter, ValidationError

from keyv_core.exceptions import DecodingError, EncodingError

T = TypeVar("T")


@lru_cache(maxsize=256)
def _adapter(type_: Any) -> TypeAdapter[Any]:  # noqa: ANN401
    """Return a cached TypeAdapter for a target type."""
    return TypeAdapter(type_)


def encode(value: object) -> str:
    """Serialize a value to JSON text."""
    try:
        return pydantic_core.to_json(value).decode("utf-8")
    except (pydantic_core.PydanticSerializationError, TypeError, ValueError) as e:
        msg = f"Cannot encode value of type {type(value).__name__}: {e}"
        raise EncodingError(msg) from e


def decode(payload: str, type_: type[T] | Any = Any) -> T:  # noqa: ANN401
    """Deserialize JSON text, checking it against ``type_``."""
    try:
        adapter = _adapter(type_)
    except TypeError:
        adapter = TypeAdapter(type_)
    try:
        return cast(T, adapter.validate_json(payload, strict=True))
    except ValidationError as e:
        msg = f"Stored value does not match {_type_name(type_)}: {e}"
        raise DecodingError(msg) from e


def wrap(payload: str, expires_at: int | None) -> str:
    """Build the envelope for a payload and its expiry."""
    envelope: dict[str, Any] = {"value": json.loads(payload)}
    if expires_at is not None:
        envelope["expires_at"] = expires_at
    return json.dumps(envelope, separators=(",", ":"))


def unwrap(text: str | bytes) -> tuple[str, int | None]:
    """Split an envelope into payload and expiry."""
    try:
        envelope = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        msg = f"Malformed payload envelope: {e}"
        raise DecodingError(msg) from e
    if not isinstance(envelope, dict) or "value" not in envelope:
        msg = "Payload envelope has no 'value' field"
        raise DecodingError(msg)
    expires_at = envelope.get("expires_at")
    if expires_at is not None and (isinstance(expires_at, bool) or not isinstance(expires_at, int)):
        msg = f"Payload envelope has invalid expires_at: {expires_at!r}"
        raise DecodingError(msg)
    payload = json.dumps(envelope["value"], separators=(",", ":"))
    return payload, expires_at


def _type_name(type_: Any) -> str:  # noqa: ANN401
    """Readable name of a target type."""
    return getattr(type_, "__name__", None) or repr(type_)
