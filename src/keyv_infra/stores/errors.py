"""Translation of driver exceptions into keyv's error hierarchy."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager

from keyv_core.exceptions import AdapterError, AdapterTimeoutError, KeyvError

ExcTypes = tuple[type[BaseException], ...]


@contextmanager
def translate_errors(
    backend: str,
    operation: str,
    *,
    timeouts: ExcTypes = (),
    failures: ExcTypes = (),
) -> Iterator[None]:
    """Re-raise driver errors as ``AdapterTimeoutError`` / ``AdapterError``.

    Timeouts are matched before general failures since most drivers
    derive their timeout errors from their base error.
    """
    try:
        yield
    except KeyvError:
        raise
    except (TimeoutError, asyncio.TimeoutError, *timeouts) as e:
        msg = f"{backend} {operation} timed out"
        raise AdapterTimeoutError(msg, backend=backend, cause=e) from e
    except (OSError, *failures) as e:
        msg = f"{backend} {operation} failed: {e}"
        raise AdapterError(msg, backend=backend, cause=e) from e
