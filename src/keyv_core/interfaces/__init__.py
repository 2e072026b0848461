"""Abstract interfaces for keyv."""

from keyv_core.interfaces.store import Store, StoredEntry

__all__ = ["Store", "StoredEntry"]
