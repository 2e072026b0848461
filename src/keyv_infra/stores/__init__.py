"""Storage adapters for keyv."""

from keyv_infra.stores.memory import InMemoryStore

__all__ = ["InMemoryStore"]
