"""Key-value store providers."""

from election_updater.providers.store.memory_store import MemoryStoreProvider
from election_updater.providers.store.sqlite_store import SQLiteStoreProvider

__all__ = ["MemoryStoreProvider", "SQLiteStoreProvider"]
