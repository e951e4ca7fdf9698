"""Abstract base class for the key-value store.

Every persisted record (ballots, baselines, trackers, logs, the run lease)
is a JSON string under a flat string key.  The store is the only shared
state between runs, so everything the pipeline knows about yesterday lives
behind this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class IStoreProvider(ABC):
    """Contract for string key-value stores with optional per-entry expiry.

    All operations are async so that network-backed stores can be used
    without blocking the event loop.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored under *key*.

        Parameters
        ----------
        key:
            The key to look up.

        Returns
        -------
        str or None
            The stored value if present and not expired; ``None`` otherwise.
        """

    @abstractmethod
    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store *value* under *key*, replacing any previous value.

        Parameters
        ----------
        key:
            The key to write.
        value:
            The serialised value (usually JSON).
        ttl:
            Time-to-live in seconds.  ``None`` means the entry does not
            expire.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*; a no-op if it does not exist."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[str]:
        """Return every live key starting with *prefix*, sorted.

        Parameters
        ----------
        prefix:
            Key prefix to filter on.  An empty prefix lists everything.
        """

    def get_provider_name(self) -> str:
        return type(self).__name__
