"""In-memory key-value store using cachetools.TLRUCache.

Suitable for dry runs and tests.  ``TLRUCache`` computes an expiry per entry,
so the per-key ``ttl`` argument of :meth:`put` is honoured (unlike a plain
``TTLCache``, whose TTL is fixed at construction time).
"""

from __future__ import annotations

import math
import time
from typing import Callable, NamedTuple

import structlog
from cachetools import TLRUCache

from election_updater.interfaces.store_provider import IStoreProvider

logger = structlog.get_logger(logger_name=__name__)


class _Entry(NamedTuple):
    value: str
    ttl: int | None


def _time_to_use(_key: str, entry: _Entry, now: float) -> float:
    if entry.ttl is None:
        return math.inf
    return now + entry.ttl


class MemoryStoreProvider(IStoreProvider):
    """In-memory store backed by ``cachetools.TLRUCache``.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry is
        evicted.  Sized generously; this store is not meant for production.
    timer:
        Monotonic clock used for expiry; injectable for tests.
    """

    def __init__(
        self,
        max_size: int = 100_000,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: TLRUCache[str, _Entry] = TLRUCache(
            maxsize=max_size, ttu=_time_to_use, timer=timer
        )

    # ------------------------------------------------------------------
    # IStoreProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        entry = self._cache.get(key)
        if entry is None:
            logger.debug("store_miss", key=key)
            return None
        return entry.value

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        self._cache[key] = _Entry(value, ttl)
        logger.debug("store_put", key=key, ttl=ttl)

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)
        logger.debug("store_delete", key=key)

    async def list_keys(self, prefix: str = "") -> list[str]:
        self._cache.expire()
        return sorted(k for k in list(self._cache.keys()) if k.startswith(prefix) and k in self._cache)

    def get_provider_name(self) -> str:
        return "memory"
