"""SQLite-backed key-value store.

Persists every record to a single ``kv`` table at ``data/election_store.db``
using ``aiosqlite`` for async I/O.  Expiry is stored as an absolute epoch
timestamp; expired rows are filtered out on read and deleted lazily.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable

import aiosqlite
import structlog

from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.utils.errors import StoreError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/election_store.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    expires_at  REAL,
    updated_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv(expires_at);",
]

_UPSERT_SQL = """\
INSERT INTO kv (key, value, expires_at)
VALUES (?, ?, ?)
ON CONFLICT(key)
DO UPDATE SET value      = excluded.value,
              expires_at = excluded.expires_at,
              updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""

_SELECT_SQL = """\
SELECT value FROM kv
WHERE key = ? AND (expires_at IS NULL OR expires_at > ?);
"""

_LIST_SQL = """\
SELECT key FROM kv
WHERE key LIKE ? ESCAPE '\\' AND (expires_at IS NULL OR expires_at > ?)
ORDER BY key;
"""

_PURGE_EXPIRED_SQL = "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?;"


def _like_prefix(prefix: str) -> str:
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}%"


class SQLiteStoreProvider(IStoreProvider):
    """SQLite-backed key-value persistence.

    Call :meth:`initialize` once before use to create the table.
    """

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._clock = clock

    async def initialize(self) -> None:
        """Create the kv table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_CREATE_TABLE_SQL)
                for idx_sql in _CREATE_INDICES_SQL:
                    await db.execute(idx_sql)
                await db.execute(_PURGE_EXPIRED_SQL, (self._clock(),))
                await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(
                message=f"Could not initialise store at {self._db_path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # IStoreProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(_SELECT_SQL, (key, self._clock()))
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StoreError(
                message=f"Read of {key!r} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return row[0] if row else None

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_UPSERT_SQL, (key, value, expires_at))
                await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(
                message=f"Write of {key!r} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("store_put", key=key, chars=len(value), ttl=ttl)

    async def delete(self, key: str) -> None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute("DELETE FROM kv WHERE key = ?", (key,))
                await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(
                message=f"Delete of {key!r} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def list_keys(self, prefix: str = "") -> list[str]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(_LIST_SQL, (_like_prefix(prefix), self._clock()))
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(
                message=f"Listing prefix {prefix!r} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return [r[0] for r in rows]

    def get_provider_name(self) -> str:
        return "sqlite"
