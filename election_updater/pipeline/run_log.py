"""Persisted run logs and their retention.

Keys written here:

    update_log:{YYYY-MM-DD}    the day's run result (last run of the day wins)
    error_log:{YYYY-MM-DD}     structured diagnostics, only when there were any
    baseline_fallback_log      rolling list of the last 30 runs with fallbacks

Dated logs older than the retention window are deleted at the end of every
non-dry run.  Dates are ISO strings, so comparing them as strings is the
same as comparing them as dates.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone
from typing import Any

from pydantic import TypeAdapter, ValidationError

from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.models.baseline import FallbackEntry, FallbackLogRun
from election_updater.models.diagnostics import ErrorLog
from election_updater.services.error_collector import ErrorCollector
from election_updater.utils.logging import get_logger

UPDATE_LOG_PREFIX = "update_log:"
ERROR_LOG_PREFIX = "error_log:"
FALLBACK_LOG_KEY = "baseline_fallback_log"
FALLBACK_LOG_LIMIT = 30

_fallback_runs = TypeAdapter(list[FallbackLogRun])


class RunLogWriter:
    """Writes and prunes the dated logs of the update pipelines."""

    def __init__(self, store: IStoreProvider, retention_days: int = 14) -> None:
        self._store = store
        self._retention_days = retention_days
        self._logger = get_logger(__name__)

    async def write_update_log(self, day: date, payload: dict[str, Any]) -> None:
        record = {"timestamp": datetime.now(tz=timezone.utc).isoformat(), **payload}  # noqa: UP017
        await self._store.put(f"{UPDATE_LOG_PREFIX}{day.isoformat()}", json.dumps(record, indent=2))

    async def write_error_log(self, day: date, collector: ErrorCollector) -> bool:
        """Persist the collector's log; returns ``False`` when there was nothing to write."""
        if len(collector) == 0:
            return False
        await self._store.put(
            f"{ERROR_LOG_PREFIX}{day.isoformat()}",
            collector.to_log().model_dump_json(indent=2),
        )
        return True

    async def read_error_log(self, day: date) -> ErrorLog | None:
        raw = await self._store.get(f"{ERROR_LOG_PREFIX}{day.isoformat()}")
        if not raw:
            return None
        return ErrorLog.model_validate_json(raw)

    async def append_fallbacks(self, day: date, entries: list[FallbackEntry]) -> None:
        if not entries:
            return
        runs: list[FallbackLogRun] = []
        raw = await self._store.get(FALLBACK_LOG_KEY)
        if raw:
            try:
                runs = _fallback_runs.validate_json(raw)
            except ValidationError as exc:
                self._logger.warning("fallback_log_corrupt", error=str(exc))
                runs = []
        runs.append(FallbackLogRun(date=day.isoformat(), count=len(entries), entries=entries))
        runs = runs[-FALLBACK_LOG_LIMIT:]
        await self._store.put(
            FALLBACK_LOG_KEY, _fallback_runs.dump_json(runs, by_alias=True).decode()
        )

    async def purge_old_logs(self, today: date) -> int:
        """Delete update and error logs dated before the retention cutoff."""
        cutoff = (today - timedelta(days=self._retention_days)).isoformat()
        deleted = 0
        for prefix in (UPDATE_LOG_PREFIX, ERROR_LOG_PREFIX):
            for key in await self._store.list_keys(prefix):
                if key[len(prefix):] < cutoff:
                    await self._store.delete(key)
                    deleted += 1
        if deleted:
            self._logger.info("old_logs_purged", deleted=deleted, cutoff=cutoff)
        return deleted
