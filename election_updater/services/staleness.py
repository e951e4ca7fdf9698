"""Staleness tracker: stop paying for research that keeps finding nothing.

Every race carries a count of consecutive research calls that produced no
meaningful data.  Once that count reaches :data:`STALE_THRESHOLD`, the race
is only researched on days where the days elapsed since its last attempt is
a multiple of :data:`STALE_RESEARCH_INTERVAL`; on other days it is skipped
without any external call.  One meaningful result resets the count.

The whole tracker is one JSON record (``stale_tracker``) mapping race keys to
:class:`StalenessEntry`.  A missing or corrupt record starts fresh.
"""

from __future__ import annotations

import json
from datetime import date

from pydantic import ValidationError

from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.models.tracking import StalenessEntry
from election_updater.utils.logging import get_logger

STALE_TRACKER_KEY = "stale_tracker"
STALE_THRESHOLD = 3
STALE_RESEARCH_INTERVAL = 3


def day_of_year(day: date) -> int:
    return day.timetuple().tm_yday


class StalenessTracker:
    """In-memory view of the ``stale_tracker`` record for one run."""

    def __init__(self, entries: dict[str, StalenessEntry] | None = None) -> None:
        self._entries: dict[str, StalenessEntry] = dict(entries or {})
        self._changed = False
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    async def load(cls, store: IStoreProvider) -> StalenessTracker:
        raw = await store.get(STALE_TRACKER_KEY)
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
            entries = {key: StalenessEntry.model_validate(value) for key, value in data.items()}
        except (json.JSONDecodeError, ValidationError, AttributeError) as exc:
            get_logger(__name__).warning("stale_tracker_corrupt", error=str(exc))
            return cls()
        return cls(entries)

    async def save(self, store: IStoreProvider) -> None:
        payload = {key: entry.model_dump(by_alias=True) for key, entry in self._entries.items()}
        await store.put(STALE_TRACKER_KEY, json.dumps(payload))
        self._changed = False

    @property
    def changed(self) -> bool:
        return self._changed

    # ------------------------------------------------------------------
    # Gate / record
    # ------------------------------------------------------------------

    def entry(self, key: str) -> StalenessEntry:
        return self._entries.get(key, StalenessEntry())

    def should_skip(self, key: str, today: date) -> bool:
        """True when *key* is stale and today is not one of its retry days.

        Non-positive elapsed days (same-day rerun, or a new year wrapping the
        day-of-year counter) always count as due.
        """
        entry = self.entry(key)
        if entry.null_count < STALE_THRESHOLD:
            return False
        elapsed = day_of_year(today) - entry.last_research_day
        return elapsed > 0 and elapsed % STALE_RESEARCH_INTERVAL != 0

    def record(self, key: str, meaningful: bool, today: date) -> StalenessEntry:
        """Record the outcome of a research attempt made *today*."""
        previous = self.entry(key)
        entry = StalenessEntry(
            null_count=0 if meaningful else previous.null_count + 1,
            last_research_day=day_of_year(today),
        )
        self._entries[key] = entry
        self._changed = True
        if entry.null_count == STALE_THRESHOLD:
            self._logger.info("race_became_stale", race=key, null_count=entry.null_count)
        return entry

    def as_dict(self) -> dict[str, StalenessEntry]:
        return dict(self._entries)
