"""Secondary refresh: re-research existing county ballots on a rotation.

Configured counties are split into batches; each day refreshes the batch at
index ``day_of_year % number_of_batches``.  Only county ballots that already
exist are touched (seeding new counties is a separate workflow), and every
contested race goes through the same :class:`RaceProcessor` as the statewide
ballots, without a baseline.

County staleness is content-based.  After each refresh the county's
ballots are fingerprinted (race labels, candidate names, summary length and
list counts).  Once the fingerprint has come back unchanged
:data:`COUNTY_STALE_THRESHOLD` times in a row, the county is only refreshed
on every :data:`COUNTY_STALE_SKIP_INTERVAL`-th rotation.
"""

from __future__ import annotations

import asyncio
import json
import math
from datetime import date, datetime, timezone
from typing import Awaitable, Callable

from pydantic import ValidationError

from election_updater.config.election import County, ElectionConfig
from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.models.ballot import Ballot, resolve_text
from election_updater.models.results import SecondaryRefreshResult
from election_updater.models.tracking import CountyRefreshEntry
from election_updater.pipeline.race_processor import RaceProcessor
from election_updater.pipeline.run_lease import RunLease
from election_updater.services.error_collector import ErrorCollector, classify_error
from election_updater.services.merge import MergeEngine
from election_updater.services.research_client import ResearchClient
from election_updater.services.source_quality import SourceQualityService
from election_updater.services.staleness import day_of_year
from election_updater.utils.errors import ResearchServiceError
from election_updater.utils.logging import get_logger, run_context

Sleeper = Callable[[float], Awaitable[None]]

COUNTY_TRACKER_KEY = "county_refresh_tracker"
COUNTY_STALE_THRESHOLD = 3
COUNTY_STALE_SKIP_INTERVAL = 3


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def county_refresh_slice(counties: list[County], today: date, batch_size: int) -> list[County]:
    """The batch of *counties* due on *today*."""
    if not counties or batch_size <= 0:
        return []
    slices = math.ceil(len(counties) / batch_size)
    start = (day_of_year(today) % slices) * batch_size
    return counties[start:start + batch_size]


def ballot_fingerprint(ballot: Ballot | None) -> str:
    """Cheap content signature used to notice when a refresh changed nothing."""
    if ballot is None:
        return ""
    parts: list[str] = []
    for race in ballot.races:
        parts.append(f"{race.office}|{race.district or ''}|{len(race.candidates)}")
        for c in race.candidates:
            summary = resolve_text(c.summary) or ""
            parts.append(
                f"{c.name}:s{len(summary)}:e{len(c.endorsements)}:p{len(c.pros)}:c{len(c.cons)}"
            )
    return ";".join(parts)


class CountyRefreshPipeline:
    """Runs the rotating county refresh."""

    def __init__(
        self,
        store: IStoreProvider,
        client: ResearchClient,
        config: ElectionConfig,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._store = store
        self._client = client
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self._sources = SourceQualityService(config)
        self._merge = MergeEngine(self._sources)
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_secondary_refresh(
        self,
        counties: list[County] | None = None,
        dry_run: bool = False,
    ) -> SecondaryRefreshResult:
        """Standalone entry point: takes the run lease, then refreshes."""
        lease = RunLease(
            self._store, ttl_seconds=self._config.lease_ttl_seconds,
            holder="secondary_refresh", clock=self._clock,
        )
        if not await lease.acquire():
            return SecondaryRefreshResult(skipped=True, reason="another update run is in progress")
        try:
            with run_context(run_id=lease.run_id, holder="secondary_refresh", dry_run=dry_run):
                return await self.refresh(counties, dry_run=dry_run)
        finally:
            await lease.release()

    async def refresh(
        self,
        counties: list[County] | None = None,
        dry_run: bool = False,
        collector: ErrorCollector | None = None,
    ) -> SecondaryRefreshResult:
        """Refresh *counties* (default: today's slice).  The caller holds the lease."""
        now = self._clock()
        today = now.date()
        if today > self._config.election_date:
            return SecondaryRefreshResult(
                skipped=True, reason=f"Past election day ({self._config.election_date.isoformat()})"
            )

        collector = collector or ErrorCollector(clock=self._clock)
        processor = RaceProcessor(
            self._client, self._merge, self._sources, self._config, collector, clock=self._clock
        )
        batch = counties if counties is not None else county_refresh_slice(
            self._config.counties, today, self._config.county_batch_size
        )
        tracker = await self._load_tracker()
        tracker_changed = False

        refreshed: list[str] = []
        skipped_stale: list[str] = []
        errors: list[str] = []
        log: list[str] = []
        calls = 0
        aborted = False

        for county in batch:
            entry = tracker.get(county.fips) or CountyRefreshEntry(name=county.name)
            if entry.unchanged_count >= COUNTY_STALE_THRESHOLD:
                cycles = entry.cycles_since_refresh + 1
                if cycles % COUNTY_STALE_SKIP_INTERVAL != 0:
                    skipped_stale.append(county.name)
                    log.append(f"{county.name}: skipped (unchanged for {entry.unchanged_count} refreshes)")
                    if not dry_run:
                        tracker[county.fips] = entry.model_copy(update={"cycles_since_refresh": cycles})
                        tracker_changed = True
                    continue

            ballots: list[Ballot] = []
            for party in self._config.parties:
                key = self._config.county_ballot_key(county.fips, party)
                ballot = await self._load_ballot(key, county, party, log, errors)
                if ballot is None:
                    continue
                if dry_run:
                    log.append(f"{county.name}/{party}: would refresh (dry run)")
                    ballots.append(ballot)
                    continue

                races = list(ballot.races)
                changed = False
                for index, race in enumerate(races):
                    if not race.is_contested:
                        continue
                    context = f"county/{county.name}/{party}/{race.label}"
                    if calls > 0:
                        await self._sleep(self._config.inter_race_delay)
                    calls += 1
                    try:
                        outcome = await processor.process(race, party, today, context=context)
                    except ResearchServiceError as exc:
                        collector.add(classify_error(exc), context, reason=str(exc))
                        errors.append(f"{context}: {exc}")
                        if exc.is_auth_failure:
                            aborted = True
                            break
                        continue
                    except Exception as exc:
                        collector.add(classify_error(exc), context, reason=str(exc))
                        errors.append(f"{context}: {exc}")
                        continue
                    log.extend(outcome.log)
                    errors.extend(outcome.errors)
                    if outcome.committed and outcome.race != race:
                        races[index] = outcome.race
                        changed = True

                if changed:
                    ballot = ballot.model_copy(update={"races": races})
                    await self._store.put(key, ballot.to_json())
                    log.append(f"{county.name}/{party}: refreshed ({len(races)} races)")
                ballots.append(ballot)
                if aborted:
                    break

            if aborted:
                errors.append("authentication failed; county refresh aborted")
                break

            refreshed.append(county.name)
            if dry_run:
                continue
            fingerprint = ";".join(ballot_fingerprint(b) for b in ballots)
            unchanged = entry.unchanged_count + 1 if fingerprint == entry.fingerprint else 0
            tracker[county.fips] = CountyRefreshEntry(
                name=county.name,
                last_refreshed_at=now,
                fingerprint=fingerprint,
                unchanged_count=unchanged,
                cycles_since_refresh=0,
            )
            tracker_changed = True

        if tracker_changed and not dry_run:
            await self._store.put(COUNTY_TRACKER_KEY, json.dumps({
                fips: e.model_dump(mode="json", by_alias=True) for fips, e in tracker.items()
            }))

        self._logger.info(
            "secondary_refresh_complete",
            refreshed=len(refreshed),
            skipped_stale=len(skipped_stale),
            errors=len(errors),
            aborted=aborted,
            dry_run=dry_run,
        )
        return SecondaryRefreshResult(
            refreshed=refreshed,
            skipped_stale=skipped_stale,
            errors=errors,
            log=log,
            aborted=aborted,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _load_tracker(self) -> dict[str, CountyRefreshEntry]:
        raw = await self._store.get(COUNTY_TRACKER_KEY)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
            return {fips: CountyRefreshEntry.model_validate(v) for fips, v in data.items()}
        except (json.JSONDecodeError, ValidationError, AttributeError) as exc:
            self._logger.warning("county_tracker_corrupt", error=str(exc))
            return {}

    async def _load_ballot(
        self,
        key: str,
        county: County,
        party: str,
        log: list[str],
        errors: list[str],
    ) -> Ballot | None:
        raw = await self._store.get(key)
        if not raw:
            log.append(f"{county.name}/{party}: no existing ballot, skipping")
            return None
        try:
            return Ballot.from_json(raw)
        except ValidationError as exc:
            errors.append(f"{county.name}/{party}: invalid ballot JSON ({exc.error_count()} error(s))")
            return None
