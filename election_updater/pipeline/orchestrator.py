"""Daily update orchestrator.

:meth:`DailyUpdatePipeline.run_daily_update` is the scheduled entry point.
For every party it walks the statewide ballot race by race::

    uncontested?  -> skip (no call)
    stale?        -> skip (no call)
    delay         -> fixed pause before every call but the first
    process       -> research, merge, validate, guard
    record        -> staleness tracker
    balance       -> score, correct critical gaps

Races are independent: a failure is classified, recorded and the loop moves
on.  The one exception is an authentication failure, which stops all further
calls; whatever was already committed is still written and the logs are
still persisted.

The run holds the ``update_lease`` record from start to finish so two runs
never write the same ballots concurrently.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from typing import Awaitable, Callable

from pydantic import ValidationError

from election_updater.config.election import ElectionConfig
from election_updater.interfaces.balance_scorer import IBalanceScorer
from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.models.ballot import Ballot, Race, race_key
from election_updater.models.baseline import FallbackEntry, VerifiedBaseline
from election_updater.models.diagnostics import ErrorCategory
from election_updater.models.results import (
    DailyUpdateResult,
    SecondaryRefreshResult,
    ToneRefreshResult,
)
from election_updater.pipeline.county_refresh import CountyRefreshPipeline
from election_updater.pipeline.publishing import (
    bump_manifest,
    invalidate_candidates_index,
    record_ballot_size,
)
from election_updater.pipeline.race_processor import RaceProcessor
from election_updater.pipeline.run_lease import RunLease
from election_updater.pipeline.run_log import RunLogWriter
from election_updater.services.balance_corrector import BalanceCorrector
from election_updater.services.baseline_guard import BaselineGuard
from election_updater.services.error_collector import ErrorCollector, classify_error
from election_updater.services.merge import MergeEngine
from election_updater.services.research_client import ResearchClient
from election_updater.services.source_quality import SourceQualityService
from election_updater.services.staleness import StalenessTracker
from election_updater.services.tone_refresher import ChangedCandidate, ToneRefresher
from election_updater.services.validation import validate_ballot
from election_updater.utils.errors import ResearchServiceError, StoreError
from election_updater.utils.logging import get_logger, run_context

Sleeper = Callable[[float], Awaitable[None]]


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class _RunState:
    """Mutable bookkeeping for one run."""

    def __init__(self, collector: ErrorCollector, tracker: StalenessTracker) -> None:
        self.collector = collector
        self.tracker = tracker
        self.updated: list[str] = []
        self.errors: list[str] = []
        self.log: list[str] = []
        self.fallbacks: list[FallbackEntry] = []
        self.changed_candidates: list[ChangedCandidate] = []
        self.calls = 0
        self.aborted = False

    def abort(self, context: str, exc: Exception) -> None:
        self.aborted = True
        self.errors.append(f"{context}: authentication failed, run aborted ({exc})")
        self.log.append("run aborted: research service rejected credentials")


class DailyUpdatePipeline:
    """Wires the services together for the daily update and baseline seeding."""

    def __init__(
        self,
        store: IStoreProvider,
        client: ResearchClient,
        scorer: IBalanceScorer,
        config: ElectionConfig,
        county_refresh: CountyRefreshPipeline | None = None,
        tone_refresher: ToneRefresher | None = None,
        skip_county_refresh: bool = False,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._store = store
        self._client = client
        self._scorer = scorer
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self._county_refresh = county_refresh or CountyRefreshPipeline(
            store, client, config, clock=clock, sleep=sleep
        )
        self._tones = tone_refresher or ToneRefresher(store, client, config, sleep=sleep)
        self._skip_county_refresh = skip_county_refresh
        self._sources = SourceQualityService(config)
        self._merge = MergeEngine(self._sources)
        self._guard = BaselineGuard(store, config, clock=clock)
        self._run_log = RunLogWriter(store, retention_days=config.log_retention_days)
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def seed_baseline(self, party: str) -> VerifiedBaseline:
        return await self._guard.seed_baseline(party)

    async def run_daily_update(
        self,
        parties: list[str] | None = None,
        dry_run: bool = False,
        skip_secondary_refresh: bool = False,
    ) -> DailyUpdateResult:
        """Research, validate and commit updates for every race of every party.

        Parameters
        ----------
        parties:
            Parties to process; defaults to every configured party.
        dry_run:
            Research and validate, but write nothing to the store.
        skip_secondary_refresh:
            Do not run the county refresh afterwards.
        """
        now = self._clock()
        today = now.date()
        if today > self._config.election_date:
            reason = f"Past election day ({self._config.election_date.isoformat()})"
            self._logger.info("daily_update_skipped", reason=reason)
            return DailyUpdateResult(skipped=True, reason=reason)

        lease = RunLease(self._store, ttl_seconds=self._config.lease_ttl_seconds, clock=self._clock)
        if not await lease.acquire():
            return DailyUpdateResult(skipped=True, reason="another update run is in progress")

        try:
            with run_context(run_id=lease.run_id, holder="daily_update", dry_run=dry_run):
                return await self._run(parties or list(self._config.parties), dry_run,
                                       skip_secondary_refresh, today)
        finally:
            await lease.release()

    # ------------------------------------------------------------------
    # Run phases
    # ------------------------------------------------------------------

    async def _run(
        self,
        parties: list[str],
        dry_run: bool,
        skip_secondary_refresh: bool,
        today: date,
    ) -> DailyUpdateResult:
        collector = ErrorCollector(clock=self._clock)
        state = _RunState(collector, await StalenessTracker.load(self._store))
        processor = RaceProcessor(
            self._client, self._merge, self._sources, self._config, collector,
            guard=self._guard, clock=self._clock,
        )
        corrector = BalanceCorrector(
            self._client, self._scorer, self._config, collector, sleep=self._sleep
        )
        self._logger.info("daily_update_started", parties=parties, dry_run=dry_run)

        for party in parties:
            if state.aborted:
                break
            try:
                await self._update_party(party, today, dry_run, processor, corrector, state)
            except StoreError as exc:
                state.errors.append(f"{party}: store failure, ballot not saved ({exc})")
                state.changed_candidates = [
                    c for c in state.changed_candidates if c.party != party
                ]
                self._logger.error("party_store_failed", party=party, error=str(exc))

        if state.tracker.changed and not dry_run:
            try:
                await state.tracker.save(self._store)
            except StoreError as exc:
                state.errors.append(f"stale tracker not saved ({exc})")
                self._logger.error("stale_tracker_save_failed", error=str(exc))

        if state.updated and not dry_run:
            await self._invalidate_index(today, state)

        county = await self._secondary_refresh(dry_run, skip_secondary_refresh, collector, state)
        tones = await self._regenerate_tones(dry_run, today, state)

        result = DailyUpdateResult(
            updated=state.updated,
            errors=state.errors,
            log=state.log,
            ai_error_summary=collector.summary(),
            aborted=state.aborted,
            county=county,
            tones=tones,
            balance_corrections=corrector.report(),
        )
        if not dry_run:
            try:
                await self._persist_logs(result, today, state)
            except StoreError as exc:
                self._logger.error("run_logs_not_saved", error=str(exc))

        self._logger.info(
            "daily_update_complete",
            updated=state.updated,
            errors=len(state.errors),
            diagnostics=len(collector),
            external_calls=state.calls,
            aborted=state.aborted,
            dry_run=dry_run,
        )
        return result

    async def _update_party(
        self,
        party: str,
        today: date,
        dry_run: bool,
        processor: RaceProcessor,
        corrector: BalanceCorrector,
        state: _RunState,
    ) -> None:
        key = self._config.statewide_ballot_key(party)
        raw = await self._store.get(key)
        if not raw:
            state.errors.append(f"{party}: no ballot data at {key}")
            self._logger.warning("ballot_missing", party=party, key=key)
            return
        try:
            ballot = Ballot.from_json(raw)
        except ValidationError as exc:
            state.errors.append(f"{party}: invalid ballot JSON ({exc.error_count()} error(s))")
            self._logger.warning("ballot_invalid", party=party, key=key)
            return

        baseline = await self._guard.load(party)
        races: list[Race] = list(ballot.races)
        changed = False

        for index, race in enumerate(ballot.races):
            if state.aborted:
                break
            rkey = race_key(party, race)
            if not race.is_contested:
                state.log.append(f"{rkey}: skipped (uncontested)")
                continue
            if state.tracker.should_skip(rkey, today):
                entry = state.tracker.entry(rkey)
                state.log.append(
                    f"{rkey}: skipped (stale, {entry.null_count} consecutive null updates)"
                )
                self._logger.info("race_skipped_stale", race=rkey, null_count=entry.null_count)
                continue

            if state.calls > 0:
                await self._sleep(self._config.inter_race_delay)
            state.calls += 1

            try:
                outcome = await processor.process(race, party, today, baseline=baseline)
                state.tracker.record(rkey, outcome.meaningful, today)
                state.log.extend(outcome.log)
                state.errors.extend(outcome.errors)
                state.fallbacks.extend(outcome.fallbacks)
                if not outcome.committed:
                    continue

                # Kept before the balance review so a failure there leaves it in place.
                if outcome.race != race:
                    races[index] = outcome.race
                    changed = True
                corrected: list[str] = []
                if outcome.meaningful:
                    review = await corrector.review_race(outcome.race, party, dry_run=dry_run)
                    state.log.extend(review.log)
                    state.errors.extend(review.errors)
                    corrected = review.corrected
                    if review.race != race:
                        races[index] = review.race
                        changed = True
            except ResearchServiceError as exc:
                state.collector.add(classify_error(exc), rkey, reason=str(exc))
                if exc.is_auth_failure:
                    state.abort(rkey, exc)
                    break
                state.errors.append(f"{rkey}: {exc}")
                continue
            except Exception as exc:
                state.collector.add(classify_error(exc), rkey, reason=str(exc))
                state.errors.append(f"{rkey}: {exc}")
                self._logger.warning("race_failed", race=rkey, error=str(exc))
                continue

            for name in dict.fromkeys(outcome.text_changed + corrected):
                state.changed_candidates.append(
                    ChangedCandidate(name=name, party=party, office=race.office, ballot_key=key)
                )

        if changed and not dry_run:
            updated = ballot.model_copy(update={"races": races})
            problem = validate_ballot(ballot, updated)
            if problem:
                state.errors.append(f"{party}: ballot not saved, {problem}")
                self._logger.warning("ballot_validation_failed", party=party, reason=problem)
                return
            await self._commit_party(party, key, updated, state)

    async def _commit_party(self, party: str, key: str, ballot: Ballot, state: _RunState) -> None:
        now = self._clock()
        await self._store.put(key, ballot.to_json())
        state.updated.append(party)
        try:
            await record_ballot_size(self._store, ballot, party, self._config, now)
        except StoreError as exc:
            self._logger.warning("ballot_size_failed", party=party, error=str(exc))
        try:
            entry = await bump_manifest(self._store, party, self._config, now)
        except StoreError as exc:
            state.errors.append(f"{party}: ballot saved, manifest not updated ({exc})")
            self._logger.warning("manifest_bump_failed", party=party, error=str(exc))
            return
        state.log.append(f"{party}: ballot saved (manifest version {entry.version})")

    async def _invalidate_index(self, today: date, state: _RunState) -> None:
        try:
            await invalidate_candidates_index(self._store, today, self._config.election_date)
        except StoreError as exc:
            self._logger.warning("candidates_index_invalidation_failed", error=str(exc))

    async def _secondary_refresh(
        self,
        dry_run: bool,
        skip: bool,
        collector: ErrorCollector,
        state: _RunState,
    ) -> SecondaryRefreshResult | None:
        if state.aborted:
            return None
        if skip or self._skip_county_refresh:
            state.log.append("county refresh: disabled")
            return None
        try:
            result = await self._county_refresh.refresh(dry_run=dry_run, collector=collector)
        except Exception as exc:
            state.errors.append(f"county refresh failed: {exc}")
            self._logger.warning("secondary_refresh_failed", error=str(exc))
            return None
        if result.skipped:
            state.log.append(f"county refresh: skipped ({result.reason})")
        if result.aborted:
            state.aborted = True
        return result

    async def _regenerate_tones(self, dry_run: bool, today: date, state: _RunState) -> ToneRefreshResult | None:
        changed = list(dict.fromkeys(state.changed_candidates))
        if not changed or not self._config.regenerate_tones:
            return None
        names = ", ".join(c.name for c in changed)
        if dry_run:
            state.log.append(
                f"tone regeneration: would regenerate tones for {len(changed)} candidate(s) (dry run): {names}"
            )
            return ToneRefreshResult(candidates_changed=len(changed))
        if state.aborted:
            return None

        state.log.append(f"tone regeneration: {len(changed)} candidate(s) with text changes: {names}")
        try:
            result = await self._tones.regenerate(changed)
        except ResearchServiceError as exc:
            state.collector.add(ErrorCategory.API_ERROR, "tones", reason=str(exc))
            state.abort("tones", exc)
            return ToneRefreshResult(candidates_changed=len(changed), errors=[str(exc)])
        state.errors.extend(f"tone: {e}" for e in result.errors)
        if result.regenerated:
            state.log.append(f"tone regeneration: {result.regenerated} tone(s) regenerated")
            await self._invalidate_index(today, state)
        return result

    async def _persist_logs(self, result: DailyUpdateResult, today: date, state: _RunState) -> None:
        await self._run_log.write_update_log(today, result.model_dump(mode="json", by_alias=True))
        await self._run_log.write_error_log(today, state.collector)
        await self._run_log.append_fallbacks(today, state.fallbacks)
        await self._run_log.purge_old_logs(today)
