"""One race through research, merge, validation and the baseline guard.

Pipeline per race::

    research (+repair)  ->  diagnostics  ->  merge  ->  validate  ->  guard

Nothing is written here.  The processor returns a :class:`RaceOutcome`
telling the caller whether the race may be committed, what to record for
staleness and which candidates need their tone variants regenerated.  Service
and extraction failures propagate to the caller, which classifies them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable

from election_updater.config.election import ElectionConfig
from election_updater.models.ballot import Race, race_key
from election_updater.models.baseline import FallbackEntry, VerifiedBaseline
from election_updater.models.diagnostics import ErrorCategory
from election_updater.models.update import is_update_meaningful
from election_updater.services.baseline_guard import BaselineGuard
from election_updater.services.error_collector import ErrorCollector
from election_updater.services.merge import MergeEngine
from election_updater.services.research_client import ResearchClient
from election_updater.services.source_quality import SourceQualityService
from election_updater.services.tone_refresher import did_candidate_text_change
from election_updater.services.validation import validate_race_update
from election_updater.utils.logging import get_logger


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


@dataclass
class RaceOutcome:
    """What happened to one race.

    ``race`` is the race to store when ``committed`` is true; otherwise it is
    the untouched input.  ``meaningful`` feeds the staleness tracker.
    """

    key: str
    race: Race
    committed: bool = False
    meaningful: bool = False
    text_changed: list[str] = field(default_factory=list)
    fallbacks: list[FallbackEntry] = field(default_factory=list)
    log: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class RaceProcessor:
    """Runs a single race through the update pipeline."""

    def __init__(
        self,
        client: ResearchClient,
        merge: MergeEngine,
        source_quality: SourceQualityService,
        config: ElectionConfig,
        collector: ErrorCollector,
        guard: BaselineGuard | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._client = client
        self._merge = merge
        self._sources = source_quality
        self._config = config
        self._collector = collector
        self._guard = guard
        self._clock = clock
        self._logger = get_logger(__name__)

    async def process(
        self,
        race: Race,
        party: str,
        today: date,
        baseline: VerifiedBaseline | None = None,
        context: str | None = None,
    ) -> RaceOutcome:
        """Research *race* and decide whether its update can be committed.

        Parameters
        ----------
        race:
            The race as currently stored.
        party:
            Ballot party, used for the race key and the prompt.
        today:
            Run date; sets the research lookback window.
        baseline:
            The party's verified baseline, if one has been seeded.
        context:
            Diagnostic context; defaults to the race key.
        """
        key = race_key(party, race)
        context = context or key
        outcome = RaceOutcome(key=key, race=race)

        research = await self._client.research_race(
            race, party, today, self._config.search_budget_for(race.office), context=context
        )
        if research.empty:
            outcome.log.append(f"{context}: no updates found")
            self._collector.add(
                ErrorCategory.EMPTY_RESPONSE, context,
                reason="research call returned no text content",
            )
            return outcome

        update = research.update
        outcome.meaningful = is_update_meaningful(update)
        if not outcome.meaningful:
            self._collector.add(
                ErrorCategory.ALL_NULL_UPDATE, context,
                reason="All candidate fields returned null",
            )

        report = self._sources.detect_low_quality(research.citations)
        if report is not None:
            self._collector.add(
                ErrorCategory.LOW_QUALITY_SOURCES, context,
                reason=f"{report.flagged}/{report.total} sources from unreliable domains",
                domains=report.domains,
            )
        if not research.citations and not any(c.sources for c in update.candidates):
            self._collector.add(
                ErrorCategory.NO_SEARCH_RESULTS, context,
                reason="No sources found from web search or candidate-level references",
            )

        text_changed = [
            u.name for u in update.candidates
            if did_candidate_text_change(race.find_candidate(u.name), u)
        ]

        merged = self._merge.merge_race(race, update, research.citations, now=self._clock())
        reason = validate_race_update(race, merged)
        if reason is not None:
            outcome.errors.append(f"{context}: validation failed: {reason}")
            self._collector.add(
                ErrorCategory.VALIDATION_FAILURE, context,
                reason=reason,
                candidate_names=[c.name for c in update.candidates],
            )
            return outcome

        final = merged
        if self._guard is not None and baseline is not None:
            guarded = self._guard.check(merged, baseline, party)
            outcome.fallbacks = guarded.fallbacks
            if guarded.contradictions:
                self._collector.add(
                    ErrorCategory.BASELINE_FALLBACK, context,
                    reason=f"{len(guarded.contradictions)} field(s) contradicted baseline",
                    fallbacks=[f.detail for f in guarded.fallbacks],
                )
            for entry in guarded.fallbacks:
                outcome.log.append(f"{context}: BASELINE FALLBACK: {entry.detail}")
            if guarded.rejected:
                outcome.errors.append(f"{context}: rejected, contradicts verified baseline")
                return outcome
            final = guarded.race

        outcome.race = final
        outcome.committed = True
        outcome.text_changed = text_changed
        outcome.log.append(f"{context}: updated" if outcome.meaningful else f"{context}: no new information")
        self._logger.info(
            "race_researched",
            race=context,
            meaningful=outcome.meaningful,
            citations=len(research.citations),
            repaired=research.repaired,
            fallbacks=len(outcome.fallbacks),
        )
        return outcome
