"""Baseline guard: contain fabricated or drifting research results.

A verified baseline (see :mod:`election_updater.models.baseline`) records
who each candidate is: incumbency, withdrawal status and a background
description someone has checked by hand.  After a race update has been
merged and validated, it is compared against the matching baseline race:

    office differs                 -> the whole race update is rejected
    background token similarity < 0.4
                                   -> background reverted (tone "3" when the
                                      field carries tone variants)
    incumbency differs             -> incumbency reverted
    baseline says withdrawn, merged data says active
                                   -> withdrawn restored

Anything not contradicted still goes through, so a fabricated background
does not cost the candidate their fresh polling numbers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError

from election_updater.config.election import ElectionConfig
from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.models.ballot import Ballot, Race, race_key, replace_default_text, resolve_text
from election_updater.models.baseline import (
    BaselineCandidate,
    BaselineRace,
    Contradiction,
    FallbackEntry,
    VerifiedBaseline,
)
from election_updater.utils.errors import PipelineError
from election_updater.utils.logging import get_logger
from election_updater.utils.text import compute_token_similarity

SIMILARITY_THRESHOLD = 0.4


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Pure comparison / fallback
# ---------------------------------------------------------------------------

def find_baseline_race(baseline: VerifiedBaseline, race: Race) -> BaselineRace | None:
    """Locate the baseline race corresponding to *race*.

    Exact ``(office, district)`` match first; failing that, a baseline race
    in the same district with exactly the same candidate names, so a
    relabelled office is still caught.
    """
    district = race.district or None
    for candidate_race in baseline.races:
        if candidate_race.office == race.office and (candidate_race.district or None) == district:
            return candidate_race
    names = race.candidate_names()
    for candidate_race in baseline.races:
        if (candidate_race.district or None) == district and {
            c.name for c in candidate_race.candidates
        } == names:
            return candidate_race
    return None


def compare_with_baseline(merged: Race, baseline_race: BaselineRace) -> list[Contradiction]:
    """List every way *merged* contradicts *baseline_race*."""
    if baseline_race.office != merged.office:
        return [
            Contradiction(
                field="office",
                candidate=None,
                baseline_value=baseline_race.office,
                proposed_value=merged.office,
                detail="office differs from baseline",
            )
        ]

    contradictions: list[Contradiction] = []
    for expected in baseline_race.candidates:
        actual = merged.find_candidate(expected.name)
        if actual is None:
            continue  # candidate-set changes are the validator's job

        baseline_bg = expected.background or ""
        merged_bg = resolve_text(actual.background, fallback=False) or ""
        if baseline_bg and merged_bg and baseline_bg != merged_bg:
            similarity = compute_token_similarity(baseline_bg, merged_bg)
            if similarity < SIMILARITY_THRESHOLD:
                contradictions.append(Contradiction(
                    field="background",
                    candidate=expected.name,
                    baseline_value=baseline_bg[:120],
                    proposed_value=merged_bg[:120],
                    detail=f"{round(similarity * 100)}% similarity is below "
                           f"{round(SIMILARITY_THRESHOLD * 100)}% threshold",
                ))

        if expected.is_incumbent != actual.is_incumbent:
            contradictions.append(Contradiction(
                field="isIncumbent",
                candidate=expected.name,
                baseline_value=expected.is_incumbent,
                proposed_value=actual.is_incumbent,
                detail="incumbency differs from baseline",
            ))

        if expected.withdrawn and not actual.withdrawn:
            contradictions.append(Contradiction(
                field="withdrawn",
                candidate=expected.name,
                baseline_value=True,
                proposed_value=False,
                detail="withdrawn in baseline",
            ))
    return contradictions


@dataclass
class GuardOutcome:
    """Result of checking one merged race against the baseline.

    ``race`` is ``None`` when the update was rejected outright.
    """

    race: Race | None
    contradictions: list[Contradiction] = field(default_factory=list)
    fallbacks: list[FallbackEntry] = field(default_factory=list)

    @property
    def rejected(self) -> bool:
        return self.race is None


def apply_baseline_fallback(
    merged: Race,
    baseline_race: BaselineRace,
    contradictions: list[Contradiction],
    key: str = "",
) -> GuardOutcome:
    """Revert every contradicted field to its baseline value.

    A race-level contradiction rejects the update instead of patching it.
    """
    if any(c.is_race_level for c in contradictions):
        fallbacks = [
            FallbackEntry(
                race_key=key,
                candidate=None,
                field=c.field,
                detail=f"rejected: expected {c.baseline_value!r}, got {c.proposed_value!r}",
            )
            for c in contradictions
            if c.is_race_level
        ]
        return GuardOutcome(race=None, contradictions=contradictions, fallbacks=fallbacks)

    by_name: dict[str, list[Contradiction]] = {}
    for contradiction in contradictions:
        by_name.setdefault(contradiction.candidate or "", []).append(contradiction)

    fallbacks: list[FallbackEntry] = []
    patched_candidates = []
    for candidate in merged.candidates:
        expected: BaselineCandidate | None = baseline_race.find_candidate(candidate.name)
        issues = by_name.get(candidate.name, [])
        if expected is None or not issues:
            patched_candidates.append(candidate)
            continue
        changes: dict[str, object] = {}
        for issue in issues:
            if issue.field == "background" and expected.background:
                changes["background"] = replace_default_text(candidate.background, expected.background)
                fallbacks.append(FallbackEntry(
                    race_key=key, candidate=candidate.name, field="background",
                    detail=f"background reverted to baseline ({issue.detail})",
                ))
            elif issue.field == "isIncumbent":
                changes["is_incumbent"] = expected.is_incumbent
                fallbacks.append(FallbackEntry(
                    race_key=key, candidate=candidate.name, field="isIncumbent",
                    detail=f"isIncumbent reverted to baseline ({expected.is_incumbent})",
                ))
            elif issue.field == "withdrawn":
                changes["withdrawn"] = expected.withdrawn
                fallbacks.append(FallbackEntry(
                    race_key=key, candidate=candidate.name, field="withdrawn",
                    detail="withdrawn status preserved from baseline",
                ))
        patched_candidates.append(candidate.model_copy(update=changes) if changes else candidate)

    return GuardOutcome(
        race=merged.model_copy(update={"candidates": patched_candidates}),
        contradictions=contradictions,
        fallbacks=fallbacks,
    )


# ---------------------------------------------------------------------------
# Store-backed guard
# ---------------------------------------------------------------------------

class BaselineGuard:
    """Loads, seeds and applies verified baselines."""

    def __init__(
        self,
        store: IStoreProvider,
        config: ElectionConfig,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock
        self._logger = get_logger(__name__)

    async def load(self, party: str) -> VerifiedBaseline | None:
        """Return the party's baseline, or ``None`` if absent or corrupt."""
        key = self._config.baseline_key(party)
        raw = await self._store.get(key)
        if not raw:
            return None
        try:
            return VerifiedBaseline.model_validate_json(raw)
        except ValidationError as exc:
            self._logger.warning("baseline_corrupt", key=key, error=str(exc))
            return None

    def check(self, merged: Race, baseline: VerifiedBaseline | None, party: str) -> GuardOutcome:
        """Compare *merged* with the baseline and patch or reject it."""
        if baseline is None:
            return GuardOutcome(race=merged)
        baseline_race = find_baseline_race(baseline, merged)
        if baseline_race is None:
            return GuardOutcome(race=merged)
        contradictions = compare_with_baseline(merged, baseline_race)
        if not contradictions:
            return GuardOutcome(race=merged)
        outcome = apply_baseline_fallback(
            merged, baseline_race, contradictions, key=race_key(party, merged)
        )
        for entry in outcome.fallbacks:
            self._logger.warning(
                "baseline_fallback",
                race=entry.race_key,
                candidate=entry.candidate,
                field=entry.field,
                detail=entry.detail,
            )
        return outcome

    async def seed_baseline(self, party: str) -> VerifiedBaseline:
        """Snapshot the party's current statewide ballot as its verified baseline.

        Raises
        ------
        PipelineError
            If the party has no stored ballot or it cannot be parsed.
        """
        source_key = self._config.statewide_ballot_key(party)
        raw = await self._store.get(source_key)
        if not raw:
            raise PipelineError(message=f"No ballot data for {party} at {source_key}")
        try:
            ballot = Ballot.from_json(raw)
        except (ValidationError, json.JSONDecodeError) as exc:
            raise PipelineError(message=f"Invalid ballot JSON for {party}: {exc}") from exc

        baseline = VerifiedBaseline(
            party=ballot.party,
            seeded_at=self._clock(),
            source_key=source_key,
            races=[
                BaselineRace(
                    office=race.office,
                    district=race.district or None,
                    candidates=[
                        BaselineCandidate(
                            name=c.name,
                            is_incumbent=c.is_incumbent,
                            background=resolve_text(c.background, fallback=False),
                            summary=resolve_text(c.summary, fallback=False),
                            withdrawn=c.withdrawn,
                        )
                        for c in race.candidates
                    ],
                )
                for race in ballot.races
            ],
        )
        key = self._config.baseline_key(party)
        await self._store.put(key, baseline.to_json())
        self._logger.info(
            "baseline_seeded",
            party=party,
            key=key,
            races=len(baseline.races),
            candidates=sum(len(r.candidates) for r in baseline.races),
        )
        return baseline
