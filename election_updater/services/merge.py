"""Non-destructive merge of research updates into stored race data.

Rules:
    - Only whitelisted fields are touched (polling, fundraising,
      endorsements, keyPositions, pros, cons, summary, background).
      Identity and manual flags (name, isIncumbent, withdrawn) never change.
    - A field applies only when the update carries a real value: ``None``,
      ``""`` and ``[]`` all mean "no new information".
    - List fields are replaced wholesale; the research prompt asks for the
      full updated list, not a delta.
    - Sources reported for a candidate plus the call's own citations are
      merged into the candidate's sources (existing win, max 20).
    - Per-field confidence is recomputed for every candidate in the race.

The input race is never modified; a new :class:`Race` is returned.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from election_updater.models.ballot import Candidate, Endorsement, PlainText, Race, Source
from election_updater.models.update import CandidateUpdate, EndorsementUpdate, RaceUpdate
from election_updater.services.source_quality import (
    SourceQualityService,
    merge_sources,
    normalize_source,
)


def _has_value(value: Any) -> bool:
    return value is not None and value != "" and value != []


def _normalize_endorsements(raw: list[str | EndorsementUpdate]) -> list[Endorsement]:
    endorsements: list[Endorsement] = []
    for item in raw:
        if isinstance(item, str):
            if item.strip():
                endorsements.append(Endorsement(name=item, type=None))
        elif item.name.strip():
            endorsements.append(Endorsement(name=item.name, type=item.type))
    return endorsements


class MergeEngine:
    """Applies a :class:`RaceUpdate` to a :class:`Race`."""

    def __init__(self, source_quality: SourceQualityService) -> None:
        self._sources = source_quality

    def merge_race(
        self,
        race: Race,
        update: RaceUpdate,
        api_sources: list[Source] | None = None,
        now: datetime | None = None,
    ) -> Race:
        """Return a copy of *race* with *update* applied.

        Parameters
        ----------
        race:
            The race as currently stored.
        update:
            Parsed research result.  Entries whose name matches no candidate
            are ignored.
        api_sources:
            Citations harvested from the research call itself; offered to
            every candidate the update mentions.
        now:
            Timestamp for ``sourcesUpdatedAt`` and default access dates.
        """
        now = now or datetime.now(tz=timezone.utc)  # noqa: UP017
        today = now.date()
        call_sources = [s for s in (normalize_source(x, today) for x in api_sources or []) if s]

        merged_candidates: list[Candidate] = []
        for candidate in race.candidates:
            candidate_update = update.for_candidate(candidate.name)
            if candidate_update is not None:
                candidate = self._apply(candidate, candidate_update, call_sources, now, today)
            candidate = candidate.model_copy(
                update={"confidence": self._sources.compute_confidence(candidate)}
            )
            merged_candidates.append(candidate)

        return race.model_copy(update={"candidates": merged_candidates})

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _apply(
        candidate: Candidate,
        update: CandidateUpdate,
        call_sources: list[Source],
        now: datetime,
        today: date,
    ) -> Candidate:
        changes: dict[str, Any] = {}

        for field_name in ("polling", "fundraising"):
            value = getattr(update, field_name)
            if _has_value(value):
                changes[field_name] = value
        if _has_value(update.key_positions):
            changes["key_positions"] = list(update.key_positions)
        if _has_value(update.endorsements):
            endorsements = _normalize_endorsements(update.endorsements)
            if endorsements:
                changes["endorsements"] = endorsements
        for field_name in ("pros", "cons"):
            items = [t for t in (getattr(update, field_name) or []) if t.strip()]
            if items:
                changes[field_name] = [PlainText(text=t) for t in items]
        for field_name in ("summary", "background"):
            value = getattr(update, field_name)
            if _has_value(value) and value.strip():
                changes[field_name] = PlainText(text=value)

        reported = [s for s in (normalize_source(x, today) for x in update.sources or []) if s]
        incoming = reported + call_sources
        if incoming:
            changes["sources"] = merge_sources(candidate.sources, incoming)
            changes["sources_updated_at"] = now.isoformat()

        return candidate.model_copy(update=changes) if changes else candidate
