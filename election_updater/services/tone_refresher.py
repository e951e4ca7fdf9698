"""Regenerate reading-level tone variants for candidates whose text changed.

Tone ``3`` is the text the research pipeline writes; the other tones are
rewrites of it.  When a daily update changes a candidate's summary, pros or
cons, the stale rewrites are regenerated one tone at a time.  Each call
re-reads the ballot from the store right before writing so sequential tone
writes never clobber each other.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Awaitable, Callable

from pydantic import ValidationError

from election_updater.config.election import ElectionConfig
from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.models.ballot import (
    DEFAULT_TONE,
    Ballot,
    Candidate,
    ToneText,
    ToneVariants,
)
from election_updater.models.results import ToneRefreshResult
from election_updater.models.update import CandidateUpdate, ToneRewrite
from election_updater.services.research_client import ResearchClient
from election_updater.utils.errors import ElectionUpdaterError, PipelineError, ResearchServiceError
from election_updater.utils.logging import get_logger

Sleeper = Callable[[float], Awaitable[None]]

_PROMPT_TEMPLATE = """\
Rewrite ALL of the following candidate text fields in a {tone_label} tone. Keep the same factual content and meaning, just adjust the language style and complexity. Keep each item roughly the same length as the original.

Candidate: {name}
Race: {office}

FIELDS TO REWRITE:
{fields}
Return a JSON object with: "summary" (string), "pros" (array of strings), "cons" (array of strings). Keep the same number of items in each array.

Return ONLY valid JSON, no markdown fences, no explanation."""


def did_candidate_text_change(original: Candidate | None, update: CandidateUpdate | None) -> bool:
    """True when *update* changes the default-tone summary, pros or cons of *original*."""
    if original is None or update is None:
        return False
    if update.summary and update.summary != (original.summary_text() or ""):
        return True
    if update.pros and list(update.pros) != original.pros_text():
        return True
    if update.cons and list(update.cons) != original.cons_text():
        return True
    return False


@dataclass(frozen=True)
class ChangedCandidate:
    """A candidate queued for tone regeneration."""

    name: str
    party: str
    office: str
    ballot_key: str


def _with_tone(current: ToneText | None, original: str, tone: int, text: str) -> ToneVariants:
    variants = dict(current.variants) if isinstance(current, ToneVariants) else {}
    variants.setdefault(DEFAULT_TONE, original)
    variants[tone] = text
    return ToneVariants(variants=variants)


class ToneRefresher:
    """Rewrites changed candidate text into each configured tone."""

    def __init__(
        self,
        store: IStoreProvider,
        client: ResearchClient,
        config: ElectionConfig,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._store = store
        self._client = client
        self._config = config
        self._sleep = sleep
        self._logger = get_logger(__name__)

    async def regenerate(self, changed: list[ChangedCandidate]) -> ToneRefreshResult:
        """Regenerate every configured tone for every candidate in *changed*.

        Failures are collected per candidate and tone; an authentication
        failure is re-raised because no later call can succeed either.
        """
        unique = list(dict.fromkeys(changed))
        regenerated = 0
        errors: list[str] = []
        for candidate in unique:
            for tone in self._config.tones_to_regenerate:
                await self._sleep(self._config.tone_delay)
                label = f"{candidate.party}/{candidate.name}/tone{tone}"
                try:
                    await self.generate_tone(candidate, tone)
                    regenerated += 1
                except ResearchServiceError as exc:
                    if exc.is_auth_failure:
                        raise
                    errors.append(f"{label}: {exc}")
                except (ElectionUpdaterError, ValidationError) as exc:
                    errors.append(f"{label}: {exc}")

        self._logger.info(
            "tones_regenerated",
            candidates=len(unique),
            regenerated=regenerated,
            errors=len(errors),
        )
        return ToneRefreshResult(
            candidates_changed=len(unique), regenerated=regenerated, errors=errors
        )

    async def generate_tone(self, changed: ChangedCandidate, tone: int) -> int:
        """Write one tone variant for one candidate; return the number of fields updated.

        Raises
        ------
        PipelineError
            If the ballot or candidate cannot be found, or there is no text.
        """
        ballot = await self._load(changed.ballot_key)
        candidate, office = self._find(ballot, changed)
        original_summary = candidate.summary_text() or ""
        original_pros = candidate.pros_text()
        original_cons = candidate.cons_text()
        if not original_summary and not original_pros and not original_cons:
            raise PipelineError(message="no text fields to process")

        fields = ""
        if original_summary:
            fields += f"summary: {json.dumps(original_summary)}\n\n"
        if original_pros:
            fields += f"pros: {json.dumps(original_pros)}\n\n"
        if original_cons:
            fields += f"cons: {json.dumps(original_cons)}\n\n"

        result = await self._client.complete_structured(
            prompt=_PROMPT_TEMPLATE.format(
                tone_label=self._config.tone_labels.get(tone, "standard"),
                name=changed.name,
                office=office,
                fields=fields,
            ),
            max_tokens=self._config.tone_max_tokens,
            component="updater",
            context=f"{changed.party}/{changed.name}/tone{tone}",
        )
        rewrite = ToneRewrite.model_validate(result.data)

        # Another tone may have been written since the first read.
        fresh_ballot = await self._load(changed.ballot_key)
        fresh, _ = self._find(fresh_ballot, changed)

        changes: dict[str, object] = {}
        if rewrite.summary and original_summary:
            changes["summary"] = _with_tone(fresh.summary, original_summary, tone, rewrite.summary)
        if rewrite.pros is not None:
            changes["pros"] = [
                _with_tone(fresh.pros[i] if i < len(fresh.pros) else None, text, tone,
                           rewrite.pros[i] if i < len(rewrite.pros) and rewrite.pros[i] else text)
                for i, text in enumerate(original_pros)
            ]
        if rewrite.cons is not None:
            changes["cons"] = [
                _with_tone(fresh.cons[i] if i < len(fresh.cons) else None, text, tone,
                           rewrite.cons[i] if i < len(rewrite.cons) and rewrite.cons[i] else text)
                for i, text in enumerate(original_cons)
            ]

        updated = fresh.model_copy(update=changes)
        races = [
            race.model_copy(update={
                "candidates": [updated if c is fresh else c for c in race.candidates]
            })
            for race in fresh_ballot.races
        ]
        await self._store.put(
            changed.ballot_key, fresh_ballot.model_copy(update={"races": races}).to_json()
        )
        return len(changes)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _load(self, key: str) -> Ballot:
        raw = await self._store.get(key)
        if not raw:
            raise PipelineError(message="no ballot data")
        try:
            return Ballot.from_json(raw)
        except ValidationError as exc:
            raise PipelineError(message=f"invalid ballot JSON: {exc.error_count()} error(s)") from exc

    @staticmethod
    def _find(ballot: Ballot, changed: ChangedCandidate) -> tuple[Candidate, str]:
        fallback: tuple[Candidate, str] | None = None
        for race in ballot.races:
            candidate = race.find_candidate(changed.name)
            if candidate is None:
                continue
            if race.office == changed.office:
                return candidate, race.office
            fallback = fallback or (candidate, race.office)
        if fallback is None:
            raise PipelineError(message=f'candidate "{changed.name}" not found')
        return fallback

