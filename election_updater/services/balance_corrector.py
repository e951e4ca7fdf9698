"""Post-commit balance scoring and targeted correction.

Every active candidate in a freshly merged race is scored and the score is
stamped onto the candidate as ``balanceScore``.  Candidates with a critical
*missing* flag (no pros, no cons, or neither) get one narrow follow-up
research call asking for at least three of whatever is missing.  A
correction is accepted only when each side it was asked to fix comes back
with two or more entries; otherwise the candidate keeps its data and the
failure is recorded.

One :class:`BalanceCorrector` lives for one run so the correction cap is
shared across parties and races.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from pydantic import ValidationError

from election_updater.config.election import ElectionConfig
from election_updater.interfaces.balance_scorer import IBalanceScorer
from election_updater.models.ballot import Candidate, PlainText, Race, resolve_text
from election_updater.models.diagnostics import BalanceFlag, ErrorCategory
from election_updater.models.results import BalanceCorrectionReport, BalanceCorrectionResult
from election_updater.models.update import BalanceFix
from election_updater.services.error_collector import ErrorCollector
from election_updater.services.research_client import ResearchClient
from election_updater.utils.errors import ElectionUpdaterError, ResearchServiceError
from election_updater.utils.logging import get_logger

Sleeper = Callable[[float], Awaitable[None]]

CORRECTABLE_FLAG_TYPES = frozenset({"missing_pros", "missing_cons", "missing_both"})
MIN_CORRECTED_ITEMS = 2

_SYSTEM_PROMPT = (
    "You are a nonpartisan election data researcher fixing a balance issue. "
    "Use web_search to find verified, factual information. Return ONLY valid "
    "JSON. Never fabricate: use null if you cannot verify."
)

_PROMPT_TEMPLATE = """\
BALANCE CORRECTION: Research this candidate to fix a critical balance imbalance in our election data.

CANDIDATE: {name}
RACE: {label} ({party}, {election_name})
{status}

CURRENT DATA:
  Pros: {pros}
  Cons: {cons}
  Background: {background}
  Summary: {summary}

BALANCE ISSUE: {issues}
{instructions}

Return a JSON object with ONLY the corrected fields:
{{
  "name": "{name}",
  "pros": ["pro 1", "pro 2", "pro 3"],
  "cons": ["con 1", "con 2", "con 3"],
  "summary": "updated summary if needed, or null"
}}

REQUIREMENTS:
- Each pro and con MUST be 30-80 characters, factual, and specific (reference votes, bills, positions, endorsements, or policy stances)
- Do NOT use generic phrases like "strong leader", "fights for families", etc.
- Maintain equal analytical treatment: same depth for pros and cons
- Provide at least 3 of each, ideally matching the count of the existing side
- Return ONLY valid JSON, no markdown fences, no explanation"""


def sides_to_fix(flags: list[BalanceFlag]) -> tuple[bool, bool]:
    """Return ``(needs_pros, needs_cons)`` for a set of correctable flags."""
    types = {f.type for f in flags}
    both = "missing_both" in types
    return both or "missing_pros" in types, both or "missing_cons" in types


def _instructions(needs_pros: bool, needs_cons: bool) -> str:
    if needs_pros and needs_cons:
        return "This candidate is MISSING BOTH pros AND cons. You MUST provide at least 3 pros and 3 cons."
    if needs_pros:
        return ("This candidate has cons but is MISSING pros entirely. "
                "You MUST provide at least 3 pros that are factual and balanced.")
    return ("This candidate has pros but is MISSING cons entirely. "
            "You MUST provide at least 3 cons that are factual and balanced.")


@dataclass
class RaceBalanceReview:
    """What balance review did to one race."""

    race: Race
    corrected: list[str] = field(default_factory=list)
    log: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class BalanceCorrector:
    """Scores candidates and re-researches critical fairness-floor violations."""

    def __init__(
        self,
        client: ResearchClient,
        scorer: IBalanceScorer,
        config: ElectionConfig,
        collector: ErrorCollector,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._client = client
        self._scorer = scorer
        self._config = config
        self._collector = collector
        self._sleep = sleep
        self._attempts = 0
        self._results: list[BalanceCorrectionResult] = []
        self._logger = get_logger(__name__)

    @property
    def attempts_remaining(self) -> int:
        return max(0, self._config.max_balance_corrections - self._attempts)

    def build_prompt(self, candidate: Candidate, race: Race, party: str,
                     flags: list[BalanceFlag]) -> str:
        needs_pros, needs_cons = sides_to_fix(flags)
        pros = [p for p in candidate.pros_text() if p]
        cons = [c for c in candidate.cons_text() if c]
        return _PROMPT_TEMPLATE.format(
            name=candidate.name,
            label=race.label,
            party=party,
            election_name=self._config.election_name,
            status="STATUS: Incumbent" if candidate.is_incumbent else "",
            pros=json.dumps(pros) if pros else "(NONE: this must be fixed)",
            cons=json.dumps(cons) if cons else "(NONE: this must be fixed)",
            background=(candidate.background_text() or "(none)")[:200],
            summary=(candidate.summary_text() or "(none)")[:200],
            issues="; ".join(f"{f.type}: {f.detail}" for f in flags),
            instructions=_instructions(needs_pros, needs_cons),
        )

    async def review_race(self, race: Race, party: str, dry_run: bool = False) -> RaceBalanceReview:
        """Score every active candidate in *race* and correct what can be corrected.

        Raises
        ------
        ResearchServiceError
            Only for authentication failures, which must stop the run.
        """
        review = RaceBalanceReview(race=race)
        candidates: list[Candidate] = []
        for candidate in race.candidates:
            if candidate.withdrawn:
                candidates.append(candidate)
                continue
            candidates.append(await self._review_candidate(candidate, race, party, dry_run, review))
        review.race = race.model_copy(update={"candidates": candidates})
        return review

    def report(self) -> BalanceCorrectionReport:
        succeeded = sum(1 for r in self._results if r.success)
        attempted = sum(1 for r in self._results if not r.dry_run)
        return BalanceCorrectionReport(
            attempted=attempted,
            succeeded=succeeded,
            failed=attempted - succeeded,
            results=list(self._results),
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _review_candidate(
        self,
        candidate: Candidate,
        race: Race,
        party: str,
        dry_run: bool,
        review: RaceBalanceReview,
    ) -> Candidate:
        score = self._scorer.score(candidate)
        candidate = candidate.model_copy(update={"balance_score": score.balance_score})
        flags = [f for f in score.critical_flags if f.type in CORRECTABLE_FLAG_TYPES]
        if not flags:
            return candidate

        context = f"{party}/{race.office}/{candidate.name}"
        flag_types = [f.type for f in flags]

        if dry_run:
            review.log.append(
                f"{context}: would auto-correct CRITICAL balance flags (dry run): {', '.join(flag_types)}"
            )
            self._results.append(BalanceCorrectionResult(
                candidate=candidate.name, race=race.label, flags=flag_types, dry_run=True,
            ))
            return candidate

        if self.attempts_remaining == 0:
            self._logger.info("balance_correction_cap_reached", context=context)
            return candidate

        review.log.append(
            f"{context}: CRITICAL balance flags, attempting auto-correction ({', '.join(flag_types)})"
        )
        await self._sleep(self._config.correction_delay)
        self._attempts += 1

        try:
            fix = await self._request_fix(candidate, race, party, flags, context)
            corrected = self._apply_fix(candidate, fix, flags)
        except ResearchServiceError as exc:
            if exc.is_auth_failure:
                raise
            return self._fail(candidate, race, flag_types, context, str(exc), review)
        except (ElectionUpdaterError, ValidationError) as exc:
            return self._fail(candidate, race, flag_types, context, str(exc), review)

        recheck = self._scorer.score(corrected)
        corrected = corrected.model_copy(update={"balance_score": recheck.balance_score})
        self._results.append(BalanceCorrectionResult(
            candidate=candidate.name, race=race.label, flags=flag_types, success=True,
        ))
        self._collector.add(
            ErrorCategory.BALANCE_CORRECTION_SUCCESS,
            context,
            flags=flag_types,
            score_before=score.balance_score,
            score_after=recheck.balance_score,
        )
        review.corrected.append(candidate.name)
        review.log.append(
            f"{context}: balance correction SUCCEEDED "
            f"(score {score.balance_score} -> {recheck.balance_score})"
        )
        return corrected

    async def _request_fix(
        self,
        candidate: Candidate,
        race: Race,
        party: str,
        flags: list[BalanceFlag],
        context: str,
    ) -> BalanceFix:
        result = await self._client.complete_structured(
            prompt=self.build_prompt(candidate, race, party, flags),
            system_prompt=_SYSTEM_PROMPT,
            max_search_uses=self._config.correction_search_budget,
            max_tokens=self._config.correction_max_tokens,
            component="balance-correction",
            context=context,
        )
        return BalanceFix.model_validate(result.data)

    @staticmethod
    def _apply_fix(candidate: Candidate, fix: BalanceFix, flags: list[BalanceFlag]) -> Candidate:
        needs_pros, needs_cons = sides_to_fix(flags)
        pros = [p for p in fix.pros or [] if p and p.strip()]
        cons = [c for c in fix.cons or [] if c and c.strip()]
        if needs_pros and len(pros) < MIN_CORRECTED_ITEMS:
            raise ElectionUpdaterError(message=f"correction returned {len(pros)} pros")
        if needs_cons and len(cons) < MIN_CORRECTED_ITEMS:
            raise ElectionUpdaterError(message=f"correction returned {len(cons)} cons")

        changes: dict[str, object] = {}
        if len(pros) >= MIN_CORRECTED_ITEMS:
            changes["pros"] = [PlainText(text=p) for p in pros]
        if len(cons) >= MIN_CORRECTED_ITEMS:
            changes["cons"] = [PlainText(text=c) for c in cons]
        summary = (fix.summary or "").strip()
        if summary and summary != "null" and summary != resolve_text(candidate.summary):
            changes["summary"] = PlainText(text=summary)
        return candidate.model_copy(update=changes)

    def _fail(
        self,
        candidate: Candidate,
        race: Race,
        flag_types: list[str],
        context: str,
        reason: str,
        review: RaceBalanceReview,
    ) -> Candidate:
        self._results.append(BalanceCorrectionResult(
            candidate=candidate.name, race=race.label, flags=flag_types, error=reason,
        ))
        self._collector.add(
            ErrorCategory.BALANCE_CORRECTION_FAILED, context, flags=flag_types, reason=reason
        )
        review.log.append(f"{context}: balance correction FAILED: {reason}")
        review.errors.append(f"{context}: balance correction failed: {reason}")
        return candidate
