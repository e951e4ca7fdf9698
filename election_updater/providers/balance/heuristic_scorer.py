"""Rule-based balance scorer.

Scores a candidate's pros and cons (default tone) on four checks:

    missing_both / missing_pros / missing_cons   critical
    count_imbalance   (more than 2:1)             warning
    generic_content   (over half are stock phrases) warning
    length_imbalance  (total text over 2x)        info

The 0-100 score starts at 100 and loses 25 per critical, 10 per warning and
3 per info flag, floored at zero.
"""

from __future__ import annotations

from election_updater.interfaces.balance_scorer import IBalanceScorer
from election_updater.models.ballot import Candidate
from election_updater.models.diagnostics import BalanceFlag, BalanceScore, BalanceSeverity

SEVERITY_WEIGHTS: dict[BalanceSeverity, int] = {
    BalanceSeverity.CRITICAL: 25,
    BalanceSeverity.WARNING: 10,
    BalanceSeverity.INFO: 3,
}

_MAX_RATIO = 2.0

# Phrases too vague to tell voters anything.  Matched case-insensitively
# against short items only.
_GENERIC_PHRASES = (
    "experienced leader", "strong advocate", "fresh perspective",
    "dedicated public servant", "committed to change", "fights for families",
    "fights for working families", "champion for the people", "proven leader",
    "proven track record", "strong leadership", "strong leader", "bold vision",
    "passionate about", "cares about the community", "gets things done",
    "puts people first", "fighting for you", "real change", "new ideas",
    "fresh ideas", "career politician", "out of touch", "too extreme",
    "lacks experience", "no clear plan", "typical politician", "empty promises",
    "all talk", "more of the same", "status quo", "political insider",
)


def matches_generic_phrase(text: str) -> str | None:
    """Return the stock phrase *text* essentially consists of, if any."""
    lowered = text.lower().strip()
    for phrase in _GENERIC_PHRASES:
        if lowered == phrase:
            return phrase
        # A short item where the phrase makes up at least half the text.
        if len(lowered) < 60 and phrase in lowered and len(phrase) >= len(lowered) * 0.5:
            return phrase
    return None


class HeuristicBalanceScorer(IBalanceScorer):
    """Count-, length- and phrase-based fairness checks."""

    def score(self, candidate: Candidate) -> BalanceScore:
        pros = [p for p in candidate.pros_text() if p]
        cons = [c for c in candidate.cons_text() if c]
        flags = self._flags(pros, cons)
        deductions = sum(SEVERITY_WEIGHTS[f.severity] for f in flags)
        return BalanceScore(
            flags=flags,
            balance_score=max(0, 100 - deductions),
            pros_count=len(pros),
            cons_count=len(cons),
        )

    @staticmethod
    def _flags(pros: list[str], cons: list[str]) -> list[BalanceFlag]:
        if not pros and not cons:
            return [
                BalanceFlag(
                    type="missing_both",
                    severity=BalanceSeverity.CRITICAL,
                    detail="No pros or cons listed",
                )
            ]

        flags: list[BalanceFlag] = []
        if not pros:
            flags.append(BalanceFlag(
                type="missing_pros",
                severity=BalanceSeverity.CRITICAL,
                detail=f"Has {len(cons)} cons but no pros",
            ))
        if not cons:
            flags.append(BalanceFlag(
                type="missing_cons",
                severity=BalanceSeverity.CRITICAL,
                detail=f"Has {len(pros)} pros but no cons",
            ))
        if not pros or not cons:
            return flags

        count_ratio = max(len(pros), len(cons)) / min(len(pros), len(cons))
        if count_ratio > _MAX_RATIO:
            favoured = "pros" if len(pros) > len(cons) else "cons"
            flags.append(BalanceFlag(
                type="count_imbalance",
                severity=BalanceSeverity.WARNING,
                detail=f"{len(pros)} pros vs {len(cons)} cons "
                       f"({count_ratio:.1f}:1 ratio favoring {favoured})",
            ))

        generic = [m for m in (matches_generic_phrase(t) for t in pros + cons) if m]
        if len(generic) / (len(pros) + len(cons)) > 0.5:
            flags.append(BalanceFlag(
                type="generic_content",
                severity=BalanceSeverity.WARNING,
                detail=f"{len(generic)} of {len(pros) + len(cons)} pros/cons are generic phrases",
            ))

        pros_length = sum(len(p) for p in pros)
        cons_length = sum(len(c) for c in cons)
        length_ratio = max(pros_length, cons_length) / min(pros_length, cons_length)
        if length_ratio > _MAX_RATIO:
            longer = "pros" if pros_length > cons_length else "cons"
            flags.append(BalanceFlag(
                type="length_imbalance",
                severity=BalanceSeverity.INFO,
                detail=f"Total {longer} text is {length_ratio:.1f}x longer "
                       f"({pros_length} vs {cons_length} chars)",
            ))
        return flags
