"""Pydantic v2 data models for the election updater.

- **ballot** -- Ballot / Race / Candidate plus the tone-aware text variant.
- **update** -- what a research call returns (RaceUpdate, ResearchResponse).
- **baseline** -- verified baselines, contradictions and fallback records.
- **diagnostics** -- error taxonomy, error log entries, balance scores.
- **tracking** -- staleness, county rotation, manifest and size metrics.
- **results** -- return values of the public pipeline operations.
"""

from election_updater.models.ballot import (
    Ballot,
    Candidate,
    ConfidenceLevel,
    Endorsement,
    FieldConfidence,
    PlainText,
    Race,
    Source,
    ToneText,
    ToneVariants,
    race_key,
    resolve_text,
)
from election_updater.models.baseline import (
    BaselineCandidate,
    BaselineRace,
    Contradiction,
    FallbackEntry,
    VerifiedBaseline,
)
from election_updater.models.diagnostics import (
    BalanceFlag,
    BalanceScore,
    BalanceSeverity,
    ErrorCategory,
    ErrorLogEntry,
    ErrorSummary,
)
from election_updater.models.results import (
    BalanceCorrectionReport,
    DailyUpdateResult,
    SecondaryRefreshResult,
    ToneRefreshResult,
)
from election_updater.models.update import (
    CandidateUpdate,
    RaceUpdate,
    ResearchResponse,
    TokenUsage,
    is_update_meaningful,
)

__all__ = [
    "BalanceCorrectionReport",
    "BalanceFlag",
    "BalanceScore",
    "BalanceSeverity",
    "Ballot",
    "BaselineCandidate",
    "BaselineRace",
    "Candidate",
    "CandidateUpdate",
    "ConfidenceLevel",
    "Contradiction",
    "DailyUpdateResult",
    "Endorsement",
    "ErrorCategory",
    "ErrorLogEntry",
    "ErrorSummary",
    "FallbackEntry",
    "FieldConfidence",
    "PlainText",
    "Race",
    "RaceUpdate",
    "ResearchResponse",
    "SecondaryRefreshResult",
    "Source",
    "TokenUsage",
    "ToneRefreshResult",
    "ToneText",
    "ToneVariants",
    "VerifiedBaseline",
    "is_update_meaningful",
    "race_key",
    "resolve_text",
]
