"""Diagnostic models: the error taxonomy, error-log entries and run summaries.

Errors are recorded as data rather than raised so that one bad race never
stops the rest of the run.  Every entry carries a :class:`ErrorCategory` and
a free-form ``context`` string naming where it happened, e.g.
``"republican/Governor"`` or ``"county/Travis/democrat/County Judge"``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorCategory(str, Enum):  # noqa: UP042
    """Closed taxonomy of everything that can go wrong (or be auto-fixed) in a run."""

    EMPTY_RESPONSE = "empty_response"
    JSON_PARSE_FAILURE = "json_parse_failure"
    NO_SEARCH_RESULTS = "no_search_results"
    ALL_NULL_UPDATE = "all_null_update"
    API_ERROR = "api_error"
    RATE_LIMIT_EXHAUSTED = "rate_limit_exhausted"
    VALIDATION_FAILURE = "validation_failure"
    LOW_QUALITY_SOURCES = "low_quality_sources"
    BASELINE_FALLBACK = "baseline_fallback"
    BALANCE_CORRECTION_FAILED = "balance_correction_failed"
    BALANCE_CORRECTION_SUCCESS = "balance_correction_success"


class ErrorLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: ErrorCategory
    context: str
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    details: dict[str, Any] = Field(default_factory=dict)


class ContextCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    context: str
    count: int


class ErrorSummary(BaseModel):
    """Aggregate view of an :class:`ErrorCollector`.

    ``top_offenders`` lists the ten contexts with the most entries;
    ``needs_attention`` lists every context with two or more entries, which
    usually means the same race failed in more than one way.
    """

    model_config = ConfigDict(frozen=True)

    total_errors: int = 0
    category_counts: dict[str, int] = Field(default_factory=dict)
    top_offenders: list[ContextCount] = Field(default_factory=list)
    needs_attention: list[ContextCount] = Field(default_factory=list)


class ErrorLog(BaseModel):
    """The persisted shape of ``error_log:{date}``."""

    model_config = ConfigDict(frozen=True)

    generated_at: datetime
    summary: ErrorSummary
    entries: list[ErrorLogEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Balance scoring
# ---------------------------------------------------------------------------

class BalanceSeverity(str, Enum):  # noqa: UP042
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class BalanceFlag(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    severity: BalanceSeverity
    detail: str


class BalanceScore(BaseModel):
    """Fairness assessment of a single candidate's pros and cons."""

    model_config = ConfigDict(frozen=True)

    flags: list[BalanceFlag] = Field(default_factory=list)
    balance_score: int = 100
    pros_count: int = 0
    cons_count: int = 0

    @property
    def critical_flags(self) -> list[BalanceFlag]:
        return [f for f in self.flags if f.severity is BalanceSeverity.CRITICAL]

    @property
    def has_critical(self) -> bool:
        return bool(self.critical_flags)
