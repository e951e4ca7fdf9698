"""Return values of the public pipeline operations.

These are what the CLI prints and what a scheduler inspects.  ``errors`` and
``log`` are human-readable lines; the structured equivalents live in the
error collector and are persisted as the daily error log.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from election_updater.models.diagnostics import ErrorSummary


class BalanceCorrectionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate: str
    race: str
    flags: list[str] = Field(default_factory=list)
    success: bool = False
    dry_run: bool = False
    error: str | None = None


class BalanceCorrectionReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[BalanceCorrectionResult] = Field(default_factory=list)


class ToneRefreshResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidates_changed: int = 0
    regenerated: int = 0
    errors: list[str] = Field(default_factory=list)


class SecondaryRefreshResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    refreshed: list[str] = Field(default_factory=list)
    skipped_stale: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    log: list[str] = Field(default_factory=list)
    skipped: bool = False
    reason: str | None = None
    aborted: bool = False


class DailyUpdateResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    updated: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    log: list[str] = Field(default_factory=list)
    ai_error_summary: ErrorSummary = Field(default_factory=ErrorSummary)
    skipped: bool = False
    reason: str | None = None
    aborted: bool = False
    county: SecondaryRefreshResult | None = None
    tones: ToneRefreshResult | None = None
    balance_corrections: BalanceCorrectionReport = Field(default_factory=BalanceCorrectionReport)
