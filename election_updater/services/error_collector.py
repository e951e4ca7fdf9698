"""Structured error collection for update runs.

One :class:`ErrorCollector` lives for the duration of a run.  Every stage
records what went wrong (or what was auto-fixed) with a category from the
closed :class:`ErrorCategory` taxonomy and a context string naming the race,
county or candidate.  At the end of the run the collector is summarised into
the run result and persisted as ``error_log:{date}``.
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from election_updater.models.diagnostics import (
    ContextCount,
    ErrorCategory,
    ErrorLog,
    ErrorLogEntry,
    ErrorSummary,
)
from election_updater.utils.errors import (
    EmptyResponseError,
    ExtractionError,
    RateLimitExhaustedError,
    ResearchServiceError,
    ServiceStatus,
)
from election_updater.utils.logging import get_logger

_TOP_OFFENDERS = 10
_ATTENTION_THRESHOLD = 2


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def classify_error(exc: BaseException) -> ErrorCategory:
    """Map an exception raised while processing a race onto the taxonomy."""
    if isinstance(exc, RateLimitExhaustedError):
        return ErrorCategory.RATE_LIMIT_EXHAUSTED
    if isinstance(exc, EmptyResponseError):
        return ErrorCategory.EMPTY_RESPONSE
    if isinstance(exc, (ExtractionError, json.JSONDecodeError, ValidationError)):
        return ErrorCategory.JSON_PARSE_FAILURE
    if isinstance(exc, ResearchServiceError):
        if exc.status is ServiceStatus.RATE_LIMIT:
            return ErrorCategory.RATE_LIMIT_EXHAUSTED
        return ErrorCategory.API_ERROR
    message = str(exc).lower()
    if "429" in message or "rate limit" in message:
        return ErrorCategory.RATE_LIMIT_EXHAUSTED
    if "json" in message or "parse" in message:
        return ErrorCategory.JSON_PARSE_FAILURE
    return ErrorCategory.API_ERROR


class ErrorCollector:
    """Accumulates :class:`ErrorLogEntry` records for one run."""

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock
        self._entries: list[ErrorLogEntry] = []
        self._logger = get_logger(__name__)

    def add(self, category: ErrorCategory, context: str, **details: Any) -> ErrorLogEntry:
        entry = ErrorLogEntry(
            category=category,
            context=context,
            timestamp=self._clock(),
            details=details,
        )
        self._entries.append(entry)
        log = (
            self._logger.info
            if category is ErrorCategory.BALANCE_CORRECTION_SUCCESS
            else self._logger.warning
        )
        log("pipeline_diagnostic", category=category.value, context=context, **details)
        return entry

    @property
    def entries(self) -> list[ErrorLogEntry]:
        return list(self._entries)

    def by_category(self, category: ErrorCategory) -> list[ErrorLogEntry]:
        return [e for e in self._entries if e.category is category]

    def __len__(self) -> int:
        return len(self._entries)

    def summary(self) -> ErrorSummary:
        category_counts = Counter(e.category.value for e in self._entries)
        context_counts = Counter(e.context for e in self._entries)
        ranked = [
            ContextCount(context=context, count=count)
            for context, count in context_counts.most_common()
        ]
        return ErrorSummary(
            total_errors=len(self._entries),
            category_counts=dict(category_counts),
            top_offenders=ranked[:_TOP_OFFENDERS],
            needs_attention=[c for c in ranked if c.count >= _ATTENTION_THRESHOLD],
        )

    def to_log(self) -> ErrorLog:
        return ErrorLog(
            generated_at=self._clock(),
            summary=self.summary(),
            entries=list(self._entries),
        )
