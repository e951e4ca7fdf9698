"""Custom exception hierarchy for the election updater.

All application exceptions inherit from :class:`ElectionUpdaterError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "anthropic", "sqlite") caused the failure.

The hierarchy is organized by pipeline stage:

    ElectionUpdaterError  (base -- catch-all for any updater error)
    +-- ResearchServiceError     (research call failed; carries a ServiceStatus)
    +-- RateLimitExhaustedError  (retry policy gave up on 429/529 responses)
    +-- EmptyResponseError       (the service answered with no text at all)
    +-- ExtractionError          (no JSON object survived extraction + repair)
    +-- StoreError               (key-value store read/write failure)
    +-- PipelineError            (orchestration / run-lease failures)
    +-- ConfigurationError       (startup / missing config)

The orchestrator catches these per race and maps them onto the error
taxonomy with :func:`election_updater.services.error_collector.classify_error`.
"""

from __future__ import annotations

from enum import Enum


class ServiceStatus(str, Enum):  # noqa: UP042
    """Coarse classification of a failed research-service call."""

    AUTH = "auth"                # 401 / 403 -- credentials rejected
    RATE_LIMIT = "rate_limit"    # 429
    OVERLOADED = "overloaded"    # 529 / 503 -- service temporarily saturated
    SERVER = "server"            # any other 5xx
    NETWORK = "network"          # no HTTP response at all
    OTHER = "other"              # anything else (4xx, malformed request ...)


def classify_status(status_code: int | None) -> ServiceStatus:
    """Map an HTTP status code from the research service onto a :class:`ServiceStatus`."""
    if status_code is None:
        return ServiceStatus.NETWORK
    if status_code in (401, 403):
        return ServiceStatus.AUTH
    if status_code == 429:
        return ServiceStatus.RATE_LIMIT
    if status_code in (503, 529):
        return ServiceStatus.OVERLOADED
    if status_code >= 500:
        return ServiceStatus.SERVER
    return ServiceStatus.OTHER


class ElectionUpdaterError(Exception):
    """Base exception for all election updater errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for log
    scanning, e.g. ``[anthropic] Research service returned 500``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Research service errors
# ---------------------------------------------------------------------------

class ResearchServiceError(ElectionUpdaterError):
    """Raised when a call to the research service fails.

    ``status`` decides what the caller does next: the retry policy retries
    RATE_LIMIT and OVERLOADED, the orchestrator aborts the run on AUTH, and
    everything else fails only the current race.
    """

    def __init__(
        self,
        message: str = "Research service call failed",
        provider_name: str | None = None,
        status: ServiceStatus = ServiceStatus.OTHER,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status = status
        self._status_code = status_code

    @property
    def status(self) -> ServiceStatus:
        return self._status

    @property
    def status_code(self) -> int | None:
        return self._status_code

    @property
    def is_auth_failure(self) -> bool:
        return self._status is ServiceStatus.AUTH


class RateLimitExhaustedError(ElectionUpdaterError):
    """Raised when every retry attempt hit a rate-limit or overload response."""

    def __init__(
        self,
        message: str = "Rate limit persisted after all retries",
        provider_name: str | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.attempts = attempts


class EmptyResponseError(ElectionUpdaterError):
    """Raised when the research service returns no text segments."""

    def __init__(
        self,
        message: str = "Research service returned no text content",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(ElectionUpdaterError):
    """Raised when no JSON object can be recovered, even after the repair call."""

    def __init__(
        self,
        message: str = "Could not extract structured data from response",
        provider_name: str | None = None,
        raw_excerpt: str = "",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.raw_excerpt = raw_excerpt


# ---------------------------------------------------------------------------
# Storage / orchestration / configuration errors
# ---------------------------------------------------------------------------

class StoreError(ElectionUpdaterError):
    """Raised when the key-value store cannot be read or written."""

    def __init__(
        self,
        message: str = "Key-value store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PipelineError(ElectionUpdaterError):
    """Raised when pipeline orchestration fails (lease conflicts, aborted runs)."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(ElectionUpdaterError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
