"""Utility modules for the election updater.

- **errors** -- exception hierarchy rooted at ElectionUpdaterError plus the
  ServiceStatus classification of failed research calls.
- **logging** -- structlog setup: coloured console output in development,
  structured JSON in production.
- **retry** -- RetryPolicy for rate-limited / overloaded research calls.
- **text** -- word-token Jaccard similarity and whitespace helpers.
"""

# -- Domain exception hierarchy --------------------------------------------
from election_updater.utils.errors import (
    ConfigurationError,
    ElectionUpdaterError,
    EmptyResponseError,
    ExtractionError,
    PipelineError,
    RateLimitExhaustedError,
    ResearchServiceError,
    ServiceStatus,
    StoreError,
    classify_status,
)

# -- Structured logging setup ----------------------------------------------
from election_updater.utils.logging import configure_logging, get_logger, run_context

# -- Retry policy ------------------------------------------------------------
from election_updater.utils.retry import RetryPolicy

# -- Text comparison -----------------------------------------------------------
from election_updater.utils.text import compute_token_similarity

__all__ = [
    "ConfigurationError",
    "ElectionUpdaterError",
    "EmptyResponseError",
    "ExtractionError",
    "PipelineError",
    "RateLimitExhaustedError",
    "ResearchServiceError",
    "RetryPolicy",
    "ServiceStatus",
    "StoreError",
    "classify_status",
    "compute_token_similarity",
    "configure_logging",
    "get_logger",
    "run_context",
]
