"""Retry policy for research-service calls.

Rate-limit (429) and overload (529/503) responses are retried with a fixed
escalating delay of ``base_delay * attempt`` seconds: 10 s after the first
failure, 20 s after the second.  Every other failure is re-raised straight
away.  The sleeper is injectable so tests can record delays instead of
waiting for them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from election_updater.utils.errors import (
    RateLimitExhaustedError,
    ResearchServiceError,
    ServiceStatus,
)
from election_updater.utils.logging import get_logger

_T = TypeVar("_T")

_MAX_ATTEMPTS = 3
_RETRY_BACKOFF = 10.0  # seconds; multiplied by the 1-based attempt number

Sleeper = Callable[[float], Awaitable[None]]

_logger = get_logger(__name__)


def _linear_backoff(attempt: int) -> float:
    return _RETRY_BACKOFF * attempt


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a call and how long to wait in between.

    Parameters
    ----------
    max_attempts:
        Total attempts including the first one.
    delay:
        Maps the 1-based number of the attempt that just failed to the
        number of seconds to wait before the next one.
    retry_on:
        Service statuses that are worth retrying.
    """

    max_attempts: int = _MAX_ATTEMPTS
    delay: Callable[[int], float] = _linear_backoff
    retry_on: frozenset[ServiceStatus] = field(
        default_factory=lambda: frozenset({ServiceStatus.RATE_LIMIT, ServiceStatus.OVERLOADED})
    )

    def should_retry(self, exc: ResearchServiceError) -> bool:
        return exc.status in self.retry_on

    async def run(
        self,
        call: Callable[[], Awaitable[_T]],
        sleep: Sleeper = asyncio.sleep,
        context: str = "",
    ) -> _T:
        """Invoke *call* until it succeeds or the policy gives up.

        Raises
        ------
        RateLimitExhaustedError
            If every attempt failed with a retryable status.
        ResearchServiceError
            Immediately, for any non-retryable status (auth failures included).
        """
        last_exc: ResearchServiceError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await call()
            except ResearchServiceError as exc:
                if not self.should_retry(exc):
                    raise
                last_exc = exc
                if attempt == self.max_attempts:
                    break
                wait = self.delay(attempt)
                _logger.warning(
                    "research_call_retry",
                    context=context,
                    status=exc.status.value,
                    attempt=attempt,
                    wait_seconds=wait,
                )
                await sleep(wait)

        provider = last_exc.provider_name if last_exc else None
        raise RateLimitExhaustedError(
            message=f"Research service still throttled after {self.max_attempts} attempts",
            provider_name=provider,
            attempts=self.max_attempts,
        ) from last_exc
