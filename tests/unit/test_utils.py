"""Unit tests for election_updater.utils: errors, retry policy, logging context and text helpers."""

from __future__ import annotations

import pytest
import structlog

from election_updater.utils.errors import (
    ElectionUpdaterError,
    RateLimitExhaustedError,
    ResearchServiceError,
    ServiceStatus,
    classify_status,
)
from election_updater.utils.logging import run_context
from election_updater.utils.retry import RetryPolicy
from election_updater.utils.text import compute_token_similarity, tokenize
from tests.conftest import RecordingSleep


# ======================================================================
# Errors
# ======================================================================


class TestClassifyStatus:
    @pytest.mark.parametrize(
        ("status_code", "expected"),
        [
            (None, ServiceStatus.NETWORK),
            (401, ServiceStatus.AUTH),
            (403, ServiceStatus.AUTH),
            (429, ServiceStatus.RATE_LIMIT),
            (529, ServiceStatus.OVERLOADED),
            (503, ServiceStatus.OVERLOADED),
            (500, ServiceStatus.SERVER),
            (400, ServiceStatus.OTHER),
        ],
    )
    def test_mapping(self, status_code: int | None, expected: ServiceStatus) -> None:
        assert classify_status(status_code) is expected


class TestErrorHierarchy:
    def test_provider_prefix_in_str(self) -> None:
        exc = ResearchServiceError(message="boom", provider_name="anthropic")
        assert str(exc) == "[anthropic] boom"
        assert isinstance(exc, ElectionUpdaterError)

    def test_auth_failure_flag(self) -> None:
        assert ResearchServiceError(status=ServiceStatus.AUTH).is_auth_failure
        assert not ResearchServiceError(status=ServiceStatus.SERVER).is_auth_failure


# ======================================================================
# Retry policy
# ======================================================================


class TestRetryPolicy:
    @pytest.mark.asyncio()
    async def test_retries_rate_limit_with_linear_backoff(self) -> None:
        sleep = RecordingSleep()
        attempts: list[int] = []

        async def call() -> str:
            attempts.append(1)
            if len(attempts) < 3:
                raise ResearchServiceError(status=ServiceStatus.RATE_LIMIT, status_code=429)
            return "ok"

        assert await RetryPolicy().run(call, sleep=sleep) == "ok"
        assert len(attempts) == 3
        assert sleep.calls == [10.0, 20.0]

    @pytest.mark.asyncio()
    async def test_gives_up_after_max_attempts(self) -> None:
        sleep = RecordingSleep()

        async def call() -> str:
            raise ResearchServiceError(
                status=ServiceStatus.OVERLOADED, status_code=529, provider_name="anthropic"
            )

        with pytest.raises(RateLimitExhaustedError) as exc_info:
            await RetryPolicy().run(call, sleep=sleep)
        assert exc_info.value.attempts == 3
        assert exc_info.value.provider_name == "anthropic"
        assert sleep.calls == [10.0, 20.0]

    @pytest.mark.asyncio()
    async def test_auth_failure_is_not_retried(self) -> None:
        sleep = RecordingSleep()
        attempts: list[int] = []

        async def call() -> str:
            attempts.append(1)
            raise ResearchServiceError(status=ServiceStatus.AUTH, status_code=401)

        with pytest.raises(ResearchServiceError):
            await RetryPolicy().run(call, sleep=sleep)
        assert len(attempts) == 1
        assert sleep.calls == []

    @pytest.mark.asyncio()
    async def test_custom_delay(self) -> None:
        sleep = RecordingSleep()
        attempts: list[int] = []

        async def call() -> int:
            attempts.append(1)
            if len(attempts) == 1:
                raise ResearchServiceError(status=ServiceStatus.RATE_LIMIT)
            return 7

        policy = RetryPolicy(max_attempts=2, delay=lambda attempt: 0.5)
        assert await policy.run(call, sleep=sleep) == 7
        assert sleep.calls == [0.5]


# ======================================================================
# Logging context
# ======================================================================


class TestRunContext:
    def test_binds_for_the_block_only(self) -> None:
        with run_context(run_id="abc123", holder="daily_update"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["run_id"] == "abc123"
            assert bound["holder"] == "daily_update"
        assert "run_id" not in structlog.contextvars.get_contextvars()


# ======================================================================
# Text helpers
# ======================================================================


class TestTokenSimilarity:
    def test_case_and_punctuation_insensitive(self) -> None:
        assert compute_token_similarity("Former mayor of Austin.", "former Mayor of austin") == 1.0

    def test_disjoint_texts(self) -> None:
        assert compute_token_similarity("retired astronaut", "state senator") == 0.0

    def test_partial_overlap(self) -> None:
        # {a, b, c} vs {b, c, d}: 2 shared of 4 total
        assert compute_token_similarity("a b c", "b c d") == pytest.approx(0.5)

    def test_both_empty(self) -> None:
        assert compute_token_similarity("", "") == 1.0

    def test_one_empty(self) -> None:
        assert compute_token_similarity("", "state senator") == 0.0

    def test_tokenize(self) -> None:
        assert tokenize("Hello, World! hello") == {"hello", "world"}
