"""Shared pytest fixtures for the election updater test suite."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from election_updater.config.election import ElectionConfig
from election_updater.config.settings import Settings
from election_updater.interfaces.research_provider import IResearchProvider
from election_updater.models.ballot import Ballot, Candidate, Race, Source
from election_updater.models.update import ResearchResponse, TokenUsage
from election_updater.providers.store.memory_store import MemoryStoreProvider

FIXED_NOW = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)  # noqa: UP017

GOVERNOR_BACKGROUND = (
    "Governor of Texas since 2015, former Texas Attorney General and Texas Supreme Court justice."
)
DEFAULT_BACKGROUND = "Former state senator and small business owner from Houston."
DEFAULT_PROS = [
    "Passed the 2023 property tax relief package",
    "Endorsed by the Texas Farm Bureau",
]
DEFAULT_CONS = [
    "Vetoed the 2021 broadband expansion bill",
    "Faces questions over campaign donor ties",
]


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingSleep:
    """Async sleeper that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class ScriptedResearchProvider(IResearchProvider):
    """Research provider whose answers come from a prompt -> response function.

    The responder may raise to simulate a failed call.
    """

    def __init__(self, responder: Callable[[str], ResearchResponse]) -> None:
        self._responder = responder
        self.calls: list[dict[str, Any]] = []

    async def research(
        self,
        prompt: str,
        system_prompt: str = "",
        max_search_uses: int | None = None,
        max_tokens: int = 4096,
    ) -> ResearchResponse:
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "max_search_uses": max_search_uses,
            "max_tokens": max_tokens,
        })
        return self._responder(prompt)

    def get_provider_name(self) -> str:
        return "scripted"

    def get_model_name(self) -> str:
        return "scripted-model"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_candidate(name: str, **overrides: Any) -> Candidate:
    data: dict[str, Any] = {
        "name": name,
        "summary": f"{name} is campaigning on property taxes and border security.",
        "background": DEFAULT_BACKGROUND,
        "pros": list(DEFAULT_PROS),
        "cons": list(DEFAULT_CONS),
    }
    data.update(overrides)
    return Candidate(**data)


def make_ballot(party: str = "republican") -> Ballot:
    """Two contested statewide races plus one uncontested race."""
    return Ballot(
        party=party,
        races=[
            Race(
                office="Governor",
                candidates=[
                    make_candidate("Greg Abbott", is_incumbent=True, background=GOVERNOR_BACKGROUND),
                    make_candidate("Jane Doe"),
                ],
            ),
            Race(
                office="Lieutenant Governor",
                candidates=[
                    make_candidate("Dan Patrick", is_incumbent=True),
                    make_candidate("Vikki Goodwin"),
                ],
            ),
            Race(
                office="Comptroller",
                is_contested=False,
                candidates=[make_candidate("Kelly Hancock")],
            ),
        ],
    )


def null_candidate(name: str) -> dict[str, Any]:
    return {
        "name": name,
        "polling": None,
        "fundraising": None,
        "endorsements": None,
        "keyPositions": None,
        "pros": None,
        "cons": None,
        "summary": None,
        "background": None,
        "sources": None,
    }


def race_payload(names: list[str], **updates: dict[str, Any]) -> dict[str, Any]:
    """A research result for *names*; keyword arguments override per candidate.

    Keys are candidate names with spaces replaced by underscores.
    """
    candidates = []
    for name in names:
        entry = null_candidate(name)
        entry.update(updates.get(name.replace(" ", "_"), {}))
        candidates.append(entry)
    return {"candidates": candidates}


def response_for(payload: dict[str, Any] | str, citations: list[str] | None = None) -> ResearchResponse:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return ResearchResponse(
        text_blocks=[text],
        citations=[Source(url=url, title=url) for url in citations or []],
        usage=TokenUsage(input_tokens=100, output_tokens=50),
        model="scripted-model",
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> MemoryStoreProvider:
    return MemoryStoreProvider()


@pytest.fixture
def election_config() -> ElectionConfig:
    return ElectionConfig(
        parties=["republican"],
        counties=[],
        tones_to_regenerate=[1],
    )


@pytest.fixture
def app_settings() -> Settings:
    return Settings(_env_file=None, anthropic_api_key="test-key", store_backend="memory")


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def mock_provider() -> MagicMock:
    provider = MagicMock(spec=IResearchProvider)
    provider.research = AsyncMock()
    provider.get_provider_name.return_value = "mock"
    provider.get_model_name.return_value = "mock-model"
    return provider


@pytest.fixture
def sample_ballot() -> Ballot:
    return make_ballot()
