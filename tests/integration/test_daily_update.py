"""Integration tests for the daily update, from stored ballot to persisted logs.

Every component is real except the research provider, which answers from a
script keyed on the prompt, and the sleeper, which only records delays.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from election_updater.config.election import ElectionConfig
from election_updater.config.settings import Settings
from election_updater.main import Application, assemble
from election_updater.models.ballot import Ballot, PlainText, ToneVariants
from election_updater.models.tracking import RunLeaseRecord
from election_updater.models.update import ResearchResponse
from election_updater.pipeline.run_lease import LEASE_KEY
from election_updater.pipeline.run_log import FALLBACK_LOG_KEY
from election_updater.providers.store.memory_store import MemoryStoreProvider
from election_updater.services.staleness import STALE_TRACKER_KEY
from election_updater.utils.errors import ResearchServiceError, ServiceStatus, StoreError
from tests.conftest import (
    DEFAULT_PROS,
    FIXED_NOW,
    GOVERNOR_BACKGROUND,
    RecordingSleep,
    ScriptedResearchProvider,
    make_ballot,
    make_candidate,
    race_payload,
    response_for,
)

GOVERNOR = ["Greg Abbott", "Jane Doe"]
LT_GOVERNOR = ["Dan Patrick", "Vikki Goodwin"]
REPUBLICAN_KEY = "ballot:statewide:republican_general_2026"
DEMOCRAT_KEY = "ballot:statewide:democrat_general_2026"

JANE_PROS = [
    "Authored the 2025 rural hospital funding bill",
    "Endorsed by the Texas State Teachers Association",
]
TONE_REWRITE = {
    "summary": "Jane Doe wants lower taxes.",
    "pros": ["Wrote a bill to pay for country hospitals", "Teachers back her"],
    "cons": ["Voted no on faster internet", "People ask about her donors"],
}


def _responder(
    governor: dict[str, Any] | None = None,
    lt_governor: dict[str, Any] | None = None,
    fail_on: str | None = None,
) -> Callable[[str], ResearchResponse]:
    def respond(prompt: str) -> ResearchResponse:
        if fail_on and fail_on in prompt:
            raise ResearchServiceError(
                message="invalid x-api-key", status=ServiceStatus.AUTH, status_code=401
            )
        if "Rewrite ALL" in prompt:
            return response_for(TONE_REWRITE)
        if "RACE: Lieutenant Governor" in prompt:
            return response_for(lt_governor or race_payload(LT_GOVERNOR))
        if "RACE: Governor" in prompt:
            return response_for(governor or race_payload(GOVERNOR))
        raise AssertionError(f"unexpected prompt: {prompt[:80]}")

    return respond


def _build(
    app_settings: Settings,
    config: ElectionConfig,
    store: MemoryStoreProvider,
    provider: ScriptedResearchProvider,
    sleep: RecordingSleep,
    clock: Callable[[], datetime] = lambda: FIXED_NOW,
) -> Application:
    return assemble(app_settings, config, store, provider, clock=clock, sleep=sleep)


async def _stored(store: MemoryStoreProvider, key: str = REPUBLICAN_KEY) -> Ballot:
    return Ballot.from_json(await store.get(key))


def _without_confidence(ballot: Ballot) -> list[list[dict[str, Any]]]:
    return [
        [c.model_dump(exclude={"confidence"}) for c in race.candidates] for race in ballot.races
    ]


class TestDailyUpdate:
    @pytest.mark.asyncio()
    async def test_quiet_day_changes_nothing_but_confidence(
        self, app_settings: Settings, election_config: ElectionConfig,
        store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        await store.put(REPUBLICAN_KEY, make_ballot().to_json())
        provider = ScriptedResearchProvider(_responder())
        app = _build(app_settings, election_config, store, provider, sleep)

        result = await app.daily.run_daily_update()

        assert not result.skipped and not result.aborted
        assert len(provider.calls) == 2
        assert sleep.calls == [5.0]
        assert "republican/Comptroller: skipped (uncontested)" in result.log
        assert result.ai_error_summary.category_counts["all_null_update"] == 2

        stored = await _stored(store)
        assert _without_confidence(stored) == _without_confidence(make_ballot())
        assert stored.races[0].candidates[0].confidence["background"].level.value == "model-inferred"

        tracker = json.loads(await store.get(STALE_TRACKER_KEY))
        assert tracker["republican/Governor"] == {"nullCount": 1, "lastResearchDay": 292}
        manifest = json.loads(await store.get("manifest"))
        assert manifest["republican"]["version"] == 1
        assert await store.get("update_log:2026-10-19") is not None
        assert await store.get("error_log:2026-10-19") is not None
        assert await store.get(LEASE_KEY) is None
        assert result.tones is None

    @pytest.mark.asyncio()
    async def test_dry_run_writes_nothing(
        self, app_settings: Settings, election_config: ElectionConfig,
        store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        original = make_ballot().to_json()
        await store.put(REPUBLICAN_KEY, original)
        provider = ScriptedResearchProvider(_responder(
            governor=race_payload(GOVERNOR, Jane_Doe={"pros": JANE_PROS})
        ))
        app = _build(app_settings, election_config, store, provider, sleep)

        result = await app.daily.run_daily_update(dry_run=True)

        assert await store.get(REPUBLICAN_KEY) == original
        assert await store.get(STALE_TRACKER_KEY) is None
        assert await store.get("update_log:2026-10-19") is None
        assert result.tones.candidates_changed == 1
        assert any("would regenerate tones" in line for line in result.log)
        assert len(provider.calls) == 2

    @pytest.mark.asyncio()
    async def test_fabricated_background_reverted_to_baseline(
        self, app_settings: Settings, election_config: ElectionConfig,
        store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        await store.put(REPUBLICAN_KEY, make_ballot().to_json())
        provider = ScriptedResearchProvider(_responder(governor=race_payload(
            GOVERNOR,
            Greg_Abbott={"background": "Retired NASA astronaut who flew four shuttle missions.",
                         "polling": "52%"},
        )))
        app = _build(app_settings, election_config, store, provider, sleep)
        await app.daily.seed_baseline("republican")

        result = await app.daily.run_daily_update()

        greg = (await _stored(store)).races[0].find_candidate("Greg Abbott")
        assert greg.background_text() == GOVERNOR_BACKGROUND
        assert greg.polling == "52%"
        assert result.ai_error_summary.category_counts["baseline_fallback"] == 1
        assert any("BASELINE FALLBACK" in line for line in result.log)

        fallback_log = json.loads(await store.get(FALLBACK_LOG_KEY))
        assert fallback_log[0]["date"] == "2026-10-19"
        assert fallback_log[0]["entries"][0]["candidate"] == "Greg Abbott"

    @pytest.mark.asyncio()
    async def test_invalid_update_leaves_race_untouched(
        self, app_settings: Settings, election_config: ElectionConfig,
        store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        await store.put(REPUBLICAN_KEY, make_ballot().to_json())
        provider = ScriptedResearchProvider(_responder(governor=race_payload(
            GOVERNOR, Jane_Doe={"pros": ["Only one pro"], "polling": "44%"},
        )))
        app = _build(app_settings, election_config, store, provider, sleep)

        result = await app.daily.run_daily_update()

        jane = (await _stored(store)).races[0].find_candidate("Jane Doe")
        assert jane.pros == [PlainText(text=p) for p in DEFAULT_PROS]
        assert jane.polling is None
        assert "republican/Governor: validation failed: Jane Doe has fewer than 2 pros" in result.errors
        assert result.ai_error_summary.category_counts["validation_failure"] == 1

    @pytest.mark.asyncio()
    async def test_text_change_regenerates_tones(
        self, app_settings: Settings, election_config: ElectionConfig,
        store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        await store.put(REPUBLICAN_KEY, make_ballot().to_json())
        provider = ScriptedResearchProvider(_responder(
            governor=race_payload(GOVERNOR, Jane_Doe={"pros": JANE_PROS})
        ))
        app = _build(app_settings, election_config, store, provider, sleep)

        result = await app.daily.run_daily_update()

        assert result.tones.candidates_changed == 1
        assert result.tones.regenerated == 1
        assert sleep.calls == [5.0, 2.0]

        jane = (await _stored(store)).races[0].find_candidate("Jane Doe")
        assert jane.pros[0] == ToneVariants(variants={3: JANE_PROS[0], 1: TONE_REWRITE["pros"][0]})
        assert jane.pros_text() == JANE_PROS
        assert jane.balance_score == 100
        assert result.balance_corrections.attempted == 0

    @pytest.mark.asyncio()
    async def test_lease_held_skips_run(
        self, app_settings: Settings, election_config: ElectionConfig,
        store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        await store.put(REPUBLICAN_KEY, make_ballot().to_json())
        other = RunLeaseRecord(token="other-run", acquired_at=FIXED_NOW, holder="secondary_refresh")
        await store.put(LEASE_KEY, other.model_dump_json(by_alias=True))
        provider = ScriptedResearchProvider(_responder())
        app = _build(app_settings, election_config, store, provider, sleep)

        result = await app.daily.run_daily_update()

        assert result.skipped
        assert result.reason == "another update run is in progress"
        assert provider.calls == []
        assert json.loads(await store.get(LEASE_KEY))["token"] == "other-run"

    @pytest.mark.asyncio()
    async def test_auth_failure_aborts_but_keeps_committed_races(
        self, app_settings: Settings, store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        config = ElectionConfig(parties=["republican", "democrat"], counties=[],
                                tones_to_regenerate=[1])
        await store.put(REPUBLICAN_KEY, make_ballot("republican").to_json())
        await store.put(DEMOCRAT_KEY, make_ballot("democrat").to_json())
        provider = ScriptedResearchProvider(_responder(
            governor=race_payload(GOVERNOR, Jane_Doe={"polling": "41%"}),
            fail_on="RACE: Lieutenant Governor",
        ))
        app = _build(app_settings, config, store, provider, sleep)

        result = await app.daily.run_daily_update()

        assert result.aborted
        assert len(provider.calls) == 2
        assert result.updated == ["republican"]
        assert result.county is None
        assert result.ai_error_summary.category_counts["api_error"] == 1
        assert any("authentication failed" in e for e in result.errors)

        jane = (await _stored(store)).races[0].find_candidate("Jane Doe")
        assert jane.polling == "41%"
        assert await store.get(DEMOCRAT_KEY) == make_ballot("democrat").to_json()
        assert await store.get("update_log:2026-10-19") is not None

    @pytest.mark.asyncio()
    async def test_stale_race_skipped_without_call(
        self, app_settings: Settings, election_config: ElectionConfig,
        store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        await store.put(REPUBLICAN_KEY, make_ballot().to_json())
        await store.put(STALE_TRACKER_KEY, json.dumps({
            "republican/Governor": {"nullCount": 3, "lastResearchDay": 291},
            "republican/Lieutenant Governor": {"nullCount": 3, "lastResearchDay": 289},
        }))
        provider = ScriptedResearchProvider(_responder())
        app = _build(app_settings, election_config, store, provider, sleep)

        result = await app.daily.run_daily_update()

        assert len(provider.calls) == 1
        assert "RACE: Lieutenant Governor" in provider.calls[0]["prompt"]
        assert "republican/Governor: skipped (stale, 3 consecutive null updates)" in result.log
        tracker = json.loads(await store.get(STALE_TRACKER_KEY))
        assert tracker["republican/Lieutenant Governor"]["nullCount"] == 4
        assert tracker["republican/Governor"]["lastResearchDay"] == 291

    @pytest.mark.asyncio()
    async def test_past_election_day_skips(
        self, app_settings: Settings, election_config: ElectionConfig,
        store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        provider = ScriptedResearchProvider(_responder())
        after = datetime(2026, 11, 4, 6, 0, tzinfo=timezone.utc)  # noqa: UP017
        app = _build(app_settings, election_config, store, provider, sleep, clock=lambda: after)

        result = await app.daily.run_daily_update()

        assert result.skipped
        assert result.reason == "Past election day (2026-11-03)"
        assert provider.calls == []

    @pytest.mark.asyncio()
    async def test_missing_ballot_is_reported(
        self, app_settings: Settings, election_config: ElectionConfig,
        store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        provider = ScriptedResearchProvider(_responder())
        app = _build(app_settings, election_config, store, provider, sleep)

        result = await app.daily.run_daily_update()

        assert result.errors == [f"republican: no ballot data at {REPUBLICAN_KEY}"]
        assert result.updated == []
        assert provider.calls == []


class _ReadOnlyKeyStore(MemoryStoreProvider):
    """Memory store whose writes to one key fail once ``locked`` is set."""

    def __init__(self, locked_key: str) -> None:
        super().__init__()
        self.locked_key = locked_key
        self.locked = False

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        if self.locked and key == self.locked_key:
            raise StoreError(message="disk full", provider_name="memory")
        await super().put(key, value, ttl)


def _ballot_with_blank_pros() -> Ballot:
    ballot = make_ballot()
    governor = ballot.races[0]
    governor = governor.model_copy(update={"candidates": [
        governor.candidates[0], make_candidate("Jane Doe", pros=["", ""]),
    ]})
    return ballot.model_copy(update={"races": [governor, *ballot.races[1:]]})


class TestDailyUpdateFailures:
    @pytest.mark.asyncio()
    async def test_auth_failure_in_balance_review_keeps_researched_race(
        self, app_settings: Settings, election_config: ElectionConfig,
        store: MemoryStoreProvider, sleep: RecordingSleep,
    ) -> None:
        await store.put(REPUBLICAN_KEY, _ballot_with_blank_pros().to_json())
        provider = ScriptedResearchProvider(_responder(
            governor=race_payload(GOVERNOR, Jane_Doe={"polling": "Leading 55%"}),
            fail_on="BALANCE CORRECTION",
        ))
        app = _build(app_settings, election_config, store, provider, sleep)

        result = await app.daily.run_daily_update()

        assert result.aborted
        assert len(provider.calls) == 2
        assert result.updated == ["republican"]
        jane = (await _stored(store)).races[0].find_candidate("Jane Doe")
        assert jane.polling == "Leading 55%"
        assert await store.get("update_log:2026-10-19") is not None

    @pytest.mark.asyncio()
    async def test_store_failure_for_one_party_does_not_stop_the_run(
        self, app_settings: Settings, sleep: RecordingSleep,
    ) -> None:
        store = _ReadOnlyKeyStore(REPUBLICAN_KEY)
        await store.put(REPUBLICAN_KEY, make_ballot("republican").to_json())
        await store.put(DEMOCRAT_KEY, make_ballot("democrat").to_json())
        store.locked = True
        config = ElectionConfig(parties=["republican", "democrat"], counties=[],
                                tones_to_regenerate=[1])
        provider = ScriptedResearchProvider(_responder(
            governor=race_payload(GOVERNOR, Jane_Doe={"polling": "41%"}),
        ))
        app = _build(app_settings, config, store, provider, sleep)

        result = await app.daily.run_daily_update()

        assert not result.aborted
        assert len(provider.calls) == 4
        assert result.updated == ["democrat"]
        assert any(e.startswith("republican: store failure") for e in result.errors)
        assert await store.get(REPUBLICAN_KEY) == make_ballot("republican").to_json()
        assert (await _stored(store, DEMOCRAT_KEY)).races[0].find_candidate("Jane Doe").polling == "41%"
        assert await store.get(STALE_TRACKER_KEY) is not None
        assert await store.get("update_log:2026-10-19") is not None
        assert await store.get(LEASE_KEY) is None
