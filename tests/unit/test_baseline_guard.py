"""Unit tests for the verified-baseline guard."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from election_updater.config.election import ElectionConfig
from election_updater.models.ballot import PlainText, Race, ToneVariants
from election_updater.models.baseline import BaselineCandidate, BaselineRace, VerifiedBaseline
from election_updater.providers.store.memory_store import MemoryStoreProvider
from election_updater.services.baseline_guard import (
    BaselineGuard,
    apply_baseline_fallback,
    compare_with_baseline,
    find_baseline_race,
)
from election_updater.utils.errors import PipelineError
from tests.conftest import (
    DEFAULT_BACKGROUND,
    FIXED_NOW,
    GOVERNOR_BACKGROUND,
    make_ballot,
    make_candidate,
)


def _baseline(*races: BaselineRace) -> VerifiedBaseline:
    return VerifiedBaseline(
        party="republican",
        seeded_at=datetime(2026, 9, 1, tzinfo=timezone.utc),  # noqa: UP017
        source_key="ballot:statewide:republican_general_2026",
        races=list(races),
    )


def _governor_baseline(**overrides) -> BaselineRace:
    abbott = {"name": "Greg Abbott", "is_incumbent": True, "background": GOVERNOR_BACKGROUND}
    abbott.update(overrides)
    return BaselineRace(
        office="Governor",
        candidates=[
            BaselineCandidate(**abbott),
            BaselineCandidate(name="Jane Doe", background=DEFAULT_BACKGROUND),
        ],
    )


def _governor_race(**abbott_overrides) -> Race:
    fields = {"is_incumbent": True, "background": GOVERNOR_BACKGROUND}
    fields.update(abbott_overrides)
    return Race(
        office="Governor",
        candidates=[make_candidate("Greg Abbott", **fields), make_candidate("Jane Doe")],
    )


class TestFindBaselineRace:
    def test_exact_office_match(self) -> None:
        baseline = _baseline(_governor_baseline())
        assert find_baseline_race(baseline, _governor_race()).office == "Governor"

    def test_fallback_on_same_candidates(self) -> None:
        baseline = _baseline(_governor_baseline())
        relabelled = _governor_race().model_copy(update={"office": "Govenor"})
        assert find_baseline_race(baseline, relabelled).office == "Governor"

    def test_no_match(self) -> None:
        baseline = _baseline(_governor_baseline())
        other = Race(office="Comptroller", candidates=[make_candidate("Kelly Hancock")])
        assert find_baseline_race(baseline, other) is None


class TestCompareWithBaseline:
    def test_no_contradictions(self) -> None:
        assert compare_with_baseline(_governor_race(), _governor_baseline()) == []

    def test_similar_background_is_accepted(self) -> None:
        race = _governor_race(background=GOVERNOR_BACKGROUND + " Re-elected in 2022.")
        assert compare_with_baseline(race, _governor_baseline()) == []

    @pytest.mark.parametrize(
        ("baseline_background", "proposed", "reverted"),
        [
            ("Former county judge.", "Former astronaut.", True),  # 1/4 = 0.25
            ("Former county judge.", "Former county clerk treasurer.", False),  # 2/5 = 0.4
            ("Former county judge, Austin.", "Former county judge, Houston.", False),  # 3/5 = 0.6
        ],
    )
    def test_similarity_threshold(self, baseline_background: str, proposed: str, reverted: bool) -> None:
        race = _governor_race(background=proposed)
        contradictions = compare_with_baseline(race, _governor_baseline(background=baseline_background))
        assert [c.field for c in contradictions] == (["background"] if reverted else [])

    def test_fabricated_background(self) -> None:
        race = _governor_race(background="A famous astronaut who walked on Mars in 1999.")
        contradictions = compare_with_baseline(race, _governor_baseline())
        assert [c.field for c in contradictions] == ["background"]
        assert contradictions[0].candidate == "Greg Abbott"
        assert "below 40% threshold" in contradictions[0].detail

    def test_only_standard_tone_is_compared(self) -> None:
        race = _governor_race(background={"1": "Was the boss of the whole state."})
        assert compare_with_baseline(race, _governor_baseline()) == []

    def test_incumbency_and_withdrawal(self) -> None:
        race = _governor_race(is_incumbent=False)
        contradictions = compare_with_baseline(race, _governor_baseline(withdrawn=True))
        assert {c.field for c in contradictions} == {"isIncumbent", "withdrawn"}

    def test_office_mismatch_is_race_level(self) -> None:
        race = _governor_race().model_copy(update={"office": "Govenor"})
        contradictions = compare_with_baseline(race, _governor_baseline())
        assert len(contradictions) == 1
        assert contradictions[0].is_race_level


class TestApplyBaselineFallback:
    def test_background_reverted_as_plain_text(self) -> None:
        race = _governor_race(background="A famous astronaut who walked on Mars in 1999.")
        baseline_race = _governor_baseline()
        outcome = apply_baseline_fallback(
            race, baseline_race, compare_with_baseline(race, baseline_race), key="republican/Governor"
        )
        assert not outcome.rejected
        abbott = outcome.race.find_candidate("Greg Abbott")
        assert abbott.background == PlainText(text=GOVERNOR_BACKGROUND)
        assert outcome.fallbacks[0].race_key == "republican/Governor"
        assert outcome.fallbacks[0].field == "background"

    def test_background_reverted_keeps_other_tones(self) -> None:
        race = _governor_race(background={"1": "Simple words.", "3": "Walked on Mars in 1999."})
        baseline_race = _governor_baseline()
        outcome = apply_baseline_fallback(race, baseline_race, compare_with_baseline(race, baseline_race))
        background = outcome.race.find_candidate("Greg Abbott").background
        assert isinstance(background, ToneVariants)
        assert background.variants == {1: "Simple words.", 3: GOVERNOR_BACKGROUND}

    def test_incumbency_and_withdrawn_restored(self) -> None:
        race = _governor_race(is_incumbent=False)
        baseline_race = _governor_baseline(withdrawn=True)
        outcome = apply_baseline_fallback(race, baseline_race, compare_with_baseline(race, baseline_race))
        abbott = outcome.race.find_candidate("Greg Abbott")
        assert abbott.is_incumbent is True
        assert abbott.withdrawn is True
        assert len(outcome.fallbacks) == 2

    def test_office_mismatch_rejects(self) -> None:
        race = _governor_race().model_copy(update={"office": "Govenor"})
        baseline_race = _governor_baseline()
        outcome = apply_baseline_fallback(race, baseline_race, compare_with_baseline(race, baseline_race))
        assert outcome.rejected
        assert outcome.fallbacks[0].candidate is None
        assert outcome.fallbacks[0].field == "office"


class TestBaselineGuard:
    @pytest.fixture()
    def guard(self, store: MemoryStoreProvider) -> BaselineGuard:
        return BaselineGuard(store, ElectionConfig(), clock=lambda: FIXED_NOW)

    @pytest.mark.asyncio()
    async def test_seed_and_load(self, guard: BaselineGuard, store: MemoryStoreProvider) -> None:
        config = ElectionConfig()
        await store.put(config.statewide_ballot_key("republican"), make_ballot().to_json())

        seeded = await guard.seed_baseline("republican")
        loaded = await guard.load("republican")

        assert loaded == seeded
        assert seeded.seeded_at == FIXED_NOW
        assert seeded.source_key == "ballot:statewide:republican_general_2026"
        governor = find_baseline_race(seeded, make_ballot().races[0])
        assert governor.find_candidate("Greg Abbott").background == GOVERNOR_BACKGROUND
        assert governor.find_candidate("Greg Abbott").is_incumbent is True

    @pytest.mark.asyncio()
    async def test_seed_without_ballot(self, guard: BaselineGuard) -> None:
        with pytest.raises(PipelineError, match="No ballot data"):
            await guard.seed_baseline("republican")

    @pytest.mark.asyncio()
    async def test_corrupt_baseline_loads_as_none(
        self, guard: BaselineGuard, store: MemoryStoreProvider
    ) -> None:
        await store.put(ElectionConfig().baseline_key("republican"), "{not json")
        assert await guard.load("republican") is None

    def test_check_without_baseline_passes_through(self, guard: BaselineGuard) -> None:
        race = _governor_race()
        outcome = guard.check(race, None, "republican")
        assert outcome.race is race
        assert outcome.contradictions == []

    def test_check_patches_contradictions(self, guard: BaselineGuard) -> None:
        race = _governor_race(background="A famous astronaut who walked on Mars in 1999.")
        outcome = guard.check(race, _baseline(_governor_baseline()), "republican")
        assert outcome.race.find_candidate("Greg Abbott").background_text() == GOVERNOR_BACKGROUND
        assert outcome.fallbacks[0].race_key == "republican/Governor"
