"""Unit tests for the non-destructive merge engine."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from election_updater.config.election import ElectionConfig
from election_updater.models.ballot import Endorsement, PlainText, Race, Source
from election_updater.models.update import RaceUpdate
from election_updater.services.merge import MergeEngine
from election_updater.services.source_quality import SourceQualityService
from tests.conftest import make_candidate, race_payload

NOW = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)  # noqa: UP017


@pytest.fixture()
def engine() -> MergeEngine:
    return MergeEngine(SourceQualityService(ElectionConfig()))


@pytest.fixture()
def race() -> Race:
    return Race(
        office="Governor",
        candidates=[
            make_candidate("Greg Abbott", is_incumbent=True, polling="48%",
                           endorsements=["Texas Farm Bureau"]),
            make_candidate("Jane Doe"),
        ],
    )


def _update(**updates: dict) -> RaceUpdate:
    return RaceUpdate.model_validate(race_payload(["Greg Abbott", "Jane Doe"], **updates))


class TestMergeRace:
    def test_null_update_leaves_fields_untouched(self, engine: MergeEngine, race: Race) -> None:
        merged = engine.merge_race(race, _update(), now=NOW)
        for before, after in zip(race.candidates, merged.candidates):
            assert after.model_dump(exclude={"confidence"}) == before.model_dump(exclude={"confidence"})
            assert after.confidence

    def test_scalar_and_list_fields_replaced(self, engine: MergeEngine, race: Race) -> None:
        merged = engine.merge_race(race, _update(Greg_Abbott={
            "polling": "51% (UT/Texas Politics Project, Oct 2026)",
            "keyPositions": ["Property tax cuts", "Border security"],
            "pros": ["New pro one about tax relief", "New pro two about water"],
        }), now=NOW)
        abbott = merged.find_candidate("Greg Abbott")
        assert abbott.polling == "51% (UT/Texas Politics Project, Oct 2026)"
        assert abbott.key_positions == ["Property tax cuts", "Border security"]
        assert abbott.pros == [
            PlainText(text="New pro one about tax relief"),
            PlainText(text="New pro two about water"),
        ]
        # untouched
        assert abbott.cons_text() == race.candidates[0].cons_text()

    def test_empty_values_mean_no_update(self, engine: MergeEngine, race: Race) -> None:
        merged = engine.merge_race(race, _update(Greg_Abbott={
            "polling": "", "pros": [], "summary": "   ",
        }), now=NOW)
        abbott = merged.find_candidate("Greg Abbott")
        assert abbott.polling == "48%"
        assert abbott.pros == race.candidates[0].pros
        assert abbott.summary == race.candidates[0].summary

    def test_identity_fields_never_change(self, engine: MergeEngine, race: Race) -> None:
        merged = engine.merge_race(race, _update(Greg_Abbott={
            "isIncumbent": False, "withdrawn": True, "polling": "50%",
        }), now=NOW)
        abbott = merged.find_candidate("Greg Abbott")
        assert abbott.is_incumbent is True
        assert abbott.withdrawn is False
        assert abbott.polling == "50%"

    def test_endorsements_normalized(self, engine: MergeEngine, race: Race) -> None:
        merged = engine.merge_race(race, _update(Jane_Doe={
            "endorsements": ["Houston Chronicle", {"name": "Texas AFL-CIO", "type": "labor union"}, " "],
        }), now=NOW)
        assert merged.find_candidate("Jane Doe").endorsements == [
            Endorsement(name="Houston Chronicle", type=None),
            Endorsement(name="Texas AFL-CIO", type="labor union"),
        ]

    def test_unknown_candidate_ignored(self, engine: MergeEngine, race: Race) -> None:
        update = RaceUpdate.model_validate({"candidates": [{"name": "Somebody Else", "polling": "9%"}]})
        merged = engine.merge_race(race, update, now=NOW)
        assert merged.candidate_names() == race.candidate_names()
        assert all(c.polling != "9%" for c in merged.candidates)

    def test_sources_merged_with_call_citations(self, engine: MergeEngine, race: Race) -> None:
        merged = engine.merge_race(
            race,
            _update(Jane_Doe={"sources": [{"url": "https://ballotpedia.org/Jane_Doe", "title": "Jane Doe"}]}),
            api_sources=[Source(url="https://www.texastribune.org/story", title="Story")],
            now=NOW,
        )
        jane = merged.find_candidate("Jane Doe")
        assert [s.url for s in jane.sources] == [
            "https://ballotpedia.org/Jane_Doe",
            "https://www.texastribune.org/story",
        ]
        assert all(s.access_date == "2026-10-19" for s in jane.sources)
        assert jane.sources_updated_at == NOW.isoformat()
        assert jane.confidence["pros"].source == "Nonpartisan reference"

    def test_input_race_not_modified(self, engine: MergeEngine, race: Race) -> None:
        snapshot = race.model_dump()
        engine.merge_race(race, _update(Jane_Doe={"polling": "40%"}), now=NOW)
        assert race.model_dump() == snapshot
