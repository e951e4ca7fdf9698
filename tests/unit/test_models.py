"""Unit tests for the ballot and update models."""

from __future__ import annotations

import json

from election_updater.models.ballot import (
    Ballot,
    Candidate,
    PlainText,
    Race,
    ToneVariants,
    race_key,
    replace_default_text,
    resolve_text,
)
from election_updater.models.update import RaceUpdate, is_update_meaningful


class TestToneText:
    def test_plain_string_parses_to_plain_text(self) -> None:
        candidate = Candidate.model_validate({"name": "Jane Doe", "summary": "State senator."})
        assert candidate.summary == PlainText(text="State senator.")
        assert candidate.summary_text() == "State senator."

    def test_tone_map_parses_to_variants(self) -> None:
        candidate = Candidate.model_validate(
            {"name": "Jane Doe", "summary": {"1": "Simple.", "3": "Standard."}}
        )
        assert candidate.summary == ToneVariants(variants={1: "Simple.", 3: "Standard."})
        assert resolve_text(candidate.summary, 1) == "Simple."
        assert candidate.summary_text() == "Standard."

    def test_missing_tone_uses_lowest(self) -> None:
        assert resolve_text(ToneVariants(variants={4: "Four", 7: "Seven"}), 3) == "Four"
        assert resolve_text(None) is None

    def test_missing_tone_without_fallback(self) -> None:
        assert resolve_text(ToneVariants(variants={1: "Simple."}), fallback=False) is None
        assert resolve_text(PlainText(text="Standard."), fallback=False) == "Standard."

    def test_serialized_shape(self) -> None:
        candidate = Candidate(
            name="Jane Doe",
            summary=ToneVariants(variants={3: "Standard.", 1: "Simple."}),
            pros=[PlainText(text="Experienced")],
        )
        dumped = json.loads(candidate.model_dump_json(by_alias=True))
        assert dumped["summary"] == {"1": "Simple.", "3": "Standard."}
        assert dumped["pros"] == ["Experienced"]

    def test_replace_default_keeps_other_tones(self) -> None:
        replaced = replace_default_text(ToneVariants(variants={1: "Simple.", 3: "Old."}), "New.")
        assert replaced == ToneVariants(variants={1: "Simple.", 3: "New."})
        assert replace_default_text(PlainText(text="Old."), "New.") == PlainText(text="New.")


class TestBallot:
    def test_extra_keys_survive_round_trip(self) -> None:
        raw = json.dumps({
            "party": "republican",
            "electionName": "2026 General",
            "races": [{"office": "Governor", "isContested": True, "candidates": []}],
        })
        restored = json.loads(Ballot.from_json(raw).to_json())
        assert restored["electionName"] == "2026 General"
        assert restored["races"][0]["office"] == "Governor"

    def test_race_key(self) -> None:
        assert race_key("republican", Race(office="Governor")) == "republican/Governor"
        assert (
            race_key("democrat", Race(office="State Senate", district="District 14"))
            == "democrat/State Senate/District 14"
        )


class TestIsUpdateMeaningful:
    def test_none_and_empty(self) -> None:
        assert not is_update_meaningful(None)
        assert not is_update_meaningful(RaceUpdate())

    def test_all_null_fields(self) -> None:
        update = RaceUpdate.model_validate({"candidates": [
            {"name": "Jane Doe", "polling": None, "pros": [], "summary": ""},
        ]})
        assert not is_update_meaningful(update)

    def test_one_field_is_enough(self) -> None:
        update = RaceUpdate.model_validate({"candidates": [
            {"name": "Greg Abbott"},
            {"name": "Jane Doe", "polling": "41%"},
        ]})
        assert is_update_meaningful(update)

    def test_nameless_entries_dropped(self) -> None:
        update = RaceUpdate.model_validate({"candidates": [{"polling": "41%"}]})
        assert update.candidates == []

    def test_malformed_values_are_dropped_item_by_item(self) -> None:
        update = RaceUpdate.model_validate({"candidates": [
            "Jane Doe",
            {
                "name": "Jane Doe",
                "polling": {"value": 41},
                "fundraising": 1200000,
                "keyPositions": "Property tax relief",
                "cons": [None, ["nested"], "Missed 2025 votes"],
                "endorsements": [{"name": "AFL-CIO", "type": 7}, {"type": "labor union"}, 3.5],
                "sources": [
                    "https://apnews.com/a", {"title": "no url"}, {"url": "https://kut.org/b", "title": 2},
                ],
            },
        ]})
        jane = update.for_candidate("Jane Doe")
        assert len(update.candidates) == 1
        assert jane.polling is None
        assert jane.fundraising == "1200000"
        assert jane.key_positions == ["Property tax relief"]
        assert jane.cons == ["Missed 2025 votes"]
        assert [(e.name, e.type) for e in jane.endorsements] == [("AFL-CIO", "7")]
        assert [(s.url, s.title) for s in jane.sources] == [
            ("https://apnews.com/a", None), ("https://kut.org/b", "2"),
        ]
