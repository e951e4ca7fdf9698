"""Unit tests for the records written alongside a persisted ballot."""

from __future__ import annotations

import json
from datetime import date, timedelta

import pytest

from election_updater.config.election import ElectionConfig
from election_updater.models.ballot import Ballot
from election_updater.pipeline.publishing import (
    CANDIDATES_INDEX_KEY,
    MANIFEST_KEY,
    bump_manifest,
    condense_ballot,
    invalidate_candidates_index,
    record_ballot_size,
)
from election_updater.providers.store.memory_store import MemoryStoreProvider
from tests.conftest import FIXED_NOW


class TestCondenseBallot:
    def test_contested_and_uncontested(self, sample_ballot: Ballot) -> None:
        text = condense_ballot(sample_ballot, "Test Election")
        assert text.startswith("ELECTION: Test Election\n")
        assert "RACE: Governor\n  - Greg Abbott (incumbent)\n" in text
        assert "    Pros: Passed the 2023 property tax relief package" in text
        assert text.endswith("RACE: Comptroller [UNCONTESTED]\n  - Kelly Hancock\n")


class TestRecordBallotSize:
    @pytest.mark.asyncio()
    async def test_metric_written(self, store: MemoryStoreProvider, sample_ballot: Ballot) -> None:
        config = ElectionConfig()
        metric = await record_ballot_size(store, sample_ballot, "republican", config, FIXED_NOW)

        assert metric.race_count == 3
        assert metric.candidate_count == 5
        assert metric.estimated_tokens * 4 >= metric.chars
        stored = json.loads(await store.get("metrics:ballot_size:republican"))
        assert stored["estimatedTokens"] == metric.estimated_tokens
        assert stored["candidateCount"] == 5


class TestBumpManifest:
    @pytest.mark.asyncio()
    async def test_versions_increment_per_party(self, store: MemoryStoreProvider) -> None:
        config = ElectionConfig()
        await bump_manifest(store, "republican", config, FIXED_NOW)
        entry = await bump_manifest(store, "republican", config, FIXED_NOW)
        await bump_manifest(store, "democrat", config, FIXED_NOW)

        assert entry.version == 2
        manifest = json.loads(await store.get(MANIFEST_KEY))
        assert manifest["republican"]["version"] == 2
        assert manifest["democrat"]["version"] == 1
        assert manifest["electionCycle"] == "general_2026"
        assert manifest["electionDate"] == "2026-11-03"
        assert manifest["schemaVersion"] == 2

    @pytest.mark.asyncio()
    async def test_existing_metadata_kept(self, store: MemoryStoreProvider) -> None:
        await store.put(MANIFEST_KEY, json.dumps({"electionCycle": "runoff", "extra": True}))
        await bump_manifest(store, "republican", ElectionConfig(), FIXED_NOW)
        manifest = json.loads(await store.get(MANIFEST_KEY))
        assert manifest["electionCycle"] == "runoff"
        assert manifest["extra"] is True

    @pytest.mark.asyncio()
    async def test_corrupt_manifest_is_replaced(self, store: MemoryStoreProvider) -> None:
        await store.put(MANIFEST_KEY, "{broken")
        entry = await bump_manifest(store, "republican", ElectionConfig(), FIXED_NOW)
        assert entry.version == 1


class TestInvalidateCandidatesIndex:
    @pytest.mark.asyncio()
    async def test_deleted_before_election_day(self, store: MemoryStoreProvider) -> None:
        await store.put(CANDIDATES_INDEX_KEY, "[]")
        assert await invalidate_candidates_index(store, date(2026, 10, 19), date(2026, 11, 3))
        assert await store.get(CANDIDATES_INDEX_KEY) is None

    @pytest.mark.asyncio()
    async def test_kept_on_election_day(self, store: MemoryStoreProvider) -> None:
        election_day = date(2026, 11, 3)
        await store.put(CANDIDATES_INDEX_KEY, "[]")
        assert not await invalidate_candidates_index(store, election_day, election_day)
        assert await store.get(CANDIDATES_INDEX_KEY) == "[]"
        assert await invalidate_candidates_index(store, election_day - timedelta(days=1), election_day)
