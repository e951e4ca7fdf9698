"""Verified-baseline models.

A baseline is a human-approved snapshot of the identity-critical facts about
each candidate.  It is written only by an explicit seeding operation, never
by the daily update, and the baseline guard rolls back any research result
that contradicts it.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class BaselineCandidate(BaseModel):
    model_config = _CONFIG

    name: str
    is_incumbent: bool = False
    background: str | None = None
    summary: str | None = None
    withdrawn: bool = False


class BaselineRace(BaseModel):
    model_config = _CONFIG

    office: str
    district: str | None = None
    candidates: list[BaselineCandidate] = Field(default_factory=list)

    def find_candidate(self, name: str) -> BaselineCandidate | None:
        for candidate in self.candidates:
            if candidate.name == name:
                return candidate
        return None


class VerifiedBaseline(BaseModel):
    model_config = _CONFIG

    party: str
    seeded_at: datetime
    source_key: str
    races: list[BaselineRace] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class Contradiction(BaseModel):
    """One disagreement between freshly merged data and the baseline.

    ``candidate`` is ``None`` for race-level contradictions (office mismatch),
    which reject the whole race update.
    """

    model_config = ConfigDict(frozen=True)

    field: str
    candidate: str | None = None
    baseline_value: str | bool | None = None
    proposed_value: str | bool | None = None
    detail: str = ""

    @property
    def is_race_level(self) -> bool:
        return self.candidate is None


class FallbackEntry(BaseModel):
    """A field reverted to its baseline value."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    race_key: str
    candidate: str | None
    field: str
    detail: str = ""


class FallbackLogRun(BaseModel):
    """One run's worth of fallbacks in the rolling ``baseline_fallback_log``."""

    model_config = ConfigDict(frozen=True)

    date: str
    count: int
    entries: list[FallbackEntry] = Field(default_factory=list)
