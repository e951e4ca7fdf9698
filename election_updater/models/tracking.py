"""Persisted bookkeeping records: staleness, county rotation, manifest, metrics."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class StalenessEntry(BaseModel):
    """Per-race count of consecutive research calls that produced nothing new."""

    model_config = _CONFIG

    null_count: int = 0
    last_research_day: int = 0  # day of year of the last attempt (1-366)


class CountyRefreshEntry(BaseModel):
    """Per-county refresh history, keyed by FIPS code in the tracker record."""

    model_config = _CONFIG

    name: str
    last_refreshed_at: datetime | None = None
    fingerprint: str | None = None
    unchanged_count: int = 0
    cycles_since_refresh: int = 0


class ManifestEntry(BaseModel):
    model_config = _CONFIG

    updated_at: datetime
    version: int = 0


class BallotSizeMetric(BaseModel):
    model_config = _CONFIG

    party: str
    chars: int
    estimated_tokens: int
    measured_at: datetime
    race_count: int
    candidate_count: int


class RunLeaseRecord(BaseModel):
    model_config = _CONFIG

    token: str
    acquired_at: datetime
    holder: str = Field(default="daily_update")
