"""Typed view of the ``election`` section of ``config/config.yaml``.

Everything that changes from one election cycle or state to the next lives
here: the election date and cycle suffix used in store keys, the parties,
the counties that get a secondary refresh, and the domain lists used to
rank and filter citations.  The defaults describe the Texas 2026 general
election.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class SourceTierRule(BaseModel):
    """Host patterns for one source-quality tier (1 = most authoritative).

    A pattern starting with ``.`` matches any host ending in it
    (``".tx.us"``); any other pattern matches the host exactly or as a
    parent domain (``"ballotpedia.org"`` matches ``www.ballotpedia.org``).
    """

    model_config = ConfigDict(frozen=True)

    tier: int
    label: str
    patterns: list[str] = Field(default_factory=list)


class County(BaseModel):
    model_config = ConfigDict(frozen=True)

    fips: str
    name: str


def _default_source_tiers() -> list[SourceTierRule]:
    return [
        SourceTierRule(tier=1, label="TX Secretary of State",
                       patterns=["sos.state.tx.us", "sos.texas.gov"]),
        SourceTierRule(tier=2, label="County election office", patterns=[".tx.us"]),
        SourceTierRule(tier=3, label="Campaign website", patterns=[]),
        SourceTierRule(tier=4, label="Nonpartisan reference",
                       patterns=["ballotpedia.org", "votesmart.org", "vote411.org", "lwv.org"]),
        SourceTierRule(tier=5, label="Texas news outlet",
                       patterns=["texastribune.org", "dallasnews.com", "houstonchronicle.com",
                                 "statesman.com", "expressnews.com", "star-telegram.com",
                                 "caller.com", "mysanantonio.com"]),
        SourceTierRule(tier=6, label="National wire service",
                       patterns=["apnews.com", "reuters.com", "upi.com"]),
    ]


_DEFAULT_LOW_QUALITY_DOMAINS = [
    "reddit.com", "twitter.com", "x.com", "facebook.com", "tiktok.com",
    "instagram.com", "youtube.com", "medium.com", "wordpress.com",
    "blogspot.com", "tumblr.com", "quora.com",
]


class ElectionConfig(BaseModel):
    """Election-cycle configuration consumed by every pipeline component."""

    model_config = ConfigDict(frozen=True)

    state_code: str = "tx"
    state_name: str = "Texas"
    election_name: str = "November 3, 2026 Texas General Election"
    election_date: date = date(2026, 11, 3)
    election_cycle: str = "general_2026"
    key_suffix: str = "_general_2026"
    statewide_scope: str = "statewide"
    parties: list[str] = Field(default_factory=lambda: ["republican", "democrat"])

    # Research budgets
    lower_priority_keywords: list[str] = Field(
        default_factory=lambda: ["court of appeals", "board of education", "railroad commission"]
    )
    search_budget: int = 5
    lower_priority_search_budget: int = 3
    research_max_tokens: int = 4096
    repair_max_tokens: int = 2048
    correction_search_budget: int = 3
    correction_max_tokens: int = 2048
    tone_max_tokens: int = 2048
    lookback_days: int = 14

    # Pacing (seconds)
    inter_race_delay: float = 5.0
    correction_delay: float = 3.0
    tone_delay: float = 2.0

    # Balance correction
    max_balance_corrections: int = 10

    # Tone regeneration
    regenerate_tones: bool = True
    tones_to_regenerate: list[int] = Field(default_factory=lambda: [1, 4, 7])
    tone_labels: dict[int, str] = Field(
        default_factory=lambda: {
            1: "high school / simplest",
            4: "detailed / political",
            7: "Texas cowboy (y'all, reckon, fixin' to, partner)",
        }
    )

    # Source quality
    source_tiers: list[SourceTierRule] = Field(default_factory=_default_source_tiers)
    low_quality_domains: list[str] = Field(default_factory=lambda: list(_DEFAULT_LOW_QUALITY_DOMAINS))

    # Secondary (county) refresh
    counties: list[County] = Field(default_factory=list)
    county_batch_size: int = 10

    # Housekeeping
    ballot_token_warning: int = 6000
    log_retention_days: int = 14
    lease_ttl_seconds: int = 3600

    def statewide_ballot_key(self, party: str) -> str:
        return f"ballot:{self.statewide_scope}:{party}{self.key_suffix}"

    def county_ballot_key(self, fips: str, party: str) -> str:
        return f"ballot:county:{fips}:{party}{self.key_suffix}"

    def baseline_key(self, party: str) -> str:
        return f"verified_baseline:{party}{self.key_suffix}"

    def is_lower_priority(self, office: str) -> bool:
        lowered = office.lower()
        return any(keyword in lowered for keyword in self.lower_priority_keywords)

    def search_budget_for(self, office: str) -> int:
        if self.is_lower_priority(office):
            return self.lower_priority_search_budget
        return self.search_budget
