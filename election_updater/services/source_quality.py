"""Source tiering, URL hygiene and low-quality citation detection.

Every source URL is mapped onto a seven-tier authority ladder (lower number
= more authoritative):

    Tier 1 -- State election authority   (Secretary of State filings)
    Tier 2 -- Local election authority   (county election offices)
    Tier 3 -- Official campaign site
    Tier 4 -- Nonpartisan reference      (Ballotpedia, Vote Smart, LWV)
    Tier 5 -- Regional press
    Tier 6 -- National wire service
    Tier 7 -- Everything else

The host patterns per tier come from :class:`ElectionConfig` so another
state only needs a different config file.  A candidate's confidence labels
are derived from the best tier among its sources: tiers 1-6 are
``verified``, tier 7 or no sources at all are ``model-inferred``.

Separately, a race whose citations are dominated by social media, blogs and
Q&A sites is flagged as ``low_quality_sources``.  The update still applies;
the flag is a signal for human review.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any
from urllib.parse import urlparse

from election_updater.config.election import ElectionConfig, SourceTierRule
from election_updater.models.ballot import (
    MAX_SOURCES_PER_CANDIDATE,
    Candidate,
    ConfidenceLevel,
    FieldConfidence,
    PlainText,
    Source,
    ToneVariants,
    resolve_text,
)

OTHER_TIER = 7
OTHER_LABEL = "Other"
DEFAULT_CONFIDENCE_SOURCE = "AI web search"

# Confidence key -> candidate attribute it describes.  "background" is
# keyed off the summary because the summary is what voters read.
_CONFIDENCE_FIELDS: tuple[tuple[str, str], ...] = (
    ("background", "summary"),
    ("keyPositions", "key_positions"),
    ("endorsements", "endorsements"),
    ("polling", "polling"),
    ("fundraising", "fundraising"),
    ("pros", "pros"),
    ("cons", "cons"),
)


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------

def is_valid_url(url: Any) -> bool:
    """True for an absolute http(s) URL with a host."""
    if not isinstance(url, str) or not url.strip() or any(c.isspace() for c in url.strip()):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def hostname_of(url: str) -> str | None:
    """Lower-cased host of *url* without a leading ``www.``, or None if unparseable."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return host.lower().removeprefix("www.")


def domain_matches(host: str, pattern: str) -> bool:
    """Suffix patterns (``.tx.us``) match any host ending in them; others match
    the host itself or any subdomain of it."""
    if pattern.startswith("."):
        return host.endswith(pattern)
    return host == pattern or host.endswith("." + pattern)


def normalize_source(raw: Any, today: date) -> Source | None:
    """Coerce a source reported by the model into a :class:`Source`.

    Returns ``None`` when there is no usable URL.  A missing title falls back
    to the URL; a missing access date falls back to *today*.
    """
    if isinstance(raw, Source):
        url, title, access_date = raw.url, raw.title, raw.access_date
    elif isinstance(raw, dict):
        url = raw.get("url")
        title = raw.get("title")
        access_date = raw.get("accessDate") or raw.get("access_date")
    else:
        url = getattr(raw, "url", None)
        title = getattr(raw, "title", None)
        access_date = getattr(raw, "access_date", None)
    if not isinstance(url, str) or not url.strip():
        return None
    url = url.strip()
    return Source(url=url, title=title or url, access_date=access_date or today.isoformat())


def merge_sources(existing: list[Source], incoming: list[Source]) -> list[Source]:
    """Append unseen *incoming* sources to *existing*; existing entries win.

    Deduplicated by URL and capped at 20 entries.
    """
    if not incoming:
        return list(existing)
    merged = list(existing)
    seen = {s.url for s in merged}
    for source in incoming:
        if source.url and source.url not in seen:
            seen.add(source.url)
            merged.append(source)
    return merged[:MAX_SOURCES_PER_CANDIDATE]


# ---------------------------------------------------------------------------
# Tiering and low-quality detection
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TierMatch:
    tier: int
    label: str
    url: str | None = None


@dataclass(frozen=True)
class LowQualityReport:
    flagged: int
    total: int
    domains: list[str]


class SourceQualityService:
    """Classifies sources by authority tier and spots low-signal citations."""

    def __init__(self, config: ElectionConfig) -> None:
        self._tiers: list[SourceTierRule] = sorted(config.source_tiers, key=lambda r: r.tier)
        self._low_quality_domains = [d.lower() for d in config.low_quality_domains]

    def classify_source_tier(self, url: str | None) -> TierMatch:
        """Map *url* onto a tier; unparseable or unmatched URLs are tier 7."""
        if not url:
            return TierMatch(OTHER_TIER, OTHER_LABEL)
        host = hostname_of(url)
        if host is None:
            return TierMatch(OTHER_TIER, OTHER_LABEL)
        for rule in self._tiers:
            if any(domain_matches(host, pattern) for pattern in rule.patterns):
                return TierMatch(rule.tier, rule.label, url)
        return TierMatch(OTHER_TIER, OTHER_LABEL, url)

    def best_source_tier(self, sources: list[Source]) -> TierMatch | None:
        best: TierMatch | None = None
        for source in sources:
            if not source.url:
                continue
            match = self.classify_source_tier(source.url)
            if best is None or match.tier < best.tier:
                best = match
        return best

    def compute_confidence(self, candidate: Candidate) -> dict[str, FieldConfidence]:
        """Per-field confidence for every populated field of *candidate*."""
        best = self.best_source_tier(candidate.sources)
        level = (
            ConfidenceLevel.VERIFIED
            if best is not None and best.tier < OTHER_TIER
            else ConfidenceLevel.MODEL_INFERRED
        )
        label = best.label if best is not None else DEFAULT_CONFIDENCE_SOURCE

        confidence: dict[str, FieldConfidence] = {}
        for key, attribute in _CONFIDENCE_FIELDS:
            value = getattr(candidate, attribute)
            if isinstance(value, (PlainText, ToneVariants)):
                value = resolve_text(value)
            if value is None or value == "" or value == []:
                continue
            confidence[key] = FieldConfidence(level=level, source=label)
        return confidence

    def is_low_quality_domain(self, url: str) -> bool:
        host = hostname_of(url)
        if host is None:
            return False
        return any(domain_matches(host, domain) for domain in self._low_quality_domains)

    def detect_low_quality(self, sources: list[Source]) -> LowQualityReport | None:
        """Report when strictly more than half of *sources* are low-signal domains."""
        urls = [s.url for s in sources if s.url]
        if not urls:
            return None
        flagged = [u for u in urls if self.is_low_quality_domain(u)]
        if not flagged or len(flagged) * 2 <= len(urls):
            return None
        domains = sorted({hostname_of(u) or u for u in flagged})
        return LowQualityReport(flagged=len(flagged), total=len(urls), domains=domains)
