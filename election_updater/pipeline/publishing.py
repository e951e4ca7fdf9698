"""Records written alongside a persisted ballot.

    metrics:ballot_size:{party}   size of the condensed ballot description
    manifest                      per-party version counter + cycle metadata
    candidates_index              derived cache, deleted so readers rebuild it

None of these failing should fail the ballot write, so the caller decides
what to do with a :class:`StoreError`.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime

from election_updater.config.election import ElectionConfig
from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.models.ballot import Ballot
from election_updater.models.tracking import BallotSizeMetric, ManifestEntry
from election_updater.utils.logging import get_logger

MANIFEST_KEY = "manifest"
CANDIDATES_INDEX_KEY = "candidates_index"
BALLOT_SIZE_PREFIX = "metrics:ballot_size:"
SCHEMA_VERSION = 2
CHARS_PER_TOKEN = 4
_MAX_LISTED = 5

logger = get_logger(__name__)


def condense_ballot(ballot: Ballot, election_name: str) -> str:
    """Plain-text ballot description, the form a reader-facing prompt embeds."""
    lines = [f"ELECTION: {election_name}", ""]
    for race in ballot.races:
        active = [c for c in race.candidates if not c.withdrawn]
        contested = len(active) > 1
        lines.append(f"RACE: {race.label}" + ("" if contested else " [UNCONTESTED]"))
        for candidate in active:
            lines.append(f"  - {candidate.name}" + (" (incumbent)" if candidate.is_incumbent else ""))
            if not contested:
                continue
            if candidate.key_positions:
                lines.append("    Positions: " + "; ".join(candidate.key_positions[:_MAX_LISTED]))
            if candidate.endorsements:
                lines.append("    Endorsements: " + "; ".join(
                    f"{e.name} ({e.type})" if e.type else e.name
                    for e in candidate.endorsements[:_MAX_LISTED]
                ))
            if candidate.pros:
                lines.append("    Pros: " + "; ".join(candidate.pros_text()[:_MAX_LISTED]))
            if candidate.cons:
                lines.append("    Cons: " + "; ".join(candidate.cons_text()[:_MAX_LISTED]))
        lines.append("")
    return "\n".join(lines)


async def record_ballot_size(
    store: IStoreProvider,
    ballot: Ballot,
    party: str,
    config: ElectionConfig,
    now: datetime,
) -> BallotSizeMetric:
    chars = len(condense_ballot(ballot, config.election_name))
    metric = BallotSizeMetric(
        party=party,
        chars=chars,
        estimated_tokens=math.ceil(chars / CHARS_PER_TOKEN),
        measured_at=now,
        race_count=len(ballot.races),
        candidate_count=sum(len(r.candidates) for r in ballot.races),
    )
    if metric.estimated_tokens > config.ballot_token_warning:
        logger.warning(
            "ballot_size_warning",
            party=party,
            estimated_tokens=metric.estimated_tokens,
            threshold=config.ballot_token_warning,
        )
    else:
        logger.info("ballot_size", party=party, chars=chars, estimated_tokens=metric.estimated_tokens)
    await store.put(f"{BALLOT_SIZE_PREFIX}{party}", metric.model_dump_json(by_alias=True))
    return metric


async def bump_manifest(
    store: IStoreProvider,
    party: str,
    config: ElectionConfig,
    now: datetime,
) -> ManifestEntry:
    """Increment *party*'s manifest version; cycle metadata is written once and kept."""
    manifest: dict = {}
    raw = await store.get(MANIFEST_KEY)
    if raw:
        try:
            loaded = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("manifest_corrupt")
        else:
            if isinstance(loaded, dict):
                manifest = loaded

    previous = manifest.get(party) if isinstance(manifest.get(party), dict) else {}
    entry = ManifestEntry(updated_at=now, version=int(previous.get("version") or 0) + 1)
    manifest[party] = entry.model_dump(mode="json", by_alias=True)
    manifest.setdefault("electionCycle", config.election_cycle)
    manifest.setdefault("electionDate", config.election_date.isoformat())
    manifest.setdefault("schemaVersion", SCHEMA_VERSION)
    await store.put(MANIFEST_KEY, json.dumps(manifest))
    return entry


async def invalidate_candidates_index(store: IStoreProvider, today: date, election_date: date) -> bool:
    """Drop the derived candidates index, except on election day itself."""
    if today == election_date:
        logger.info("candidates_index_kept_on_election_day")
        return False
    await store.delete(CANDIDATES_INDEX_KEY)
    return True
