"""Structural checks a merged race must pass before it is committed.

Both validators return ``None`` when the update is acceptable and a short
human-readable reason otherwise.  The reason goes straight into the run's
error list and the ``validation_failure`` diagnostic, so it names the
candidate involved where there is one.
"""

from __future__ import annotations

from election_updater.models.ballot import Ballot, Race, resolve_text
from election_updater.services.source_quality import is_valid_url

MIN_PROS = 2
MIN_CONS = 2
MIN_ENDORSEMENT_RETENTION = 0.5


def validate_race_update(original: Race | None, updated: Race | None) -> str | None:
    """Check *updated* against the stored *original* race.

    Rejects when:
        - the candidate count or the set of names differs;
        - a candidate's endorsement list shrank below half its previous
          size (only when both old and new lists are non-empty);
        - an active candidate has fewer than two pros or two cons;
        - a name or summary is the empty string;
        - a source URL is not an absolute http(s) URL.
    """
    if original is None or updated is None:
        return "missing race data"

    if len(original.candidates) != len(updated.candidates):
        return f"candidate count changed: {len(original.candidates)} -> {len(updated.candidates)}"

    if sorted(c.name for c in original.candidates) != sorted(c.name for c in updated.candidates):
        return "candidate names changed"

    for before in original.candidates:
        after = updated.find_candidate(before.name)
        if after is None:
            return f"candidate {before.name} missing"
        if before.endorsements and after.endorsements:
            ratio = len(after.endorsements) / len(before.endorsements)
            if ratio < MIN_ENDORSEMENT_RETENTION:
                return (
                    f"{before.name} endorsements shrank by >50% "
                    f"({len(before.endorsements)} -> {len(after.endorsements)})"
                )

    for candidate in updated.candidates:
        if candidate.withdrawn:
            continue
        if len(candidate.pros) < MIN_PROS:
            return f"{candidate.name} has fewer than {MIN_PROS} pros"
        if len(candidate.cons) < MIN_CONS:
            return f"{candidate.name} has fewer than {MIN_CONS} cons"

    for candidate in updated.candidates:
        if candidate.name == "":
            return "empty candidate name"
        if candidate.summary is not None and resolve_text(candidate.summary) == "":
            return f"{candidate.name} has empty summary"
        for source in candidate.sources:
            if not isinstance(source.url, str) or not source.url:
                return f"{candidate.name} has a source with invalid URL"
            if not is_valid_url(source.url):
                return f"{candidate.name} has a source with malformed URL: {source.url}"

    return None


def validate_ballot(original: Ballot | None, updated: Ballot | None) -> str | None:
    """Check that a whole ballot kept its party and race count."""
    if original is None or updated is None:
        return "missing ballot data"
    if len(original.races) != len(updated.races):
        return f"race count changed: {len(original.races)} -> {len(updated.races)}"
    if original.party != updated.party:
        return f"party changed: {original.party} -> {updated.party}"
    return None
