"""Models for what the research service sends back.

``RaceUpdate`` is the parsed form of the JSON object the research prompt asks
for.  Every field on :class:`CandidateUpdate` is optional: ``None`` means
"no new information", which is the common case on quiet days.

``ResearchResponse`` is the provider-neutral result of one research call.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from election_updater.models.ballot import Source

# The only candidate fields an update is allowed to touch.  Identity fields
# (name, isIncumbent, withdrawn) are never in this list.
UPDATABLE_FIELDS: tuple[str, ...] = (
    "polling",
    "fundraising",
    "endorsements",
    "key_positions",
    "pros",
    "cons",
    "summary",
    "background",
)


# ---------------------------------------------------------------------------
# Lenient coercion of model output
# ---------------------------------------------------------------------------
# A malformed item drops that item (or field), never the whole race.

def _scalar_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _text_items(value: Any) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return None
    return [text for text in (_scalar_text(item) for item in value) if text is not None]


def _endorsement_items(value: Any) -> list[Any] | None:
    if not isinstance(value, list):
        return None
    items: list[Any] = []
    for item in value:
        if isinstance(item, str):
            items.append(item)
        elif isinstance(item, dict) and _scalar_text(item.get("name")):
            items.append({"name": _scalar_text(item["name"]), "type": _scalar_text(item.get("type"))})
    return items


def _source_items(value: Any) -> list[Any] | None:
    if not isinstance(value, list):
        return None
    items: list[Any] = []
    for item in value:
        if isinstance(item, str):
            items.append({"url": item})
        elif isinstance(item, dict) and isinstance(item.get("url"), str):
            fields = {key: _scalar_text(text) for key, text in item.items()}
            items.append({key: text for key, text in fields.items() if text is not None})
    return items


class EndorsementUpdate(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    type: str | None = None


class SourceUpdate(BaseModel):
    """A source as the model reports it; ``url`` is not yet validated."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    url: str | None = None
    title: str | None = None
    access_date: str | None = None


class CandidateUpdate(BaseModel):
    """Proposed changes for one candidate.

    Text fields are plain strings here; tone variants are produced later by
    the tone refresher, never by the research call.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    name: str
    polling: str | None = None
    fundraising: str | None = None
    endorsements: list[str | EndorsementUpdate] | None = None
    key_positions: list[str] | None = None
    pros: list[str] | None = None
    cons: list[str] | None = None
    summary: str | None = None
    background: str | None = None
    sources: list[SourceUpdate] | None = None

    @field_validator("polling", "fundraising", "summary", "background", mode="before")
    @classmethod
    def _scalar_or_none(cls, value: Any) -> Any:
        return _scalar_text(value)

    @field_validator("pros", "cons", "key_positions", mode="before")
    @classmethod
    def _keep_text_items(cls, value: Any) -> Any:
        return _text_items(value)

    @field_validator("endorsements", mode="before")
    @classmethod
    def _keep_named_endorsements(cls, value: Any) -> Any:
        return _endorsement_items(value)

    @field_validator("sources", mode="before")
    @classmethod
    def _keep_sources_with_url(cls, value: Any) -> Any:
        return _source_items(value)

    def has_meaningful_data(self) -> bool:
        """True when at least one updatable field carries a non-empty value."""
        for field_name in UPDATABLE_FIELDS:
            value = getattr(self, field_name)
            if value is None or value == "" or value == []:
                continue
            return True
        return False


class RaceUpdate(BaseModel):
    """The parsed research result for one race."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    candidates: list[CandidateUpdate] = Field(default_factory=list)

    @field_validator("candidates", mode="before")
    @classmethod
    def _drop_nameless(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            # Entries without a name cannot be matched to a candidate.
            return [
                c for c in value
                if isinstance(c, CandidateUpdate) or (isinstance(c, dict) and c.get("name"))
            ]
        return value

    def for_candidate(self, name: str) -> CandidateUpdate | None:
        for update in self.candidates:
            if update.name == name:
                return update
        return None


def is_update_meaningful(update: RaceUpdate | None) -> bool:
    """True when any candidate in *update* carries at least one non-empty field."""
    if update is None:
        return False
    return any(c.has_meaningful_data() for c in update.candidates)


class BalanceFix(BaseModel):
    """The narrow JSON object a balance-correction call returns."""

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    name: str | None = None
    pros: list[str] | None = None
    cons: list[str] | None = None
    summary: str | None = None


class ToneRewrite(BaseModel):
    """The JSON object a tone-rewrite call returns."""

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    summary: str | None = None
    pros: list[str] | None = None
    cons: list[str] | None = None


# ---------------------------------------------------------------------------
# Provider-neutral research call result
# ---------------------------------------------------------------------------

class TokenUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0


class ResearchResponse(BaseModel):
    """Result of one research-service call.

    ``text_blocks`` keeps every text segment in order; ``text`` is their
    newline-joined concatenation.  ``citations`` are the pages the service's
    own search tool returned or cited, deduplicated by URL.
    """

    model_config = ConfigDict(frozen=True)

    text_blocks: list[str] = Field(default_factory=list)
    citations: list[Source] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""

    @property
    def text(self) -> str:
        return "\n".join(self.text_blocks)

    @property
    def has_text(self) -> bool:
        return bool(self.text_blocks)
