"""Ballot data models: ballots, races, candidates and their text fields.

All models are Pydantic v2 and frozen; the merge engine and the baseline
guard produce new instances via ``model_copy(update={...})`` so a race that
fails validation leaves the loaded ballot untouched.

Stored JSON uses camelCase keys (``isIncumbent``, ``keyPositions`` ...), the
Python side uses snake_case.  Unknown keys written by other parts of the
system (front-end metadata, ballot codes) are kept via ``extra="allow"`` and
written back verbatim.

Tone-aware text
---------------
``summary``, ``background`` and each entry of ``pros`` / ``cons`` are stored
either as a bare string or as a map of reading-level variants
``{"1": ..., "3": ..., "4": ..., "7": ...}`` where ``"3"`` is the default.
Rather than type-sniffing at every use site, these fields are parsed into the
tagged variant :data:`ToneText` (``PlainText | ToneVariants``) and read
through :func:`resolve_text`.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

DEFAULT_TONE = 3
MAX_SOURCES_PER_CANDIDATE = 20


# ---------------------------------------------------------------------------
# Tone-aware text -- tagged variant + resolver
# ---------------------------------------------------------------------------

class PlainText(BaseModel):
    """A text field with a single rendering."""

    model_config = ConfigDict(frozen=True)

    text: str


class ToneVariants(BaseModel):
    """A text field with one rendering per reading-level tone."""

    model_config = ConfigDict(frozen=True)

    variants: dict[int, str]

    def with_variant(self, tone: int, text: str) -> ToneVariants:
        return ToneVariants(variants={**self.variants, tone: text})


ToneText = Union[PlainText, ToneVariants]


def resolve_text(
    value: ToneText | None, tone: int = DEFAULT_TONE, fallback: bool = True
) -> str | None:
    """Return the rendering of *value* for *tone*.

    Plain text is returned as-is.  For tone variants the requested tone is
    preferred; when it is missing the lowest-numbered tone present is used,
    or ``None`` is returned when *fallback* is off.
    """
    if value is None:
        return None
    if isinstance(value, PlainText):
        return value.text
    if tone in value.variants:
        return value.variants[tone]
    if not fallback:
        return None
    if not value.variants:
        return ""
    return value.variants[min(value.variants)]


def replace_default_text(value: ToneText | None, text: str) -> ToneText:
    """Replace the default rendering of *value* with *text*, keeping other tones."""
    if isinstance(value, ToneVariants):
        return value.with_variant(DEFAULT_TONE, text)
    return PlainText(text=text)


def _parse_tone_text(raw: Any) -> Any:
    if isinstance(raw, (PlainText, ToneVariants)):
        return raw
    if isinstance(raw, str):
        return PlainText(text=raw)
    if isinstance(raw, dict):
        if "variants" in raw and isinstance(raw["variants"], dict):
            raw = raw["variants"]
        variants: dict[int, str] = {}
        for key, text in raw.items():
            try:
                tone = int(key)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"tone key must be an integer, got {key!r}") from exc
            variants[tone] = "" if text is None else str(text)
        return ToneVariants(variants=variants)
    raise ValueError(f"expected a string or a tone map, got {type(raw).__name__}")


def _dump_tone_text(value: ToneText) -> str | dict[str, str]:
    if isinstance(value, PlainText):
        return value.text
    return {str(tone): text for tone, text in sorted(value.variants.items())}


ToneTextField = Annotated[
    ToneText,
    BeforeValidator(_parse_tone_text),
    PlainSerializer(_dump_tone_text),
]


# ---------------------------------------------------------------------------
# Sources and confidence
# ---------------------------------------------------------------------------

class Source(BaseModel):
    """A web page the research service cited for a candidate."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    url: str
    title: str = ""
    access_date: str | None = None


class ConfidenceLevel(str, Enum):  # noqa: UP042
    VERIFIED = "verified"
    MODEL_INFERRED = "model-inferred"


class FieldConfidence(BaseModel):
    """Provenance annotation for one candidate field."""

    model_config = ConfigDict(frozen=True)

    level: ConfidenceLevel
    source: str


class Endorsement(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str | None = None


def _coerce_endorsement(raw: Any) -> Any:
    if isinstance(raw, str):
        return {"name": raw, "type": None}
    return raw


# ---------------------------------------------------------------------------
# Candidate / Race / Ballot
# ---------------------------------------------------------------------------

_STORED_MODEL_CONFIG = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
    extra="allow",
)


class Candidate(BaseModel):
    """One candidate in a race.

    ``name`` is the identity key within its race and never changes through
    the update pipeline.
    """

    model_config = _STORED_MODEL_CONFIG

    name: str
    is_incumbent: bool = False
    withdrawn: bool = False
    summary: ToneTextField | None = None
    background: ToneTextField | None = None
    key_positions: list[str] = Field(default_factory=list)
    endorsements: list[Annotated[Endorsement, BeforeValidator(_coerce_endorsement)]] = Field(
        default_factory=list
    )
    pros: list[ToneTextField] = Field(default_factory=list)
    cons: list[ToneTextField] = Field(default_factory=list)
    polling: str | None = None
    fundraising: str | None = None
    sources: list[Source] = Field(default_factory=list)
    sources_updated_at: str | None = None
    confidence: dict[str, FieldConfidence] = Field(default_factory=dict)
    balance_score: int | None = None

    @field_validator("key_positions", "endorsements", "pros", "cons", "sources", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("confidence", mode="before")
    @classmethod
    def _none_to_empty_dict(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def is_active(self) -> bool:
        return not self.withdrawn

    def summary_text(self) -> str | None:
        return resolve_text(self.summary)

    def background_text(self) -> str | None:
        return resolve_text(self.background)

    def pros_text(self) -> list[str]:
        return [resolve_text(p) or "" for p in self.pros]

    def cons_text(self) -> list[str]:
        return [resolve_text(c) or "" for c in self.cons]


class Race(BaseModel):
    """A contest for one office (optionally within a district)."""

    model_config = _STORED_MODEL_CONFIG

    office: str
    district: str | None = None
    is_contested: bool = True
    candidates: list[Candidate] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{self.office} - {self.district}" if self.district else self.office

    def candidate_names(self) -> set[str]:
        return {c.name for c in self.candidates}

    def find_candidate(self, name: str) -> Candidate | None:
        for candidate in self.candidates:
            if candidate.name == name:
                return candidate
        return None


class Ballot(BaseModel):
    """All races on one party's ballot for one scope (statewide or a county)."""

    model_config = _STORED_MODEL_CONFIG

    party: str
    races: list[Race] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> Ballot:
        return cls.model_validate_json(raw)


def race_key(party: str, race: Race) -> str:
    """Stable identifier for a race: ``party/office[/district]``."""
    if race.district:
        return f"{party}/{race.office}/{race.district}"
    return f"{party}/{race.office}"
