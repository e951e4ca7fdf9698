"""Recover a JSON object from free-form research-service output.

Despite being told to return bare JSON, models routinely wrap it in prose,
markdown fences, or both, and occasionally emit a malformed fragment before
the real object.  Extraction is an ordered chain of independent strategies;
the first one that yields a JSON *object* wins:

  1. ``whole_text``     -- the trimmed text is itself a JSON object.
  2. ``fenced_block``   -- contents of a ```json (or bare ```) fence.
  3. ``balanced_scan``  -- the first balanced ``{...}`` span, found by a
                           string-aware brace-depth scan.  If that span does
                           not parse, the scan restarts at the next ``{``.
  4. ``brace_slice``    -- naive slice from the first ``{`` to the last ``}``.

Each strategy is a pure ``str -> dict | None`` function so it can be tested
on its own; :func:`extract_structured` runs the chain.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable

# Captures the body of a markdown code fence; DOTALL lets it span lines.
_JSON_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

Strategy = Callable[[str], "dict[str, Any] | None"]


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def whole_text(text: str) -> dict[str, Any] | None:
    """Parse the entire (trimmed) text as a JSON object."""
    return _loads_object(text.strip())


def fenced_block(text: str) -> dict[str, Any] | None:
    """Parse the first markdown code fence whose body is a JSON object."""
    for match in _JSON_FENCE_RE.finditer(text):
        parsed = _loads_object(match.group(1).strip())
        if parsed is not None:
            return parsed
    return None


def _balanced_end(text: str, start: int) -> int | None:
    """Index just past the ``}`` that closes the ``{`` at *start*, or None.

    Braces inside JSON string literals (including escaped quotes) do not
    count towards depth.
    """
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def balanced_scan(text: str) -> dict[str, Any] | None:
    """Return the first balanced ``{...}`` span that parses as a JSON object."""
    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is not None:
            parsed = _loads_object(text[start:end])
            if parsed is not None:
                return parsed
        start = text.find("{", start + 1)
    return None


def brace_slice(text: str) -> dict[str, Any] | None:
    """Parse everything from the first ``{`` to the last ``}``."""
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        return None
    return _loads_object(text[first : last + 1])


STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("whole_text", whole_text),
    ("fenced_block", fenced_block),
    ("balanced_scan", balanced_scan),
    ("brace_slice", brace_slice),
)


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of :func:`extract_structured`.

    Exactly one of ``data`` / ``error`` is set.  ``strategy`` names the
    strategy that succeeded.
    """

    data: dict[str, Any] | None = None
    strategy: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.data is not None


def extract_structured(text: str) -> ExtractionResult:
    """Run the extraction chain over *text*.

    Examples
    --------
    >>> extract_structured('Sure! {"candidates": []} Hope that helps.').strategy
    'balanced_scan'
    """
    if not text or not text.strip():
        return ExtractionResult(error="empty text")
    for name, strategy in STRATEGIES:
        data = strategy(text)
        if data is not None:
            return ExtractionResult(data=data, strategy=name)
    excerpt = text.strip()[:100]
    return ExtractionResult(error=f"no JSON object found ({excerpt}...)")
