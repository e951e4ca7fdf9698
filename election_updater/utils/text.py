"""Text comparison helpers used by the baseline guard and the merge engine.

Word-level Jaccard similarity is what decides whether a freshly researched
candidate background still describes the same person as the verified
baseline.  Tokenisation is deliberately crude: lower-case, drop anything that
is not a word character or whitespace, split on whitespace.
"""

from __future__ import annotations

import re

_NON_WORD_RE = re.compile(r"[^\w\s]")


def tokenize(text: str) -> set[str]:
    """Return the set of lower-cased word tokens in *text*."""
    cleaned = _NON_WORD_RE.sub("", text.lower())
    return {token for token in cleaned.split() if token}


def compute_token_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the word-token sets of *a* and *b*.

    Two empty strings are considered identical (1.0); one empty and one
    non-empty string share nothing (0.0).

    Examples
    --------
    >>> compute_token_similarity("Former mayor of Austin.", "former Mayor of austin")
    1.0
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a and not tokens_b:
        return 1.0
    union = tokens_a | tokens_b
    return len(tokens_a & tokens_b) / len(union)
