"""Token-overlap relevance scoring for evidence ranking."""

from __future__ import annotations

import re
from typing import Sequence, TypeVar

_NON_WORD = re.compile(r"[^\w\s]|_")

T = TypeVar("T")


def tokenize(text: str) -> set[str]:
    """Lowercased, punctuation-free tokens of at least 2 characters."""
    cleaned = _NON_WORD.sub(" ", (text or "").lower())
    return {t for t in cleaned.split() if len(t) >= 2}


def overlap(a: str, b: str) -> float:
    """|A ∩ B| / min(|A|, |B|) over the token sets of a and b; 0 if either is empty."""
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / min(len(tokens_a), len(tokens_b))


def rank_by_relevance(claim_text: str, items: Sequence[T], limit: int = 10) -> list[T]:
    """Sort items by overlap of ``title + " " + quote`` with the claim text.

    The sort is stable, so equally scored items keep their input order.
    """
    scored = [
        (overlap(claim_text, f"{getattr(item, 'title', '') or ''} {getattr(item, 'quote', '') or ''}"), item)
        for item in items
    ]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in scored[:limit]]
