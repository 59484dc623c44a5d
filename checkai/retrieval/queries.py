"""Search query construction for evidence retrieval."""

from __future__ import annotations

import json
import logging
import re
from typing import Iterable, Optional, Sequence

from checkai.llm.structured_client import StructuredModelClient
from checkai.models import Claim

logger = logging.getLogger(__name__)

MIN_QUERY_CHARS = 3
MAX_CONTEXT_SNIPPET = 120
MAX_EXPANDED_QUERIES = 4

_STRIP_CHARS = re.compile(r"[“”\"'<>`]")
_WHITESPACE = re.compile(r"\s+")

_EXPAND_PROMPT = """\
You generate web search queries for fact-checking. Respond with ONLY a JSON \
object {"queries": [string, ...]}. For the given claim, give 3-5 different \
search strings that contain its key entities and predicate; add a site: \
restriction from site_prefs or a year where it helps. No explanations."""


def sanitize_text(text: Optional[str]) -> str:
    """Drop quotes and angle brackets and collapse whitespace."""
    return _WHITESPACE.sub(" ", _STRIP_CHARS.sub("", text or "")).strip()


def dedupe(items: Iterable[Optional[str]], min_length: int = 1) -> list[str]:
    """Trimmed, order-preserving, duplicate-free strings of at least min_length."""
    seen: set[str] = set()
    result = []
    for item in items:
        value = (item or "").strip()
        if len(value) < min_length or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def sanitize_queries(queries: Sequence[object]) -> list[str]:
    """Clean model-supplied queries: trimmed, unquoted, >= 3 chars, deduplicated."""
    cleaned = [sanitize_text(q) for q in queries if isinstance(q, str)]
    return dedupe(cleaned, min_length=MIN_QUERY_CHARS)


def _number_facets(claim: Claim) -> list[str]:
    return [
        f"{n.value:g} {n.unit}" if n.unit else f"{n.value:g}"
        for n in claim.normalized.numbers or []
    ]


def build_normalized_facets(claim: Claim) -> list[str]:
    """Every normalized facet of a claim as a flat, deduplicated list."""
    n = claim.normalized
    facets = [
        n.subject, n.object, n.predicate, n.location, n.time, n.event,
        *(n.entities or []),
        *(n.qualifiers or []),
        *_number_facets(claim),
    ]
    return dedupe(facets, min_length=2)


def generate_fallback_queries(claim: Claim, context: Optional[str] = None) -> list[str]:
    """Deterministic queries built from the claim's normalized fields.

    The bare claim text always comes first.
    """
    n = claim.normalized
    subject = sanitize_text(n.subject)
    predicate = sanitize_text(n.predicate)
    obj = sanitize_text(n.object)
    time = sanitize_text(n.time)

    pieces = [sanitize_text(claim.text)]
    pieces.append(" ".join(p for p in (obj, subject, predicate) if p))
    if obj and time:
        pieces.append(" ".join(p for p in (obj, predicate, time) if p))
    if context:
        first_line = next((line for line in context.splitlines() if line.strip()), "")
        snippet = sanitize_text(first_line[:MAX_CONTEXT_SNIPPET])
        if snippet:
            pieces.append(f"{obj or subject} {snippet}".strip())

    facet_terms = [
        *(n.entities or []),
        *(n.qualifiers or []),
        *_number_facets(claim),
    ]
    facet_query = " ".join(dedupe(sanitize_text(f) for f in facet_terms))
    if facet_query:
        pieces.append(facet_query)

    return dedupe(pieces)


def claim_queries(claim: Claim, context: Optional[str] = None) -> list[str]:
    """Model-supplied queries when the claim carries usable ones, else fallback queries."""
    model_queries = sanitize_queries(claim.search_queries or [])
    if model_queries:
        return model_queries
    return generate_fallback_queries(claim, context)


def _expansion_fallback(claim_text: str, site_prefs: Sequence[str]) -> list[str]:
    core = sanitize_text(claim_text)
    parts = [core]
    parts.extend(f"{core} site:{site}" for site in site_prefs)
    parts.append(" ".join(core.split(" ")[:8]))
    return dedupe(parts)


def expand_queries(
    claim_text: str,
    model_client: StructuredModelClient,
    site_prefs: Sequence[str] = ("wikipedia.org",),
    freshness: str = "any",
    max_queries: int = MAX_EXPANDED_QUERIES,
) -> list[str]:
    """Ask the model for search queries; deterministic variants on failure."""
    fallback = _expansion_fallback(claim_text, site_prefs)[:max_queries]
    messages = [
        {"role": "system", "content": _EXPAND_PROMPT},
        {
            "role": "user",
            "content": json.dumps(
                {"claim": claim_text, "site_prefs": list(site_prefs), "freshness": freshness},
                ensure_ascii=False,
            ),
        },
    ]
    response = model_client.request_json(messages, {"queries": fallback})
    raw = response.get("queries") if isinstance(response, dict) else None
    queries = sanitize_queries(raw) if isinstance(raw, list) else []
    if not queries:
        queries = fallback
    return queries[:max_queries]
