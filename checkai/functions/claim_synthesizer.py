"""Claim Synthesizer — Function (one LLM call per gate batch).

Turns gated sentences into sanitized, deduplicated Claim records:

1. Sentences are partitioned by the Sentence Gate into ALLOW and REVIEW
   batches; REJECT sentences are dropped.
2. Each non-empty batch is sent to the model with a mode-specific
   instruction. The fallback is a heuristic claim per sentence.
3. Every raw claim from the model is sanitized against the heuristic
   claim for the same sentence.
4. Results are merged, deduplicated by source span, sorted, and topped up
   from the heuristic claims when fewer than MIN_CLAIMS survive.

Type: Function (fixed steps, at most one LLM call per batch)
Model: Claude Sonnet
"""

from __future__ import annotations

import json
import logging
import math
import re
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from checkai.functions.sentence_gate import count_alpha_or_cjk, evaluate
from checkai.llm.structured_client import StructuredModelClient
from checkai.models import (
    Claim,
    ClaimNumber,
    GateResult,
    NormalizedClaim,
    SourceSpan,
    clamp_confidence,
)

logger = logging.getLogger(__name__)

MIN_CLAIMS = 5
MAX_RETRIES = 2
MAX_CONTEXT_CHARS = 6000

UNKNOWN_SUBJECT = "unknown subject"
DEFAULT_PREDICATE = "asserts"

VALID_QUALIFIERS = {"AT_LEAST", "AT_MOST", "APPROX", "GREATER", "LESS", "EQUAL"}

_CLAIM_NAMESPACE = uuid.UUID("5b0c6f4e-8d4a-4f6e-9d3b-6c1f0a2e7b11")
_URL_ONLY = re.compile(r"^(?:https?://|www\.)\S+$", re.IGNORECASE)
_TOKEN_SPLIT = re.compile(r"\s+|，|、|；|,")
_SENTENCE_PUNCT = re.compile(r"[。！？!?]")

_CLAIM_SHAPE = """\
Respond with ONLY a JSON object:
{
  "claims": [
    {
      "id": "string",
      "text": "the checkable statement, in the sentence's language",
      "normalized": {
        "subject": "...", "predicate": "...", "object": "...",
        "time": "... or null", "unit": "... or null",
        "location": "... or null", "event": "... or null",
        "entities": ["..."],
        "numbers": [{"key": "...", "value": 0, "qualifier": "AT_LEAST|AT_MOST|APPROX|GREATER|LESS|EQUAL", "unit": "..."}],
        "qualifiers": ["..."]
      },
      "checkworthy": true,
      "confidence": 0.0,
      "source_span": {"paragraphIndex": 0, "sentenceIndex": 0},
      "search_queries": ["..."]
    }
  ],
  "uncertain_reason": null
}
Copy source_span unchanged from the input sentence. Use null for facets that do not apply."""

_ALLOW_PROMPT = f"""\
You are a rigorous fact-checking analyst. Every sentence you receive has \
already been judged to contain a checkable assertion. Extract the factual \
claim from each sentence and normalize it into subject/predicate/object \
with its time, place, entities and quantities. Verify rigorously: keep \
numbers exact, keep the qualifiers ("at least", "about") that bound them, \
and never add facts that are not in the sentence. Give 1-3 web search \
queries per claim.

{_CLAIM_SHAPE}"""

_REVIEW_PROMPT = f"""\
You are a fact-checking analyst. The sentences you receive may or may not \
contain a checkable factual assertion. For each sentence, decide whether it \
states something that could be verified against public sources. Opinions, \
predictions, questions and instructions are not checkable: omit them or \
set "checkworthy" to false. For checkable sentences, extract and normalize \
the claim and give 1-3 web search queries.

{_CLAIM_SHAPE}"""


@dataclass
class GatedSentence:
    """A sentence that passed the gate, with its location and gate result."""
    text: str
    span: SourceSpan
    gate: GateResult


# ---------------------------------------------------------------------------
# Heuristic claims
# ---------------------------------------------------------------------------


def _stable_id(*parts: object) -> str:
    return str(uuid.uuid5(_CLAIM_NAMESPACE, "|".join(str(p) for p in parts)))


def confidence_from_score(score: int) -> float:
    """Map a gate score to a heuristic claim confidence in [0.5, 0.95]."""
    base = 0.6 + min(score, 6) * 0.05
    return max(0.5, min(0.95, round(base, 2)))


def build_heuristic_claim(text: str, span: SourceSpan, score: int = 3) -> Claim:
    """Deterministic claim for a sentence, used when the model is unavailable.

    subject is the first token, predicate the next one to three tokens, and
    object the whole sentence.
    """
    clean = text.strip()
    tokens = [t for t in _TOKEN_SPLIT.split(_SENTENCE_PUNCT.sub(" ", clean)) if t]
    subject = tokens[0] if tokens else UNKNOWN_SUBJECT
    predicate = " ".join(tokens[1:4]) or DEFAULT_PREDICATE
    return Claim(
        id=_stable_id("heuristic", span.paragraphIndex, span.sentenceIndex, clean),
        text=clean,
        normalized=NormalizedClaim(subject=subject, predicate=predicate, object=clean or subject),
        checkworthy=True,
        confidence=confidence_from_score(score),
        source_span=span,
    )


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------


def _coerce_str(value: Any) -> Optional[str]:
    """Trimmed string for str/number/bool input, else None. Empty → None."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _coerce_str_list(value: Any) -> Optional[list[str]]:
    if not isinstance(value, list):
        return None
    items = [s for s in (_coerce_str(v) for v in value) if s]
    return items or None


def _coerce_number_value(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        digits = re.sub(r"[^0-9.+-]", "", value)
        try:
            number = float(digits)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _coerce_numbers(value: Any) -> Optional[list[ClaimNumber]]:
    if not isinstance(value, list):
        return None
    numbers = []
    for item in value:
        if not isinstance(item, dict):
            continue
        number = _coerce_number_value(item.get("value"))
        if number is None:
            continue
        qualifier = _coerce_str(item.get("qualifier"))
        qualifier = qualifier.upper() if qualifier else None
        numbers.append(ClaimNumber(
            key=_coerce_str(item.get("key")),
            value=number,
            qualifier=qualifier if qualifier in VALID_QUALIFIERS else None,
            unit=_coerce_str(item.get("unit")),
        ))
    return numbers or None


def _coerce_span(value: Any) -> Optional[SourceSpan]:
    if not isinstance(value, dict):
        return None
    try:
        return SourceSpan(
            paragraphIndex=int(value.get("paragraphIndex")),
            sentenceIndex=int(value.get("sentenceIndex")),
        )
    except (TypeError, ValueError, OverflowError):
        return None


def _is_rejectable_text(text: str) -> bool:
    return (
        not text
        or bool(_URL_ONLY.match(text))
        or count_alpha_or_cjk(text) < 3
    )


def sanitize_claims(raw_claims: Any, fallback: Sequence[Claim]) -> list[Claim]:
    """Coerce raw model claims into valid Claim records.

    Pure: identical input always yields identical output, including ids.

    Each raw claim is paired with the heuristic claim for the same source
    span (or, when the span is unknown, the heuristic claim at the same
    position) and missing required fields are taken from it.

    Args:
        raw_claims: The ``claims`` list from the model reply.
        fallback: Heuristic claims for the batch, in batch order.

    Returns:
        Sanitized claims; unusable entries are dropped.
    """
    if not isinstance(raw_claims, list) or not fallback:
        return []

    by_span = {fb.source_span.key: fb for fb in fallback}
    seen_ids: set[str] = set()
    sanitized: list[Claim] = []

    for idx, raw in enumerate(raw_claims):
        if not isinstance(raw, dict):
            continue

        span = _coerce_span(raw.get("source_span"))
        base = by_span.get(span.key) if span else None
        if base is None:
            base = fallback[idx % len(fallback)]
        span = base.source_span

        raw_norm = raw.get("normalized") if isinstance(raw.get("normalized"), dict) else {}
        text = _coerce_str(raw.get("text")) or base.text
        if _is_rejectable_text(text):
            logger.debug("Dropping unusable claim text: %r", text)
            continue

        normalized = NormalizedClaim(
            subject=_coerce_str(raw_norm.get("subject")) or base.normalized.subject,
            predicate=_coerce_str(raw_norm.get("predicate")) or base.normalized.predicate,
            object=_coerce_str(raw_norm.get("object")) or base.normalized.object,
            time=_coerce_str(raw_norm.get("time")),
            unit=_coerce_str(raw_norm.get("unit")),
            location=_coerce_str(raw_norm.get("location")),
            event=_coerce_str(raw_norm.get("event")),
            entities=_coerce_str_list(raw_norm.get("entities")),
            numbers=_coerce_numbers(raw_norm.get("numbers")),
            qualifiers=_coerce_str_list(raw_norm.get("qualifiers")),
        )

        claim_id = _coerce_str(raw.get("id"))
        if not claim_id or claim_id in seen_ids:
            claim_id = _stable_id("claim", span.paragraphIndex, span.sentenceIndex, idx, text)
        seen_ids.add(claim_id)

        checkworthy = raw.get("checkworthy")
        sanitized.append(Claim(
            id=claim_id,
            text=text,
            normalized=normalized,
            checkworthy=checkworthy if isinstance(checkworthy, bool) else base.checkworthy,
            confidence=clamp_confidence(raw.get("confidence"), default=base.confidence),
            source_span=span,
            search_queries=_coerce_str_list(raw.get("search_queries")),
        ))

    return sanitized


def merge_claims(*batches: Sequence[Claim]) -> list[Claim]:
    """Deduplicate by source span (first occurrence wins) and sort by span."""
    seen: set[tuple[int, int]] = set()
    merged: list[Claim] = []
    for batch in batches:
        for claim in batch:
            key = claim.source_span.key
            if key in seen:
                continue
            seen.add(key)
            merged.append(claim)
    merged.sort(key=lambda c: c.source_span.key)
    return merged


def top_up(claims: list[Claim], fallback: Sequence[Claim], floor: int = MIN_CLAIMS) -> list[Claim]:
    """Fill up to ``floor`` claims from fallback without repeating a span.

    Fallback claims whose text sanitization would reject are never added.
    """
    if len(claims) >= floor or not fallback:
        return claims
    present = {c.source_span.key for c in claims}
    result = list(claims)
    for fb in sorted(fallback, key=lambda c: c.source_span.key):
        if len(result) >= floor:
            break
        if fb.source_span.key in present or _is_rejectable_text(fb.text):
            continue
        present.add(fb.source_span.key)
        result.append(fb)
    result.sort(key=lambda c: c.source_span.key)
    return result


# ---------------------------------------------------------------------------
# Synthesizer
# ---------------------------------------------------------------------------


class ClaimSynthesizer:
    """Extracts claims from gated sentence batches.

    Args:
        model_client: Shared StructuredModelClient.
        min_claims: Floor for the heuristic top-up.
    """

    def __init__(self, model_client: StructuredModelClient, min_claims: int = MIN_CLAIMS):
        self.model_client = model_client
        self.min_claims = min_claims

    @staticmethod
    def partition(
        sentences: Sequence[str],
        spans: Sequence[SourceSpan],
    ) -> tuple[list[GatedSentence], list[GatedSentence]]:
        """Run the gate and split sentences into (allow, review) batches."""
        allow: list[GatedSentence] = []
        review: list[GatedSentence] = []
        for text, span in zip(sentences, spans):
            gate = evaluate(text)
            if gate.decision == "ALLOW":
                allow.append(GatedSentence(text=text.strip(), span=span, gate=gate))
            elif gate.decision == "REVIEW":
                review.append(GatedSentence(text=text.strip(), span=span, gate=gate))
        return allow, review

    def _build_messages(
        self,
        batch: Sequence[GatedSentence],
        mode: str,
        context: Optional[str],
    ) -> list[dict[str, str]]:
        system = _ALLOW_PROMPT if mode == "ALLOW" else _REVIEW_PROMPT
        payload = {
            "mode": mode,
            "sentences": [
                {
                    "text": item.text,
                    "source_span": item.span.model_dump(),
                    "gate_score": item.gate.score,
                    "signals": item.gate.signals,
                }
                for item in batch
            ],
            "context": context[:MAX_CONTEXT_CHARS] if context else None,
        }
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
        ]

    def _synthesize_batch(
        self,
        batch: Sequence[GatedSentence],
        mode: str,
        context: Optional[str],
    ) -> tuple[list[Claim], list[Claim]]:
        """Returns (sanitized claims, heuristic claims) for one batch."""
        fallback = [build_heuristic_claim(item.text, item.span, item.gate.score) for item in batch]
        fallback_payload = {"claims": [c.model_dump(exclude_none=True) for c in fallback]}

        response = self.model_client.request_json(
            self._build_messages(batch, mode, context),
            fallback_payload,
            max_retries=MAX_RETRIES,
        )
        raw_claims = response.get("claims") if isinstance(response, dict) else None
        claims = sanitize_claims(raw_claims, fallback)
        logger.info("%s batch: %d sentences → %d claims", mode, len(batch), len(claims))
        return claims, fallback

    def synthesize(
        self,
        sentences: Sequence[str],
        spans: Sequence[SourceSpan],
        context: Optional[str] = None,
    ) -> list[Claim]:
        """Extract claims from a document's sentences.

        Args:
            sentences: Sentence texts in document order.
            spans: Source span for each sentence (same length).
            context: Optional document text for disambiguation.

        Returns:
            Claims sorted by source span.
        """
        allow, review = self.partition(sentences, spans)
        results: list[list[Claim]] = []
        fallbacks: list[Claim] = []

        for mode, batch in (("ALLOW", allow), ("REVIEW", review)):
            if not batch:
                continue
            claims, fallback = self._synthesize_batch(batch, mode, context)
            results.append(claims)
            fallbacks.extend(fallback)

        merged = merge_claims(*results)
        return top_up(merged, fallbacks, self.min_claims)
