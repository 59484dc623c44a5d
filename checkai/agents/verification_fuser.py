"""Verification Fuser — Agent (model verdict, then evidence fusion).

Produces exactly one Verification for a claim and its evidence:

1. Preferred path: ask the model for a verdict over the top evidence
   (label, confidence, reason with [ref_N] markers, cited URLs).
2. Fallback path: score each evidence item with the entailment chain,
   weight by source authority, and derive label and confidence from the
   aggregate (see FusionPolicy for the thresholds).

With no evidence at all the verdict is INSUFFICIENT and no scoring runs.

Type: Agent (conditional fallback between two strategies)
Model: Claude Sonnet
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from checkai.agents.nli import EntailmentScorer
from checkai.config import MAX_CONTEXT_LENGTH, FusionPolicy
from checkai.llm.structured_client import StructuredModelClient
from checkai.models import (
    Claim,
    EntailmentScore,
    EvidenceCandidate,
    Verification,
    VerdictLabel,
    clamp,
    clamp_confidence,
    is_valid_url,
)

logger = logging.getLogger(__name__)

MAX_MODEL_EVIDENCE = 6
MAX_SCORED_EVIDENCE = 5
MAX_CITATIONS = 10
VERDICT_RETRIES = 2
CITE_THRESHOLD = 0.5
_EPSILON = 1e-6

NO_EVIDENCE_REASON = "No evidence was available to assess this claim."
INSUFFICIENT_REASON = "Insufficient evidence to decide."
NO_USABLE_REASON = "No usable evidence was found for this claim."
DEFAULT_MODEL_CONFIDENCE = 0.4

_CODE_REF = re.compile(r"\(?(?:id|ID)\s*:\s*[^)]+\)?")
_BACKTICKED = re.compile(r"`{1,3}[^`]+`{1,3}")
_MULTISPACE = re.compile(r"\s{2,}")

_VERDICT_SYSTEM_PROMPT = """\
You are a fact-checking judge. Given a claim, its normalized form, optional \
document context and numbered evidence items, decide whether the evidence \
supports or refutes the claim.

Respond with ONLY a JSON object:
{
  "label": "SUPPORTED" | "REFUTED" | "DISPUTED" | "INSUFFICIENT",
  "confidence": 0-1,
  "reason": "natural-language explanation",
  "citations": [{"url": "...", "title": "..."}]
}

Rules:
- Refer to evidence as [ref_<number>] or by the source name
- Never mention JSON field names or code in the reason
- Cite only URLs that appear in the evidence; do not invent citations
- Use INSUFFICIENT when the evidence does not address the claim"""


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def map_label(label: Any) -> VerdictLabel:
    """Map a free-form label to the canonical enum by substring match."""
    upper = str(label or "").upper()
    if "SUPPORT" in upper:
        return "SUPPORTED"
    if "REFUTE" in upper or "FALSE" in upper:
        return "REFUTED"
    if "DISPUTE" in upper or "MIXED" in upper:
        return "DISPUTED"
    return "INSUFFICIENT"


def clean_reason(text: Any) -> str:
    """Drop inline id references and back-quoted fragments from a model reason."""
    trimmed = str(text or "").strip()
    if not trimmed:
        return NO_USABLE_REASON
    cleaned = _BACKTICKED.sub("", _CODE_REF.sub("", trimmed))
    cleaned = _MULTISPACE.sub(" ", cleaned).strip()
    return cleaned if len(cleaned) >= 3 else NO_USABLE_REASON


def model_citations(raw: Any) -> list[str]:
    """Well-formed, deduplicated citation URLs from a model reply."""
    if not isinstance(raw, list):
        return []
    urls: list[str] = []
    for item in raw:
        url = item.get("url") if isinstance(item, dict) else item
        if not isinstance(url, str):
            continue
        url = url.strip()
        if is_valid_url(url) and url not in urls:
            urls.append(url)
    return urls[:MAX_CITATIONS]


@dataclass
class FusionTotals:
    """Authority-weighted sums over scored evidence."""
    support: float = 0.0
    refute: float = 0.0
    neutral: float = 0.0
    citations: list[str] = field(default_factory=list)
    descriptions: list[str] = field(default_factory=list)


def aggregate(scored: Sequence[tuple[EvidenceCandidate, EntailmentScore]]) -> FusionTotals:
    totals = FusionTotals()
    for evidence, score in scored:
        weight = evidence.authority
        totals.support += weight * score.entail
        totals.refute += weight * score.contradict
        totals.neutral += weight * score.neutral
        if (score.entail > CITE_THRESHOLD or score.contradict > CITE_THRESHOLD) \
                and evidence.url not in totals.citations:
            totals.citations.append(evidence.url)
        totals.descriptions.append(
            f"{evidence.title}: {score.entail:.2f} entail / {score.contradict:.2f} contradict"
        )
    return totals


def pick_label(support: float, refute: float, policy: FusionPolicy) -> VerdictLabel:
    if support >= policy.support_threshold and support >= refute * policy.dominance_ratio:
        return "SUPPORTED"
    if refute >= policy.refute_threshold and refute >= support * policy.dominance_ratio:
        return "REFUTED"
    if support > policy.dispute_floor and refute > policy.dispute_floor:
        return "DISPUTED"
    return "INSUFFICIENT"


def confidence_score(
    support: float,
    refute: float,
    neutral: float,
    evidence_count: int,
    policy: FusionPolicy,
) -> float:
    """Dominance share blended with evidence coverage."""
    w = policy.confidence_base_weight
    dominant = max(support, refute)
    base = dominant / (support + refute + neutral + _EPSILON) * w
    coverage = min(evidence_count / policy.coverage_divisor, 1.0) * (1 - w)
    return clamp_confidence(round(base + coverage, 4))


def fuse(
    claim_id: str,
    scored: Sequence[tuple[EvidenceCandidate, EntailmentScore]],
    policy: Optional[FusionPolicy] = None,
) -> Verification:
    """Fold per-evidence entailment triples into one verdict."""
    policy = policy or FusionPolicy()
    totals = aggregate(scored)
    return Verification(
        claimId=claim_id,
        label=pick_label(totals.support, totals.refute, policy),
        confidence=confidence_score(totals.support, totals.refute, totals.neutral, len(scored), policy),
        reason="\n".join(totals.descriptions) or INSUFFICIENT_REASON,
        citations=totals.citations[:MAX_CITATIONS],
    )


def no_evidence_verdict(claim_id: str) -> Verification:
    return Verification(
        claimId=claim_id,
        label="INSUFFICIENT",
        confidence=0.0,
        reason=NO_EVIDENCE_REASON,
        citations=[],
    )


def _check_verdict_shape(reply: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(reply.get("label"), str):
        raise ValueError("label missing")
    return reply


# ---------------------------------------------------------------------------
# Fuser
# ---------------------------------------------------------------------------


class VerificationFuser:
    """Decides a verdict for a claim from its evidence.

    Args:
        model_client: Structured client for the direct model verdict.
        scorer: Entailment scorer for the fusion fallback.
        policy: Fusion thresholds and weights.
    """

    def __init__(
        self,
        model_client: Optional[StructuredModelClient] = None,
        scorer: Optional[EntailmentScorer] = None,
        policy: Optional[FusionPolicy] = None,
    ):
        self.model_client = model_client
        self.scorer = scorer or EntailmentScorer(model_client=model_client)
        self.policy = policy or FusionPolicy()

    def _build_messages(
        self,
        claim: Claim,
        evidences: Sequence[EvidenceCandidate],
        context: Optional[str],
    ) -> list[dict[str, str]]:
        payload = {
            "claim": claim.text,
            "normalized": claim.normalized.model_dump(exclude_none=True),
            "context": (context or "")[:MAX_CONTEXT_LENGTH] or None,
            "evidences": [
                {
                    "ref": f"ref_{i + 1}",
                    "title": ev.title,
                    "quote": ev.quote,
                    "url": ev.url,
                    "authority": ev.authority,
                    "published_at": ev.published_at,
                }
                for i, ev in enumerate(evidences)
            ],
        }
        return [
            {"role": "system", "content": _VERDICT_SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
        ]

    def model_verdict(
        self,
        claim: Claim,
        evidences: Sequence[EvidenceCandidate],
        context: Optional[str] = None,
    ) -> Optional[Verification]:
        """Direct model verdict, or None when the model gave no usable reply."""
        if self.model_client is None or not self.model_client.configured or not evidences:
            return None

        reply = self.model_client.request_json(
            self._build_messages(claim, evidences, context),
            None,
            max_retries=VERDICT_RETRIES,
            validate=_check_verdict_shape,
        )
        if reply is None:
            return None

        return Verification(
            claimId=claim.id,
            label=map_label(reply.get("label")),
            confidence=round(clamp(reply.get("confidence"), 0.1, 1.0, DEFAULT_MODEL_CONFIDENCE), 3),
            reason=clean_reason(reply.get("reason")),
            citations=model_citations(reply.get("citations")),
        )

    def fused_verdict(self, claim: Claim, evidences: Sequence[EvidenceCandidate]) -> Verification:
        """Entailment-weighted verdict over the top evidence items."""
        scored = [
            (ev, self.scorer.score(claim.text, ev.quote))
            for ev in evidences[:MAX_SCORED_EVIDENCE]
        ]
        uncertain = sum(1 for _, s in scored if s.uncertain)
        if uncertain:
            logger.info("Claim %s: %d/%d entailment scores uncertain", claim.id, uncertain, len(scored))
        return fuse(claim.id, scored, self.policy)

    def verify(
        self,
        claim: Claim,
        evidences: Sequence[EvidenceCandidate],
        context: Optional[str] = None,
    ) -> Verification:
        """One verdict for the claim. Items beyond the sixth are ignored."""
        top = list(evidences)[:MAX_MODEL_EVIDENCE]
        if not top:
            logger.info("Claim %s: no evidence, verdict INSUFFICIENT", claim.id)
            return no_evidence_verdict(claim.id)

        verdict = self.model_verdict(claim, top, context)
        if verdict is not None:
            logger.info("Claim %s: model verdict %s (%.2f)", claim.id, verdict.label, verdict.confidence)
            return verdict

        verdict = self.fused_verdict(claim, top)
        logger.info("Claim %s: fused verdict %s (%.2f)", claim.id, verdict.label, verdict.confidence)
        return verdict
