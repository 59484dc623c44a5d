"""Entailment Scorer — Function (fixed fallback chain, no reasoning loop).

Scores how an evidence snippet relates to a claim as an entailment triple
(entail, contradict, neutral) summing to 1. Backends are tried in order:

1. Hosted NLI classifier (Hugging Face Inference API) when configured
2. Model-based estimate through StructuredModelClient
3. Near-uniform triple marked uncertain

Type: Function
Model: roberta-large-mnli (default), Claude Sonnet as the estimator
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

from checkai.config import MODEL_TIMEOUT
from checkai.llm.structured_client import StructuredModelClient
from checkai.models import EntailmentScore, clamp_confidence

logger = logging.getLogger(__name__)

_HF_INFERENCE_URL = "https://api-inference.huggingface.co/models/{model}"

UNIFORM_FALLBACK = {
    "entail": 0.34,
    "contradict": 0.33,
    "neutral": 0.33,
    "uncertain_reason": "model_unavailable",
}

_NLI_SYSTEM_PROMPT = """\
You are a natural language inference model for fact-checking. Given a claim \
and a piece of evidence, estimate how the evidence relates to the claim.

Respond with ONLY a JSON object:
{"entail": 0-1, "contradict": 0-1, "neutral": 0-1, "uncertain_reason": string or null}

The three probabilities must sum to 1."""


def normalize_score(entail: Any, contradict: Any, neutral: Any, uncertain: bool = False) -> EntailmentScore:
    """Clamp each part to [0, 1] and rescale so they sum to 1.

    An all-zero triple becomes the uniform fallback.
    """
    e = clamp_confidence(entail)
    c = clamp_confidence(contradict)
    n = clamp_confidence(neutral)
    total = e + c + n
    if total <= 0:
        return EntailmentScore(
            entail=UNIFORM_FALLBACK["entail"],
            contradict=UNIFORM_FALLBACK["contradict"],
            neutral=UNIFORM_FALLBACK["neutral"],
            uncertain=True,
        )
    return EntailmentScore(entail=e / total, contradict=c / total, neutral=n / total, uncertain=uncertain)


def _parse_hf_labels(data: Any) -> Optional[EntailmentScore]:
    """Read [{label, score}, ...] (possibly nested one level) into a triple."""
    if isinstance(data, list) and data and isinstance(data[0], list):
        data = data[0]
    if not isinstance(data, list) or not data:
        return None

    scores = {"entail": 0.0, "contradict": 0.0, "neutral": 0.0}
    for item in data:
        if not isinstance(item, dict):
            continue
        label = str(item.get("label", "")).lower()
        score = item.get("score", 0.0)
        if "entail" in label:
            scores["entail"] = score
        elif "contrad" in label:
            scores["contradict"] = score
        elif "neutral" in label:
            scores["neutral"] = score
    return normalize_score(**scores)


class EntailmentScorer:
    """Entailment triples from the first backend that answers.

    Args:
        session: HTTP session for the hosted classifier.
        hf_api_key: Hugging Face token; without it the classifier is skipped.
        hf_model: Hosted NLI model name.
        model_client: Structured client for the model-based estimate.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        hf_api_key: Optional[str] = None,
        hf_model: str = "roberta-large-mnli",
        model_client: Optional[StructuredModelClient] = None,
        timeout: float = MODEL_TIMEOUT,
    ):
        self.session = session
        self.hf_api_key = hf_api_key
        self.hf_model = hf_model
        self.model_client = model_client
        self.timeout = timeout

    def _classifier_score(self, claim: str, evidence: str) -> Optional[EntailmentScore]:
        if not self.hf_api_key or self.session is None:
            return None
        try:
            resp = self.session.post(
                _HF_INFERENCE_URL.format(model=self.hf_model),
                headers={"Authorization": f"Bearer {self.hf_api_key}"},
                json={"inputs": {"premise": evidence, "hypothesis": claim}},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return _parse_hf_labels(resp.json())
        except (requests.RequestException, ValueError) as e:
            logger.warning("NLI classifier failed: %s", e)
            return None

    def _model_score(self, claim: str, evidence: str) -> EntailmentScore:
        if self.model_client is None:
            return normalize_score(0.34, 0.33, 0.33, uncertain=True)

        messages = [
            {"role": "system", "content": _NLI_SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps({"claim": claim, "evidence": evidence}, ensure_ascii=False)},
        ]
        result = self.model_client.request_json(messages, dict(UNIFORM_FALLBACK))
        if not isinstance(result, dict):
            result = UNIFORM_FALLBACK
        return normalize_score(
            result.get("entail"),
            result.get("contradict"),
            result.get("neutral"),
            uncertain=bool(result.get("uncertain_reason")),
        )

    def score(self, claim: str, evidence: str) -> EntailmentScore:
        """Entailment triple for (claim, evidence). Never raises."""
        hosted = self._classifier_score(claim, evidence)
        if hosted is not None:
            return hosted
        return self._model_score(claim, evidence)
