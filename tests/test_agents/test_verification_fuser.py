"""Tests for the Verification Fuser agent."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from checkai.agents.verification_fuser import (
    NO_EVIDENCE_REASON,
    NO_USABLE_REASON,
    VerificationFuser,
    clean_reason,
    confidence_score,
    fuse,
    map_label,
    model_citations,
    pick_label,
)
from checkai.config import FusionPolicy
from checkai.models import Claim, EntailmentScore, EvidenceCandidate, NormalizedClaim, SourceSpan


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_claim() -> Claim:
    return Claim(
        id="c-1",
        text="The Eiffel Tower is 330 metres tall",
        normalized=NormalizedClaim(subject="Eiffel Tower", predicate="is", object="330 metres tall"),
        source_span=SourceSpan(paragraphIndex=0, sentenceIndex=0),
    )


def _make_evidence(i: int = 0, authority: float = 0.8) -> EvidenceCandidate:
    return EvidenceCandidate(
        id=f"ev-{i}",
        source="web",
        url=f"https://source{i}.com/page",
        title=f"Source {i}",
        quote=f"Quote {i}",
        authority=authority,
    )


def _score(entail: float, contradict: float) -> EntailmentScore:
    return EntailmentScore(entail=entail, contradict=contradict, neutral=round(1 - entail - contradict, 6))


def _make_scorer(*scores: EntailmentScore) -> MagicMock:
    scorer = MagicMock()
    scorer.score.side_effect = list(scores)
    return scorer


def _make_model(reply) -> MagicMock:
    model = MagicMock()
    model.configured = True
    model.request_json.return_value = reply
    return model


# ---------------------------------------------------------------------------
# Tests: Pure fusion
# ---------------------------------------------------------------------------


class TestFuse:

    def test_two_supporting_items(self):
        scored = [(_make_evidence(0), _score(0.9, 0.05)), (_make_evidence(1), _score(0.6, 0.2))]
        verdict = fuse("c-1", scored)
        assert verdict.label == "SUPPORTED"
        assert verdict.confidence > 0.5
        # support 1.2, refute 0.2, neutral 0.2 -> 0.75 * 0.7 + (2/6) * 0.3
        assert verdict.confidence == pytest.approx(0.625, abs=1e-3)
        assert verdict.citations == ["https://source0.com/page", "https://source1.com/page"]

    def test_refuted(self):
        scored = [(_make_evidence(0, 0.9), _score(0.05, 0.9))]
        assert fuse("c-1", scored).label == "REFUTED"

    def test_disputed(self):
        scored = [(_make_evidence(0), _score(0.9, 0.05)), (_make_evidence(1), _score(0.05, 0.9))]
        assert fuse("c-1", scored).label == "DISPUTED"

    def test_weak_evidence_insufficient(self):
        scored = [(_make_evidence(0, 0.2), _score(0.4, 0.3))]
        verdict = fuse("c-1", scored)
        assert verdict.label == "INSUFFICIENT"
        assert verdict.citations == []

    def test_reason_describes_each_item(self):
        scored = [(_make_evidence(0), _score(0.9, 0.05)), (_make_evidence(1), _score(0.6, 0.2))]
        reason = fuse("c-1", scored).reason
        assert reason.splitlines() == [
            "Source 0: 0.90 entail / 0.05 contradict",
            "Source 1: 0.60 entail / 0.20 contradict",
        ]

    def test_citations_deduplicated_and_capped(self):
        scored = [(_make_evidence(i % 12), _score(0.9, 0.05)) for i in range(24)]
        assert len(fuse("c-1", scored).citations) == 10

    def test_empty_input(self):
        verdict = fuse("c-1", [])
        assert verdict.label == "INSUFFICIENT"
        assert verdict.confidence == 0.0

    def test_policy_thresholds_adjustable(self):
        scored = [(_make_evidence(0, 0.5), _score(0.8, 0.1))]
        assert fuse("c-1", scored).label == "INSUFFICIENT"
        assert fuse("c-1", scored, FusionPolicy(support_threshold=0.3)).label == "SUPPORTED"

    @pytest.mark.parametrize(
        "support, refute, expected",
        [
            (0.5, 0.0, "SUPPORTED"),
            (0.55, 0.5, "DISPUTED"),
            (0.0, 0.5, "REFUTED"),
            (0.36, 0.36, "DISPUTED"),
            (0.35, 0.35, "INSUFFICIENT"),
        ],
    )
    def test_pick_label_boundaries(self, support, refute, expected):
        assert pick_label(support, refute, FusionPolicy()) == expected

    def test_confidence_bounded(self):
        assert 0.0 <= confidence_score(10, 0, 0, 100, FusionPolicy()) <= 1.0


# ---------------------------------------------------------------------------
# Tests: Model verdict normalization
# ---------------------------------------------------------------------------


class TestNormalization:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("supported", "SUPPORTED"),
            ("Partially SUPPORTS", "SUPPORTED"),
            ("REFUTED", "REFUTED"),
            ("false", "REFUTED"),
            ("Mixed evidence", "DISPUTED"),
            ("disputed", "DISPUTED"),
            ("unknown", "INSUFFICIENT"),
            (None, "INSUFFICIENT"),
        ],
    )
    def test_map_label(self, raw, expected):
        assert map_label(raw) == expected

    def test_clean_reason_strips_code_refs(self):
        text = "Source [ref_1] confirms the height (id: ev-1) and `evidence[0]` agrees."
        assert clean_reason(text) == "Source [ref_1] confirms the height and agrees."

    @pytest.mark.parametrize("text", ["", "   ", None, "`only code`"])
    def test_clean_reason_fallback(self, text):
        assert clean_reason(text) == NO_USABLE_REASON

    def test_model_citations_validated(self):
        raw = [
            {"url": "https://a.com/x", "title": "A"},
            "https://b.com/y",
            {"url": "https://a.com/x"},
            {"url": "javascript:alert(1)"},
            {"title": "no url"},
            42,
        ]
        assert model_citations(raw) == ["https://a.com/x", "https://b.com/y"]

    def test_model_citations_non_list(self):
        assert model_citations("https://a.com") == []


# ---------------------------------------------------------------------------
# Tests: Fuser
# ---------------------------------------------------------------------------


class TestVerificationFuser:

    def test_no_evidence_returns_insufficient_without_scoring(self):
        scorer = MagicMock()
        model = _make_model({"label": "SUPPORTED"})
        verdict = VerificationFuser(model, scorer).verify(_make_claim(), [])
        assert verdict.label == "INSUFFICIENT"
        assert verdict.confidence <= 0.5
        assert verdict.citations == []
        assert verdict.reason == NO_EVIDENCE_REASON
        scorer.score.assert_not_called()
        model.request_json.assert_not_called()

    def test_model_verdict_preferred(self):
        model = _make_model({
            "label": "supported",
            "confidence": 1.7,
            "reason": "Both sources [ref_1] agree.",
            "citations": [{"url": "https://source0.com/page"}],
        })
        scorer = MagicMock()
        verdict = VerificationFuser(model, scorer).verify(_make_claim(), [_make_evidence(0)])
        assert verdict.label == "SUPPORTED"
        assert verdict.confidence == 1.0
        assert verdict.citations == ["https://source0.com/page"]
        scorer.score.assert_not_called()
        assert model.request_json.call_args.kwargs["max_retries"] == 2

    @pytest.mark.parametrize("raw, expected", [(0.01, 0.1), ("n/a", 0.4), (0.55555, 0.556)])
    def test_model_confidence_clamped(self, raw, expected):
        model = _make_model({"label": "REFUTED", "confidence": raw, "reason": "Contradicted by source."})
        verdict = VerificationFuser(model, MagicMock()).verify(_make_claim(), [_make_evidence(0)])
        assert verdict.confidence == pytest.approx(expected)

    def test_model_failure_falls_back_to_fusion(self):
        model = _make_model(None)
        scorer = _make_scorer(_score(0.9, 0.05), _score(0.6, 0.2))
        verdict = VerificationFuser(model, scorer).verify(_make_claim(), [_make_evidence(0), _make_evidence(1)])
        assert verdict.label == "SUPPORTED"
        assert scorer.score.call_count == 2

    def test_unconfigured_model_skips_model_call(self):
        model = MagicMock()
        model.configured = False
        scorer = _make_scorer(_score(0.05, 0.9))
        verdict = VerificationFuser(model, scorer).verify(_make_claim(), [_make_evidence(0, 0.9)])
        assert verdict.label == "REFUTED"
        model.request_json.assert_not_called()

    def test_only_six_items_sent_to_model(self):
        model = _make_model({"label": "SUPPORTED", "confidence": 0.8, "reason": "Agreed by sources."})
        VerificationFuser(model, MagicMock()).verify(_make_claim(), [_make_evidence(i) for i in range(9)])
        payload = model.request_json.call_args.args[0][1]["content"]
        assert "source5.com" in payload
        assert "source6.com" not in payload

    def test_only_five_items_scored(self):
        model = _make_model(None)
        scorer = _make_scorer(*[_score(0.2, 0.2)] * 5)
        VerificationFuser(model, scorer).verify(_make_claim(), [_make_evidence(i) for i in range(9)])
        assert scorer.score.call_count == 5

    def test_fused_citations_are_subset_of_evidence(self):
        model = _make_model(None)
        evidence = [_make_evidence(i) for i in range(3)]
        scorer = _make_scorer(_score(0.9, 0.05), _score(0.1, 0.1), _score(0.05, 0.8))
        verdict = VerificationFuser(model, scorer).verify(_make_claim(), evidence)
        assert set(verdict.citations) <= {e.url for e in evidence}
        assert verdict.citations == ["https://source0.com/page", "https://source2.com/page"]

    def test_verification_is_repeatable(self):
        evidence = [_make_evidence(0), _make_evidence(1)]
        scores = [_score(0.9, 0.05), _score(0.6, 0.2)]
        first = VerificationFuser(_make_model(None), _make_scorer(*scores)).verify(_make_claim(), evidence)
        second = VerificationFuser(_make_model(None), _make_scorer(*scores)).verify(_make_claim(), evidence)
        assert first == second
