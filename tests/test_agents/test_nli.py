"""Tests for the entailment scoring chain."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from checkai.agents.nli import UNIFORM_FALLBACK, EntailmentScorer, _parse_hf_labels, normalize_score
from checkai.llm.structured_client import StructuredModelClient


def _make_session(payload=None, error: Exception | None = None) -> MagicMock:
    session = MagicMock()
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value.json.return_value = payload
    return session


HF_PAYLOAD = [
    {"label": "ENTAILMENT", "score": 0.8},
    {"label": "NEUTRAL", "score": 0.15},
    {"label": "CONTRADICTION", "score": 0.05},
]


class TestNormalizeScore:

    def test_sums_to_one(self):
        score = normalize_score(2, 1, 1)
        assert score.entail == pytest.approx(2 / 3)
        assert score.entail + score.contradict + score.neutral == pytest.approx(1.0)

    def test_out_of_range_parts_clamped(self):
        score = normalize_score(5, -1, "x")
        assert score.entail == pytest.approx(1.0)
        assert score.contradict == 0.0

    def test_all_zero_is_uniform_and_uncertain(self):
        score = normalize_score(0, 0, 0)
        assert score.uncertain is True
        assert score.entail == UNIFORM_FALLBACK["entail"]


class TestParseHfLabels:

    def test_flat_list(self):
        score = _parse_hf_labels(HF_PAYLOAD)
        assert score.entail == pytest.approx(0.8)
        assert score.contradict == pytest.approx(0.05)

    def test_nested_list(self):
        assert _parse_hf_labels([HF_PAYLOAD]).neutral == pytest.approx(0.15)

    @pytest.mark.parametrize("payload", [[], {}, None, {"error": "loading"}])
    def test_unusable_payload(self, payload):
        assert _parse_hf_labels(payload) is None


class TestEntailmentScorer:

    def test_classifier_used_when_configured(self):
        session = _make_session(HF_PAYLOAD)
        model = MagicMock()
        scorer = EntailmentScorer(session=session, hf_api_key="hf", hf_model="roberta-large-mnli", model_client=model)
        score = scorer.score("claim", "evidence")
        assert score.entail == pytest.approx(0.8)
        model.request_json.assert_not_called()
        body = session.post.call_args.kwargs["json"]
        assert body == {"inputs": {"premise": "evidence", "hypothesis": "claim"}}
        assert session.post.call_args.args[0].endswith("/roberta-large-mnli")

    def test_classifier_failure_falls_back_to_model(self):
        model = MagicMock()
        model.request_json.return_value = {"entail": 0.1, "contradict": 0.7, "neutral": 0.2, "uncertain_reason": None}
        scorer = EntailmentScorer(
            session=_make_session(error=requests.ConnectionError("down")),
            hf_api_key="hf",
            model_client=model,
        )
        score = scorer.score("claim", "evidence")
        assert score.contradict == pytest.approx(0.7)
        assert score.uncertain is False

    def test_no_classifier_key_skips_http(self):
        session = _make_session(HF_PAYLOAD)
        scorer = EntailmentScorer(session=session, hf_api_key=None, model_client=StructuredModelClient(api_key=None))
        scorer.score("claim", "evidence")
        session.post.assert_not_called()

    def test_unconfigured_model_gives_uncertain_uniform(self):
        scorer = EntailmentScorer(model_client=StructuredModelClient(api_key=None))
        score = scorer.score("claim", "evidence")
        assert score.uncertain is True
        assert score.entail == pytest.approx(0.34)
        assert score.contradict == pytest.approx(0.33)

    def test_no_backends_at_all(self):
        score = EntailmentScorer().score("claim", "evidence")
        assert score.uncertain is True
        assert score.entail + score.contradict + score.neutral == pytest.approx(1.0)
