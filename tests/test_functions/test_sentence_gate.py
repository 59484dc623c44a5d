"""Tests for the Sentence Gate function."""

from __future__ import annotations

import pytest

from checkai.functions.sentence_gate import (
    ALLOW_THRESHOLD,
    EMPTY_SCORE,
    count_alpha_or_cjk,
    evaluate,
)


# ---------------------------------------------------------------------------
# Tests: Decisions
# ---------------------------------------------------------------------------


class TestDecisions:
    """Tests for the ALLOW / REVIEW / REJECT thresholds."""

    def test_factual_english_sentence_is_allowed(self):
        result = evaluate("Revenue grew 12% in 2023 to $5 billion, the company announced.")
        assert result.decision == "ALLOW"
        assert result.score >= ALLOW_THRESHOLD
        for signal in ("length", "numeric", "money", "change", "event", "time"):
            assert signal in result.signals

    def test_factual_chinese_sentence_is_allowed(self):
        result = evaluate("2023年公司营收同比增长15%。")
        assert result.decision == "ALLOW"
        assert "numeric" in result.signals
        assert "change" in result.signals

    def test_location_only_sentence_needs_review(self):
        result = evaluate("The company is located in Berlin today.")
        assert result.decision == "REVIEW"
        assert result.score == 2
        assert result.signals == ["length", "location"]

    def test_question_is_rejected(self):
        result = evaluate("Is it true?")
        assert result.decision == "REJECT"
        assert "opinion" in result.signals

    def test_opinion_is_rejected(self):
        result = evaluate("I think the policy should change in the future.")
        assert result.decision == "REJECT"
        assert result.score == -1

    def test_fragment_is_rejected(self):
        result = evaluate("ok")
        assert result.decision == "REJECT"
        assert "non_sentence" in result.signals
        assert result.score == -4


# ---------------------------------------------------------------------------
# Tests: Edge cases
# ---------------------------------------------------------------------------


class TestEdgeCases:

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_blank_text_rejected_with_fixed_score(self, text):
        result = evaluate(text)
        assert result.decision == "REJECT"
        assert result.score == EMPTY_SCORE

    def test_url_sentence_never_allowed(self):
        """A URL caps the decision below ALLOW even when other signals are strong."""
        text = (
            "Revenue grew 12% in 2023 to $5 billion, announced in Paris, "
            "located at www.example.com, ranked top 3."
        )
        result = evaluate(text)
        assert "url" in result.signals
        assert result.score >= ALLOW_THRESHOLD
        assert result.decision == "REVIEW"

    def test_url_penalty_applied(self):
        result = evaluate("See https://example.com/report for the 2023 results showing 15% growth.")
        assert "url" in result.signals
        assert result.decision != "ALLOW"

    def test_evaluate_is_deterministic(self):
        text = "The bridge was completed in March 2021 at a cost of 40 million euros."
        assert evaluate(text) == evaluate(text)


class TestAlphaCount:

    def test_counts_latin_and_cjk(self):
        assert count_alpha_or_cjk("ab 12 中文!") == 4

    def test_digits_and_punctuation_ignored(self):
        assert count_alpha_or_cjk("12,345.67%") == 0
