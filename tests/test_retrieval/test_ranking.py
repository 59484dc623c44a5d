"""Tests for token-overlap ranking."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from checkai.retrieval.ranking import overlap, rank_by_relevance, tokenize


@dataclass
class _Item:
    title: str
    quote: str


class TestTokenize:

    def test_lowercases_and_strips_punctuation(self):
        assert tokenize("Paris, FRANCE!") == {"paris", "france"}

    def test_drops_single_character_tokens(self):
        assert tokenize("a b cd 1 22") == {"cd", "22"}

    def test_unicode_aware(self):
        assert tokenize("Zürich über Straße") == {"zürich", "über", "straße"}

    def test_empty(self):
        assert tokenize("") == set()
        assert tokenize(None) == set()


class TestOverlap:

    def test_uses_smaller_token_set(self):
        # claim has 4 tokens; text has 2, both shared
        assert overlap("the eiffel tower height", "eiffel tower") == pytest.approx(1.0)

    def test_partial(self):
        assert overlap("revenue grew twelve percent", "revenue fell sharply today") == pytest.approx(0.25)

    def test_empty_side_is_zero(self):
        assert overlap("something", "") == 0.0


class TestRankByRelevance:

    def test_sorted_by_score(self):
        items = [
            _Item("Weather report", "Rain expected"),
            _Item("Eiffel Tower", "The Eiffel Tower is 330 metres tall"),
            _Item("Paris guide", "Things to do near the tower"),
        ]
        ranked = rank_by_relevance("The Eiffel Tower is 330 metres tall", items)
        assert ranked[0].title == "Eiffel Tower"
        assert ranked[-1].title == "Weather report"

    def test_ties_keep_input_order(self):
        items = [_Item(f"Unrelated {i}", "nothing shared") for i in range(5)]
        ranked = rank_by_relevance("eiffel tower", items)
        assert ranked == items

    def test_truncates_to_limit(self):
        items = [_Item(f"Tower {i}", "eiffel") for i in range(8)]
        assert len(rank_by_relevance("eiffel tower", items, limit=3)) == 3
