from __future__ import annotations

from datetime import date

from research_engine.models.sources import ProviderKind
from research_engine.services.source_ranker import (
    extract_keywords,
    keyword_score,
    rank_sources,
    recency_boost,
)

TODAY = date(2025, 6, 1)


def test_extract_keywords_drops_stop_words_and_short_tokens():
    assert extract_keywords("What are the side-effects of metformin?") == ["what", "side", "effects", "metformin"]
    assert extract_keywords("Metformin nedir ve nasıl kullanılır") == ["metformin", "kullanılır"]


def test_keyword_score():
    assert keyword_score("anything", []) == 35
    assert keyword_score("metformin and kidneys", ["metformin", "kidney"]) == 70
    assert keyword_score("metformin only", ["metformin", "insulin"]) == 35
    assert keyword_score("metformin only", ["metformin", "insulin", "pump"]) == 23


def test_recency_boost(record_factory):
    assert recency_boost(record_factory(ProviderKind.PUBMED, "1", published="2024-03-01"), TODAY) == 15
    assert recency_boost(record_factory(ProviderKind.PUBMED, "1", published="2022"), TODAY) == 10
    assert recency_boost(record_factory(ProviderKind.PUBMED, "1", published="2020-01-01"), TODAY) == 5
    assert recency_boost(record_factory(ProviderKind.PUBMED, "1", published="2010-01-01"), TODAY) == 0
    assert recency_boost(record_factory(ProviderKind.PUBMED, "1", published=""), TODAY) == 0


class TestRankSources:
    def test_scores_and_orders(self, record_factory):
        sources = [
            record_factory(ProviderKind.EXA, "w", title="Diet tips", published="2015-01-01"),
            record_factory(ProviderKind.PUBMED, "1", title="Metformin and kidney function", published="2025-01-01"),
            record_factory(ProviderKind.MEDRXIV, "m", title="Metformin cohort", published="2024-01-01"),
        ]
        result = rank_sources("metformin kidney", sources, today=TODAY)

        assert [r.source_type for r in result.ranked] == [
            ProviderKind.PUBMED,
            ProviderKind.MEDRXIV,
            ProviderKind.EXA,
        ]
        top = result.ranked[0]
        assert top.relevance_score == 100
        assert top.reasoning == "Keywords: 70, Credibility: 15, Recency: 15"
        assert result.ranked[1].relevance_score == 35 + 8 + 15
        assert result.ranked[2].relevance_score == 5
        assert result.total_sources == 3
        assert result.top_score == 100
        assert result.average_score == 54

    def test_scores_are_bounded(self, record_factory):
        sources = [record_factory(kind, str(i)) for i, kind in enumerate(ProviderKind)]
        result = rank_sources("study", sources, today=TODAY)
        assert all(0 <= r.relevance_score <= 100 for r in result.ranked)

    def test_ties_keep_input_order(self, record_factory):
        sources = [record_factory(ProviderKind.PUBMED, str(i), title="same") for i in range(5)]
        result = rank_sources("unrelated", sources, today=TODAY)
        assert [r.source.pmid for r in result.ranked] == ["0", "1", "2", "3", "4"]

    def test_top_n(self, record_factory):
        sources = [record_factory(ProviderKind.PUBMED, str(i)) for i in range(40)]
        result = rank_sources("q", sources, top_n=30, today=TODAY)
        assert len(result.top_sources) == 30
        assert len(result.ranked) == 40

    def test_empty(self):
        result = rank_sources("anything", [], today=TODAY)
        assert result.ranked == []
        assert result.average_score == 0
        assert result.top_score == 0
