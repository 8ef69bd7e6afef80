"""Tests for query categorization and source budget allocation."""
import random
from unittest.mock import AsyncMock

import pytest

from research_engine.agents.query_analyzer import (
    QueryAnalyzer,
    calculate_source_counts,
    fallback_analysis,
)
from research_engine.models.research import QueryAnalysis, QueryCategory
from research_engine.services.llm_output import coerce_float


def _analysis(pubmed: float, medrxiv: float, trials: float) -> QueryAnalysis:
    return QueryAnalysis(
        category=QueryCategory.GENERAL,
        pubmed_ratio=pubmed,
        medrxiv_ratio=medrxiv,
        clinical_trials_ratio=trials,
        confidence=0.9,
    )


def _completion(text: str) -> AsyncMock:
    completion = AsyncMock()
    completion.generate = AsyncMock(return_value=text)
    return completion


class TestCalculateSourceCounts:
    def test_simple_split(self):
        counts = calculate_source_counts(_analysis(0.5, 0.3, 0.2), 10)
        assert (counts.pubmed, counts.medrxiv, counts.clinical_trials) == (5, 3, 2)

    def test_rounding_half_up(self):
        counts = calculate_source_counts(_analysis(0.55, 0.2, 0.25), 15)
        assert (counts.pubmed, counts.medrxiv, counts.clinical_trials) == (8, 3, 4)

    def test_remainder_goes_to_largest_ratio(self):
        counts = calculate_source_counts(_analysis(1 / 3, 1 / 3, 1 / 3), 10)
        assert counts.total == 10
        assert counts.pubmed == 4

    def test_drug_safety_split_of_five(self):
        counts = calculate_source_counts(_analysis(0.7, 0.1, 0.2), 5)
        assert (counts.pubmed, counts.medrxiv, counts.clinical_trials) == (3, 1, 1)

    def test_zero_target(self):
        counts = calculate_source_counts(_analysis(0.7, 0.1, 0.2), 0)
        assert counts.total == 0

    def test_counts_always_sum_to_target(self):
        rng = random.Random(1234)
        for _ in range(500):
            raw = [rng.random() for _ in range(3)]
            total = sum(raw)
            ratios = [r / total for r in raw]
            target = rng.randint(0, 40)
            counts = calculate_source_counts(_analysis(*ratios), target)
            assert counts.total == target
            assert min(counts.pubmed, counts.medrxiv, counts.clinical_trials) >= 0


class TestFallbackAnalysis:
    @pytest.mark.parametrize(
        "query, category, pubmed",
        [
            ("Metformin yan etkileri nelerdir?", QueryCategory.DRUG_SAFETY, 0.7),
            ("insulin and antibiotic interaction", QueryCategory.DRUG_SAFETY, 0.7),
            ("beta cell regeneration latest research", QueryCategory.NEW_RESEARCH, 0.5),
            ("low carb diet for type 1", QueryCategory.NUTRITION, 0.8),
            ("type 1 insulin therapy guidelines", QueryCategory.TREATMENT, 0.65),
            ("A1C nedir nasıl ölçülür?", QueryCategory.GENERAL, 0.55),
        ],
    )
    def test_keyword_families(self, query, category, pubmed):
        analysis = fallback_analysis(query)
        assert analysis.category == category
        assert analysis.pubmed_ratio == pubmed
        assert analysis.used_fallback is True

    def test_general_has_lower_confidence(self):
        assert fallback_analysis("what is a1c").confidence == 0.5
        assert fallback_analysis("recipe ideas").confidence == 0.6

    def test_fallback_ratios_sum_to_one(self):
        for query in ("side effect", "latest", "diet", "therapy", "hello"):
            a = fallback_analysis(query)
            assert a.pubmed_ratio + a.medrxiv_ratio + a.clinical_trials_ratio == pytest.approx(1.0)


class TestQueryAnalyzer:
    @pytest.mark.asyncio
    async def test_parses_fenced_json(self):
        completion = _completion(
            '```json\n{"category": "treatment", "pubmed_ratio": 0.65, "medrxiv_ratio": 0.1, '
            '"clinical_trials_ratio": 0.25, "confidence": 0.9}\n```'
        )
        analysis = await QueryAnalyzer(completion).analyze("insulin guidelines", 15)

        assert analysis.category == QueryCategory.TREATMENT
        assert analysis.pubmed_ratio == pytest.approx(0.65)
        assert analysis.used_fallback is False
        kwargs = completion.generate.await_args.kwargs
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_output_tokens"] == 256
        assert "15 total sources" in completion.generate.await_args.args[1]

    @pytest.mark.asyncio
    async def test_accepts_camel_case_keys(self):
        completion = _completion(
            '{"category": "nutrition", "pubmedRatio": 0.8, "medrxivRatio": 0.15, '
            '"clinicalTrialsRatio": 0.05, "confidence": 0.8}'
        )
        analysis = await QueryAnalyzer(completion).analyze("almond flour", 5)
        assert analysis.category == QueryCategory.NUTRITION
        assert analysis.clinical_trials_ratio == pytest.approx(0.05)

    @pytest.mark.asyncio
    async def test_renormalizes_ratios(self):
        completion = _completion(
            '{"category": "general", "pubmed_ratio": 2, "medrxiv_ratio": 1, '
            '"clinical_trials_ratio": 1, "confidence": 0.7}'
        )
        analysis = await QueryAnalyzer(completion).analyze("q", 5)
        assert analysis.pubmed_ratio == pytest.approx(0.5)
        assert analysis.medrxiv_ratio == pytest.approx(0.25)
        assert analysis.pubmed_ratio + analysis.medrxiv_ratio + analysis.clinical_trials_ratio == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_small_deviation_is_left_alone(self):
        completion = _completion(
            '{"category": "general", "pubmed_ratio": 0.55, "medrxiv_ratio": 0.2, '
            '"clinical_trials_ratio": 0.255, "confidence": 0.7}'
        )
        analysis = await QueryAnalyzer(completion).analyze("q", 5)
        assert analysis.clinical_trials_ratio == pytest.approx(0.255)

    @pytest.mark.asyncio
    async def test_unknown_category_maps_to_general(self):
        completion = _completion(
            '{"category": "astrology", "pubmed_ratio": 0.5, "medrxiv_ratio": 0.25, '
            '"clinical_trials_ratio": 0.25, "confidence": 0.7}'
        )
        analysis = await QueryAnalyzer(completion).analyze("q", 5)
        assert analysis.category == QueryCategory.GENERAL
        assert analysis.used_fallback is False

    @pytest.mark.asyncio
    async def test_invalid_json_uses_keyword_fallback(self):
        completion = _completion("I think this is about drugs")
        analysis = await QueryAnalyzer(completion).analyze("metformin side effects", 15)
        assert analysis.category == QueryCategory.DRUG_SAFETY
        assert analysis.used_fallback is True

    @pytest.mark.asyncio
    async def test_negative_ratio_uses_fallback(self):
        completion = _completion(
            '{"category": "general", "pubmed_ratio": -1, "medrxiv_ratio": 1, '
            '"clinical_trials_ratio": 1, "confidence": 0.7}'
        )
        analysis = await QueryAnalyzer(completion).analyze("what is a1c", 5)
        assert analysis.used_fallback is True

    @pytest.mark.asyncio
    async def test_service_error_uses_fallback(self):
        completion = AsyncMock()
        completion.generate = AsyncMock(side_effect=RuntimeError("gateway down"))
        analysis = await QueryAnalyzer(completion).analyze("latest GLP-1 trials", 15)
        assert analysis.category == QueryCategory.NEW_RESEARCH
        assert analysis.used_fallback is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "pubmed_ratio",
        ["NaN", '"inf"', "Infinity", '"-inf"'],
    )
    async def test_non_finite_ratio_uses_fallback(self, pubmed_ratio):
        completion = _completion(
            f'{{"category": "general", "pubmed_ratio": {pubmed_ratio}, "medrxiv_ratio": 0.2, '
            '"clinical_trials_ratio": 0.2, "confidence": 0.7}'
        )
        analysis = await QueryAnalyzer(completion).analyze("what is a1c", 5)

        assert analysis.used_fallback is True
        counts = calculate_source_counts(analysis, 5)
        assert counts.total == 5

    @pytest.mark.asyncio
    async def test_overflowing_ratio_total_uses_fallback(self):
        completion = _completion(
            '{"category": "general", "pubmed_ratio": 1e308, "medrxiv_ratio": 1e308, '
            '"clinical_trials_ratio": 0.2, "confidence": 0.7}'
        )
        analysis = await QueryAnalyzer(completion).analyze("what is a1c", 5)
        assert analysis.used_fallback is True

    @pytest.mark.asyncio
    async def test_non_finite_confidence_uses_default(self):
        completion = _completion(
            '{"category": "treatment", "pubmed_ratio": 0.6, "medrxiv_ratio": 0.2, '
            '"clinical_trials_ratio": 0.2, "confidence": NaN}'
        )
        analysis = await QueryAnalyzer(completion).analyze("insulin therapy", 5)

        assert analysis.used_fallback is False
        assert analysis.confidence == 0.5


@pytest.mark.parametrize(
    "value, expected",
    [(0.25, 0.25), ("0.4 ", 0.4), (3, 3.0), (True, None), ("nan", None), ("inf", None), (float("-inf"), None)],
)
def test_coerce_float(value, expected):
    assert coerce_float(value) == expected
