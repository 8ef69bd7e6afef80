from __future__ import annotations

import json
import math
import re

from loguru import logger

from research_engine.config import settings
from research_engine.llm_client import TextCompletionService
from research_engine.models.research import QueryAnalysis, QueryCategory, SourceCounts
from research_engine.services.llm_output import coerce_float, extract_json_object
from research_engine.services.prompt_store import render_prompt_pair

RATIO_TOLERANCE = 0.01

# Checked in order; the first family that matches wins.
FALLBACK_PATTERNS: tuple[tuple[QueryCategory, re.Pattern[str]], ...] = (
    (
        QueryCategory.DRUG_SAFETY,
        re.compile(r"yan etki|etkileş|güvenli mi|side effect|interaction|contraindic|doz", re.IGNORECASE),
    ),
    (
        QueryCategory.NEW_RESEARCH,
        re.compile(r"latest|yeni|güncel|202[4-6]|breakthrough|recent|clinical trial", re.IGNORECASE),
    ),
    (
        QueryCategory.NUTRITION,
        re.compile(r"beslenme|nutrition|diet|food|yemek|tarif|recipe|carb|protein", re.IGNORECASE),
    ),
    (
        QueryCategory.TREATMENT,
        re.compile(r"tedavi|treatment|therapy|guideline|protocol|hedef|target", re.IGNORECASE),
    ),
)

# (pubmed, medrxiv, clinical trials, confidence)
FALLBACK_PRESETS: dict[QueryCategory, tuple[float, float, float, float]] = {
    QueryCategory.DRUG_SAFETY: (0.7, 0.1, 0.2, 0.6),
    QueryCategory.NEW_RESEARCH: (0.5, 0.3, 0.2, 0.6),
    QueryCategory.NUTRITION: (0.8, 0.15, 0.05, 0.6),
    QueryCategory.TREATMENT: (0.65, 0.1, 0.25, 0.6),
    QueryCategory.GENERAL: (0.55, 0.2, 0.25, 0.5),
}


def fallback_analysis(query: str) -> QueryAnalysis:
    """Keyword classifier used whenever the model output is unusable."""
    category = QueryCategory.GENERAL
    for candidate, pattern in FALLBACK_PATTERNS:
        if pattern.search(query):
            category = candidate
            break
    pubmed, medrxiv, trials, confidence = FALLBACK_PRESETS[category]
    return QueryAnalysis(
        category=category,
        pubmed_ratio=pubmed,
        medrxiv_ratio=medrxiv,
        clinical_trials_ratio=trials,
        confidence=confidence,
        used_fallback=True,
    )


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def calculate_source_counts(analysis: QueryAnalysis, target_count: int) -> SourceCounts:
    """Convert ratios into integer counts that sum to ``target_count`` exactly.

    The rounding remainder is applied to the provider with the largest ratio,
    clamped at zero.
    """
    target_count = max(target_count, 0)
    ratios = [analysis.pubmed_ratio, analysis.medrxiv_ratio, analysis.clinical_trials_ratio]
    counts = [max(0, _round_half_up(ratio * target_count)) for ratio in ratios]
    remainder = target_count - sum(counts)
    if remainder:
        largest = max(range(3), key=lambda i: ratios[i])
        counts[largest] = max(0, counts[largest] + remainder)
    return SourceCounts(pubmed=counts[0], medrxiv=counts[1], clinical_trials=counts[2])


class QueryAnalyzer:
    """Classify a question and decide how to split the non-web source budget."""

    name = "query_analyzer"

    def __init__(self, completion: TextCompletionService, *, domain: str | None = None):
        self.completion = completion
        self.domain = domain or settings.research_domain

    def _parse(self, raw_text: str) -> QueryAnalysis | None:
        try:
            payload = extract_json_object(raw_text)
        except json.JSONDecodeError:
            return None

        ratios = [
            coerce_float(payload.get("pubmed_ratio", payload.get("pubmedRatio"))),
            coerce_float(payload.get("medrxiv_ratio", payload.get("medrxivRatio"))),
            coerce_float(
                payload.get("clinical_trials_ratio", payload.get("clinicalTrialsRatio"))
            ),
        ]
        if any(r is None or r < 0 for r in ratios):
            return None
        total = sum(ratios)
        if not math.isfinite(total) or total <= 0:
            return None
        if abs(total - 1.0) > RATIO_TOLERANCE:
            logger.warning(f"Analyzer ratios sum to {total:.3f}, renormalizing")
            ratios = [r / total for r in ratios]

        try:
            category = QueryCategory(str(payload.get("category", "")).strip().lower())
        except ValueError:
            category = QueryCategory.GENERAL

        confidence = coerce_float(payload.get("confidence"))
        if confidence is None:
            confidence = 0.5
        return QueryAnalysis(
            category=category,
            pubmed_ratio=ratios[0],
            medrxiv_ratio=ratios[1],
            clinical_trials_ratio=ratios[2],
            confidence=min(max(confidence, 0.0), 1.0),
        )

    async def analyze(self, query: str, target_count: int) -> QueryAnalysis:
        try:
            raw_text = await self.completion.generate(
                *render_prompt_pair(
                    self.name, domain=self.domain, query=query, target_count=target_count
                ),
                temperature=0.1,
                max_output_tokens=256,
                caller=self.name,
            )
        except Exception as exc:
            logger.warning(f"Query analysis call failed, using keyword fallback: {exc}")
            return fallback_analysis(query)

        analysis = self._parse(raw_text)
        if analysis is None:
            logger.warning(f"Unparseable analyzer output, using keyword fallback: {raw_text[:200]!r}")
            return fallback_analysis(query)

        logger.info(
            f"Query categorized as {analysis.category.value} "
            f"(pubmed={analysis.pubmed_ratio:.2f}, medrxiv={analysis.medrxiv_ratio:.2f}, "
            f"trials={analysis.clinical_trials_ratio:.2f}, confidence={analysis.confidence:.2f})"
        )
        return analysis
