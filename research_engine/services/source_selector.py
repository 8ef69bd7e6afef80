"""Budget-constrained selection of ranked sources for synthesis.

Selection steps, in order:
  1. Drop sources below the minimum relevance score
  2. Pick the base limit, extended when enough high-quality sources exist
  3. Remove lexical near-duplicates (Jaccard similarity over words)
  4. Walk the list against the token budget and stop at the first overflow
"""
from __future__ import annotations

import math
from dataclasses import dataclass

from loguru import logger

from research_engine.models.research import (
    QualityMetrics,
    RankedSource,
    SelectedSource,
    SelectionResult,
)
from research_engine.models.sources import ProviderKind, SourceRecord
from research_engine.tools.exa_search import is_trusted_domain
from research_engine.tools.web_utils import extract_domain

HIGH_QUALITY_METRIC_SCORE = 80


@dataclass(slots=True, frozen=True)
class SelectionConfig:
    base_limit: int = 25
    extended_limit: int = 30
    high_quality_threshold: int = 70
    token_budget: int = 16800
    min_relevance_score: int = 40
    similarity_threshold: float = 0.85
    enable_dedup: bool = True


def _comparison_words(ranked: RankedSource) -> set[str]:
    text = f"{ranked.source.title} {ranked.source.abstract}".lower()
    return {word for word in text.split() if len(word) > 3}


def jaccard_similarity(words_a: set[str], words_b: set[str]) -> float:
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def remove_near_duplicates(
    candidates: list[RankedSource], threshold: float
) -> tuple[list[RankedSource], int]:
    """Keep the first (higher-ranked) of any pair more similar than ``threshold``."""
    unique: list[RankedSource] = []
    unique_words: list[set[str]] = []
    duplicates = 0
    for candidate in candidates:
        words = _comparison_words(candidate)
        if any(jaccard_similarity(words, existing) > threshold for existing in unique_words):
            duplicates += 1
            continue
        unique.append(candidate)
        unique_words.append(words)
    return unique, duplicates


def _year(record: SourceRecord) -> str:
    return str(record.year) if record.year is not None else ""


def credibility_badge(record: SourceRecord) -> str:
    if record.kind in (ProviderKind.PUBMED, ProviderKind.CLINICAL_TRIALS):
        return "highly_credible"
    if record.kind == ProviderKind.MEDRXIV:
        return "credible"
    domain = record.venue or extract_domain(record.url)
    return "credible" if is_trusted_domain(domain) else "unverified"


def build_citation(record: SourceRecord) -> str:
    year = _year(record)
    first_author = record.authors[0] if record.authors else "Unknown"
    if record.kind == ProviderKind.PUBMED:
        journal = record.venue or "PubMed"
        return f"{first_author} et al. ({year}). {record.title}. {journal}."
    if record.kind == ProviderKind.MEDRXIV:
        return f"{first_author} et al. ({year}). {record.title}. medRxiv preprint."
    if record.kind == ProviderKind.CLINICAL_TRIALS:
        return f"{record.title}. ClinicalTrials.gov ID: {record.nct_id}. Started: {year}."
    domain = record.venue or extract_domain(record.url) or "Web"
    citation = f"{record.title}. {domain}."
    if year:
        citation += f" Published: {year}."
    return citation


def to_selected_source(ranked: RankedSource) -> SelectedSource:
    citation = build_citation(ranked.source)
    summary = ranked.source.abstract or ""
    return SelectedSource(
        source=ranked.source,
        relevance_score=ranked.relevance_score,
        source_type=ranked.source_type,
        citation=citation,
        summary=summary,
        credibility_badge=credibility_badge(ranked.source),
        estimated_tokens=math.ceil((len(citation) + len(summary)) / 4),
    )


def describe_strategy(
    total_sources: int,
    selected_count: int,
    deduplicated_count: int,
    selection_limit: int,
    base_limit: int,
) -> str:
    if selected_count == total_sources:
        return "Included all sources (below limit)"
    if selection_limit > base_limit:
        return f"Extended selection to {selection_limit} sources (high-quality threshold met)"
    if deduplicated_count > 0:
        return f"Top-P selection with deduplication ({deduplicated_count} near-duplicates removed)"
    return f"Top-P selection (top {selected_count} most relevant sources)"


def select_sources(
    ranked_sources: list[RankedSource],
    config: SelectionConfig | None = None,
) -> SelectionResult:
    """Pick the final source set from a best-first ranked list.

    Pure: the same input and config always give the same selection.
    """
    config = config or SelectionConfig()

    qualified = [s for s in ranked_sources if s.relevance_score >= config.min_relevance_score]
    if len(qualified) < len(ranked_sources):
        logger.debug(
            f"Filtered {len(ranked_sources) - len(qualified)} sources below "
            f"relevance {config.min_relevance_score}"
        )

    selection_limit = config.base_limit
    high_quality = [s for s in qualified if s.relevance_score >= config.high_quality_threshold]
    if len(high_quality) > config.base_limit:
        selection_limit = min(config.extended_limit, len(high_quality))

    candidates = qualified[:selection_limit]
    deduplicated_count = 0
    if config.enable_dedup and len(candidates) > 1:
        candidates, deduplicated_count = remove_near_duplicates(candidates, config.similarity_threshold)

    selected: list[SelectedSource] = []
    total_tokens = 0
    for candidate in candidates:
        item = to_selected_source(candidate)
        if total_tokens + item.estimated_tokens > config.token_budget:
            logger.info(
                f"Token budget {config.token_budget} reached, stopping at {len(selected)} sources"
            )
            break
        selected.append(item)
        total_tokens += item.estimated_tokens

    scores = [item.relevance_score for item in selected]
    metrics = QualityMetrics()
    if scores:
        metrics = QualityMetrics(
            average_score=round(sum(scores) / len(scores), 1),
            min_score=min(scores),
            max_score=max(scores),
            high_quality_count=sum(1 for score in scores if score > HIGH_QUALITY_METRIC_SCORE),
        )

    result = SelectionResult(
        selected=selected,
        total_candidates=len(ranked_sources),
        deduplicated_count=deduplicated_count,
        total_tokens=total_tokens,
        quality_metrics=metrics,
        selection_strategy=describe_strategy(
            len(ranked_sources), len(selected), deduplicated_count, selection_limit, config.base_limit
        ),
    )
    logger.info(
        f"Selected {result.selected_count}/{len(ranked_sources)} sources, "
        f"{total_tokens}/{config.token_budget} tokens, avg relevance {metrics.average_score}"
    )
    return result


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def format_selected_sources_for_synthesis(selected: list[SelectedSource]) -> str:
    """Render the selection as a markdown context block, numbered in selection order."""
    lines = [f"# SELECTED RESEARCH SOURCES ({len(selected)} sources)", ""]
    for index, item in enumerate(selected, 1):
        limit = 400 if item.source_type == ProviderKind.EXA else 500
        lines.append(f"### [{index}] {item.citation}")
        lines.append(
            f"**Type:** {item.source_type.value} | **Relevance:** {item.relevance_score}/100 "
            f"| **Credibility:** {item.credibility_badge}"
        )
        if item.source.url:
            lines.append(f"**URL:** {item.source.url}")
        lines.append("")
        if item.summary:
            lines.append(_truncate(item.summary, limit))
            lines.append("")
    return "\n".join(lines)
