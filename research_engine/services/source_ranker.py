from __future__ import annotations

import re
import time
from datetime import date

from loguru import logger

from research_engine.models.research import RankedSource, RankingResult
from research_engine.models.sources import ProviderKind, SourceRecord

KEYWORD_WEIGHT = 70
NEUTRAL_KEYWORD_SCORE = 35

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "is", "are", "was", "were",
        "in", "on", "at", "to", "for", "of", "with",
        "ve", "nedir", "ne", "nasıl", "için",
    }
)

CREDIBILITY_BOOST = {
    ProviderKind.PUBMED: 15,
    ProviderKind.CLINICAL_TRIALS: 15,
    ProviderKind.MEDRXIV: 8,
    ProviderKind.EXA: 5,
}


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def extract_keywords(query: str) -> list[str]:
    cleaned = re.sub(r"[^\w\s]", " ", query.lower())
    return [word for word in cleaned.split() if len(word) > 2 and word not in STOP_WORDS]


def keyword_score(content: str, keywords: list[str]) -> int:
    if not keywords:
        return NEUTRAL_KEYWORD_SCORE
    matches = sum(1 for keyword in keywords if keyword in content)
    return _round_half_up(matches / len(keywords) * KEYWORD_WEIGHT)


def recency_boost(record: SourceRecord, today: date) -> int:
    year = record.year
    if year is None:
        return 0
    years_diff = today.year - year
    if years_diff <= 1:
        return 15
    if years_diff <= 3:
        return 10
    if years_diff <= 5:
        return 5
    return 0


def score_source(record: SourceRecord, keywords: list[str], today: date) -> RankedSource:
    content = f"{record.title} {record.abstract}".lower()
    kw = keyword_score(content, keywords)
    credibility = CREDIBILITY_BOOST.get(record.kind, 0)
    recency = recency_boost(record, today)
    return RankedSource(
        source=record,
        relevance_score=min(100, kw + credibility + recency),
        source_type=record.kind,
        reasoning=f"Keywords: {kw}, Credibility: {credibility}, Recency: {recency}",
    )


def rank_sources(
    query: str,
    sources: list[SourceRecord],
    *,
    top_n: int = 30,
    today: date | None = None,
) -> RankingResult:
    """Score every source against the original question, best first.

    The sort is stable, so equal scores keep their incoming order.
    """
    start = time.monotonic()
    today = today or date.today()
    keywords = extract_keywords(query)

    ranked = sorted(
        (score_source(record, keywords, today) for record in sources),
        key=lambda item: item.relevance_score,
        reverse=True,
    )
    average = sum(item.relevance_score for item in ranked) / len(ranked) if ranked else 0.0
    result = RankingResult(
        ranked=ranked,
        top_sources=ranked[: max(top_n, 0)],
        total_sources=len(ranked),
        average_score=_round_half_up(average),
        top_score=ranked[0].relevance_score if ranked else 0,
        duration_ms=int((time.monotonic() - start) * 1000),
    )
    logger.info(
        f"Ranked {result.total_sources} sources: top scores "
        f"{[item.relevance_score for item in result.top_sources[:5]]}, average {result.average_score}"
    )
    return result
