from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from research_engine.models.sources import PROVIDER_ORDER, ProviderKind, SourceRecord


class QueryCategory(StrEnum):
    DRUG_SAFETY = "drug_safety"
    NEW_RESEARCH = "new_research"
    TREATMENT = "treatment"
    NUTRITION = "nutrition"
    GENERAL = "general"


class EvidenceQuality(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ResearchPhase(StrEnum):
    PLANNING = "planning"
    FETCHING = "fetching"
    REFLECTING = "reflecting"
    DECIDING = "deciding"
    REFINING = "refining"
    STOPPED = "stopped"


@dataclass(slots=True)
class QueryAnalysis:
    category: QueryCategory
    pubmed_ratio: float
    medrxiv_ratio: float
    clinical_trials_ratio: float
    confidence: float
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "pubmed_ratio": self.pubmed_ratio,
            "medrxiv_ratio": self.medrxiv_ratio,
            "clinical_trials_ratio": self.clinical_trials_ratio,
            "confidence": self.confidence,
            "used_fallback": self.used_fallback,
        }


@dataclass(slots=True)
class SourceCounts:
    pubmed: int
    medrxiv: int
    clinical_trials: int

    @property
    def total(self) -> int:
        return self.pubmed + self.medrxiv + self.clinical_trials


@dataclass(slots=True, frozen=True)
class FetchPlan:
    """Requested result counts per provider for one round."""

    pubmed: int = 0
    medrxiv: int = 0
    clinical_trials: int = 0
    exa: int = 0

    def count_for(self, kind: ProviderKind) -> int:
        return {
            ProviderKind.PUBMED: self.pubmed,
            ProviderKind.MEDRXIV: self.medrxiv,
            ProviderKind.CLINICAL_TRIALS: self.clinical_trials,
            ProviderKind.EXA: self.exa,
        }[kind]

    @property
    def total(self) -> int:
        return self.pubmed + self.medrxiv + self.clinical_trials + self.exa

    def to_dict(self) -> dict[str, int]:
        return {kind.value: self.count_for(kind) for kind in PROVIDER_ORDER}


@dataclass(slots=True, frozen=True)
class RoundResult:
    """Post-dedup output of one fetch round. Immutable once built."""

    round_number: int
    query: str
    sources_by_provider: dict[ProviderKind, list[SourceRecord]] = field(default_factory=dict)
    timings_ms: dict[ProviderKind, int] = field(default_factory=dict)
    errors: dict[ProviderKind, str] = field(default_factory=dict)
    duration_ms: int = 0
    requested: int = 0
    raw_count: int = 0

    @property
    def source_count(self) -> int:
        return sum(len(items) for items in self.sources_by_provider.values())

    def count_for(self, kind: ProviderKind) -> int:
        return len(self.sources_by_provider.get(kind, []))

    def all_sources(self) -> list[SourceRecord]:
        merged: list[SourceRecord] = []
        for kind in PROVIDER_ORDER:
            merged.extend(self.sources_by_provider.get(kind, []))
        return merged

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "query": self.query,
            "source_count": self.source_count,
            "counts": {kind.value: self.count_for(kind) for kind in PROVIDER_ORDER},
            "timings_ms": {kind.value: ms for kind, ms in self.timings_ms.items()},
            "errors": {kind.value: msg for kind, msg in self.errors.items()},
            "duration_ms": self.duration_ms,
            "requested": self.requested,
        }


@dataclass(slots=True)
class ResearchReflection:
    evidence_quality: EvidenceQuality
    gaps_identified: list[str] = field(default_factory=list)
    should_continue: bool = False
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "evidence_quality": self.evidence_quality.value,
            "gaps_identified": list(self.gaps_identified),
            "should_continue": self.should_continue,
            "reasoning": self.reasoning,
        }


@dataclass(slots=True)
class StoppingDecision:
    should_stop: bool
    reason: str
    triggered_conditions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "should_stop": self.should_stop,
            "reason": self.reason,
            "triggered_conditions": list(self.triggered_conditions),
        }


@dataclass(slots=True)
class RefinedQuery:
    original: str
    refined: str
    focus_area: str
    reasoning: str = ""


@dataclass(slots=True)
class RankedSource:
    source: SourceRecord
    relevance_score: int
    source_type: ProviderKind
    reasoning: str = ""


@dataclass(slots=True)
class RankingResult:
    ranked: list[RankedSource] = field(default_factory=list)
    top_sources: list[RankedSource] = field(default_factory=list)
    total_sources: int = 0
    average_score: int = 0
    top_score: int = 0
    duration_ms: int = 0


@dataclass(slots=True)
class SelectedSource:
    source: SourceRecord
    relevance_score: int
    source_type: ProviderKind
    citation: str
    summary: str
    credibility_badge: str
    estimated_tokens: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_type": self.source_type.value,
            "relevance_score": self.relevance_score,
            "citation": self.citation,
            "summary": self.summary,
            "credibility_badge": self.credibility_badge,
            "estimated_tokens": self.estimated_tokens,
            "url": self.source.url,
            "title": self.source.title,
        }


@dataclass(slots=True)
class QualityMetrics:
    average_score: float = 0.0
    min_score: int = 0
    max_score: int = 0
    high_quality_count: int = 0


@dataclass(slots=True)
class SelectionResult:
    selected: list[SelectedSource] = field(default_factory=list)
    total_candidates: int = 0
    deduplicated_count: int = 0
    total_tokens: int = 0
    quality_metrics: QualityMetrics = field(default_factory=QualityMetrics)
    selection_strategy: str = ""

    @property
    def selected_count(self) -> int:
        return len(self.selected)

    def to_dict(self) -> dict[str, Any]:
        return {
            "selected": [item.to_dict() for item in self.selected],
            "selected_count": self.selected_count,
            "total_candidates": self.total_candidates,
            "deduplicated_count": self.deduplicated_count,
            "total_tokens": self.total_tokens,
            "quality_metrics": {
                "average_score": self.quality_metrics.average_score,
                "min_score": self.quality_metrics.min_score,
                "max_score": self.quality_metrics.max_score,
                "high_quality_count": self.quality_metrics.high_quality_count,
            },
            "selection_strategy": self.selection_strategy,
        }


@dataclass(slots=True)
class ResearchResult:
    query: str
    analysis: QueryAnalysis
    fetch_plan: FetchPlan
    rounds: list[RoundResult] = field(default_factory=list)
    reflection: ResearchReflection | None = None
    stopping_decision: StoppingDecision | None = None
    ranking: RankingResult = field(default_factory=RankingResult)
    selection: SelectionResult = field(default_factory=SelectionResult)
    completeness_score: float = 0.0
    duplicates_filtered: int = 0
    duration_ms: int = 0

    @property
    def total_sources(self) -> int:
        return sum(r.source_count for r in self.rounds)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "analysis": self.analysis.to_dict(),
            "fetch_plan": self.fetch_plan.to_dict(),
            "rounds": [r.to_dict() for r in self.rounds],
            "total_sources": self.total_sources,
            "reflection": self.reflection.to_dict() if self.reflection else None,
            "stopping_decision": (
                self.stopping_decision.to_dict() if self.stopping_decision else None
            ),
            "ranking": {
                "total_sources": self.ranking.total_sources,
                "average_score": self.ranking.average_score,
                "top_score": self.ranking.top_score,
                "duration_ms": self.ranking.duration_ms,
            },
            "selection": self.selection.to_dict(),
            "completeness_score": self.completeness_score,
            "duplicates_filtered": self.duplicates_filtered,
            "duration_ms": self.duration_ms,
        }
