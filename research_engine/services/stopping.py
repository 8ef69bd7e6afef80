"""Stopping rules for the multi-round research loop.

Everything here is a pure function of its arguments.
"""
from __future__ import annotations

from research_engine.models.research import (
    EvidenceQuality,
    ResearchReflection,
    RoundResult,
    StoppingDecision,
)

MIN_SOURCES_FOR_HIGH_QUALITY_STOP = 15
COMPREHENSIVE_COVERAGE_SOURCES = 40
DIMINISHING_RETURNS_THRESHOLD = 3

QUALITY_WEIGHTS = {
    EvidenceQuality.HIGH: 1.0,
    EvidenceQuality.MEDIUM: 0.6,
    EvidenceQuality.LOW: 0.3,
}


def evaluate_stopping_conditions(
    round_number: int,
    max_rounds: int,
    current_round: RoundResult,
    all_rounds: list[RoundResult],
    reflection: ResearchReflection | None,
) -> StoppingDecision:
    """Check every stopping condition and record all that fired.

    ``all_rounds`` includes ``current_round``. ``reason`` is the first
    condition that fired, or a continue message when none did. Without a
    reflection (the final round skips it) only the source-count conditions
    are checked.
    """
    total_sources = sum(r.source_count for r in all_rounds)
    high_quality = reflection is not None and reflection.evidence_quality == EvidenceQuality.HIGH
    gap_count = len(reflection.gaps_identified) if reflection is not None else 0
    triggered: list[str] = []

    if round_number >= max_rounds:
        triggered.append("max rounds reached")
    if high_quality and gap_count == 0 and total_sources >= MIN_SOURCES_FOR_HIGH_QUALITY_STOP:
        triggered.append("high quality evidence with no gaps")
    if current_round.source_count == 0:
        triggered.append("no new sources found")
    if reflection is not None and not reflection.should_continue:
        triggered.append("reflection recommends stopping")
    if total_sources >= COMPREHENSIVE_COVERAGE_SOURCES:
        triggered.append("comprehensive coverage reached")
    if high_quality and gap_count <= 1 and total_sources >= MIN_SOURCES_FOR_HIGH_QUALITY_STOP:
        triggered.append("high quality evidence with minimal gaps")
    if len(all_rounds) >= 2:
        last_two = all_rounds[-1].source_count + all_rounds[-2].source_count
        if last_two < DIMINISHING_RETURNS_THRESHOLD:
            triggered.append("diminishing returns")

    if triggered:
        return StoppingDecision(should_stop=True, reason=triggered[0], triggered_conditions=triggered)
    return StoppingDecision(
        should_stop=False,
        reason=f"continuing research ({total_sources} sources, {gap_count} gaps)",
        triggered_conditions=[],
    )


def should_do_reflection(round_number: int, max_rounds: int) -> bool:
    """The final allowed round skips reflection; it always stops afterwards."""
    return round_number < max_rounds


def calculate_completeness_score(
    rounds: list[RoundResult],
    reflection: ResearchReflection | None,
) -> float:
    """Blend coverage, evidence quality and open gaps into a 0..1 score."""
    total_sources = sum(r.source_count for r in rounds)
    coverage = min(total_sources / COMPREHENSIVE_COVERAGE_SOURCES, 1.0)
    if reflection is None:
        quality = QUALITY_WEIGHTS[EvidenceQuality.MEDIUM]
        gap_term = 1.0
    else:
        quality = QUALITY_WEIGHTS.get(reflection.evidence_quality, 0.6)
        gap_term = max(0.0, 1.0 - len(reflection.gaps_identified) / 5)
    return round(coverage * 0.5 + quality * 0.3 + gap_term * 0.2, 3)
