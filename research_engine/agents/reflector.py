from __future__ import annotations

import json

from loguru import logger

from research_engine.config import settings
from research_engine.llm_client import TextCompletionService
from research_engine.models.research import EvidenceQuality, ResearchReflection, RoundResult
from research_engine.models.sources import ProviderKind, SourceRecord
from research_engine.services.llm_output import extract_json_object, normalize_text_list
from research_engine.services.prompt_store import render_prompt_pair
from research_engine.tools.web_utils import extract_domain

SOURCE_SAMPLE_SIZE = 15
FALLBACK_SOURCE_THRESHOLD = 15
MAX_GAPS = 8


def summarize_rounds(rounds: list[RoundResult]) -> str:
    return "\n".join(
        f"Round {r.round_number}: {r.source_count} sources "
        f"(PubMed: {r.count_for(ProviderKind.PUBMED)}, "
        f"medRxiv: {r.count_for(ProviderKind.MEDRXIV)}, "
        f"Trials: {r.count_for(ProviderKind.CLINICAL_TRIALS)}, "
        f"Web: {r.count_for(ProviderKind.EXA)})"
        for r in rounds
    )


def describe_source(record: SourceRecord) -> str:
    if record.kind == ProviderKind.PUBMED:
        return f'PubMed: "{record.title}" (PMID: {record.pmid or "unknown"})'
    if record.kind == ProviderKind.MEDRXIV:
        return f'medRxiv: "{record.title}" ({record.doi or "preprint"})'
    if record.kind == ProviderKind.CLINICAL_TRIALS:
        return f'Trial: "{record.title}" ({record.status or "unknown status"})'
    return f'Web: "{record.title}" ({record.venue or extract_domain(record.url)})'


def sample_sources(rounds: list[RoundResult], limit: int = SOURCE_SAMPLE_SIZE) -> list[str]:
    lines: list[str] = []
    for r in rounds:
        for record in r.all_sources():
            lines.append(describe_source(record))
            if len(lines) >= limit:
                return lines
    return lines


class Reflector:
    """Ask the model to grade the evidence so far and name what is missing.

    The model's continue/stop recommendation is advisory; the last allowed
    round and an empty round always force a stop.
    """

    name = "reflector"

    def __init__(self, completion: TextCompletionService, *, domain: str | None = None):
        self.completion = completion
        self.domain = domain or settings.research_domain

    @staticmethod
    def fallback(round_number: int, max_rounds: int, total_sources: int) -> ResearchReflection:
        return ResearchReflection(
            evidence_quality=EvidenceQuality.MEDIUM,
            gaps_identified=[],
            should_continue=round_number < max_rounds and total_sources < FALLBACK_SOURCE_THRESHOLD,
            reasoning=(
                "Reflection unavailable; continuing only while under max rounds "
                f"and below {FALLBACK_SOURCE_THRESHOLD} sources"
            ),
        )

    @staticmethod
    def _parse(raw_text: str) -> ResearchReflection | None:
        try:
            payload = extract_json_object(raw_text)
        except json.JSONDecodeError:
            return None

        raw_quality = payload.get("evidence_quality", payload.get("evidenceQuality"))
        try:
            quality = EvidenceQuality(str(raw_quality).strip().lower())
        except ValueError:
            quality = EvidenceQuality.MEDIUM

        should_continue = payload.get("should_continue", payload.get("shouldContinue"))
        if not isinstance(should_continue, bool):
            should_continue = str(should_continue).strip().lower() == "true"

        return ResearchReflection(
            evidence_quality=quality,
            gaps_identified=normalize_text_list(
                payload.get("gaps_identified", payload.get("gapsIdentified")),
                max_items=MAX_GAPS,
                min_len=3,
            ),
            should_continue=should_continue,
            reasoning=str(payload.get("reasoning") or ""),
        )

    async def reflect(
        self,
        query: str,
        round_number: int,
        current_round: RoundResult,
        previous_rounds: list[RoundResult],
        max_rounds: int,
    ) -> ResearchReflection:
        all_rounds = [*previous_rounds, current_round]
        total_sources = sum(r.source_count for r in all_rounds)
        sample = sample_sources(all_rounds)

        reflection: ResearchReflection | None = None
        try:
            raw_text = await self.completion.generate(
                *render_prompt_pair(
                    self.name,
                    domain=self.domain,
                    query=query,
                    round_number=round_number,
                    max_rounds=max_rounds,
                    rounds_summary=summarize_rounds(all_rounds),
                    sample_size=len(sample),
                    source_sample="\n".join(sample) or "(none)",
                    total_sources=total_sources,
                ),
                temperature=0.2,
                max_output_tokens=4096,
                caller=self.name,
            )
            reflection = self._parse(raw_text)
            if reflection is None:
                logger.warning(f"Unparseable reflection output: {raw_text[:200]!r}")
        except Exception as exc:
            logger.warning(f"Reflection call failed: {exc}")

        if reflection is None:
            reflection = self.fallback(round_number, max_rounds, total_sources)

        if round_number >= max_rounds:
            reflection.should_continue = False
            reflection.reasoning += f" (max rounds {max_rounds} reached)"
        if current_round.source_count == 0:
            reflection.should_continue = False
            reflection.reasoning += " (no new sources this round)"

        logger.info(
            f"Round {round_number} reflection: quality={reflection.evidence_quality.value}, "
            f"gaps={len(reflection.gaps_identified)}, continue={reflection.should_continue}"
        )
        return reflection
