from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from dataclasses import dataclass, field
from typing import AsyncGenerator

from loguru import logger

from research_engine.agents.query_analyzer import QueryAnalyzer, calculate_source_counts
from research_engine.agents.query_refiner import QueryRefiner
from research_engine.agents.query_translator import QueryTranslator
from research_engine.agents.reflector import Reflector
from research_engine.config import SessionConfig
from research_engine.llm_client import TextCompletionService
from research_engine.models.events import ProgressSink, ResearchEvent
from research_engine.models.research import (
    FetchPlan,
    QueryAnalysis,
    ResearchPhase,
    ResearchReflection,
    ResearchResult,
    RoundResult,
    StoppingDecision,
)
from research_engine.models.sources import ProviderKind, SourceRecord
from research_engine.services import logger as log_service
from research_engine.services import streaming
from research_engine.services.deduplicator import SourceDeduplicator
from research_engine.services.fetch_plan import build_fetch_plan
from research_engine.services.parallel_fetcher import ParallelResearchFetcher
from research_engine.services.source_ranker import rank_sources
from research_engine.services.source_selector import SelectionConfig, select_sources
from research_engine.services.stopping import (
    calculate_completeness_score,
    evaluate_stopping_conditions,
    should_do_reflection,
)
from research_engine.tools.search_provider import ProviderClient

RANKING_TOP_N = 30


@dataclass
class ResearchSession:
    """Mutable state for one research run. Never shared between runs."""

    query: str
    config: SessionConfig
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    phase: ResearchPhase = ResearchPhase.PLANNING
    deduplicator: SourceDeduplicator = field(default_factory=SourceDeduplicator)
    analysis: QueryAnalysis | None = None
    plan: FetchPlan | None = None
    current_query: str = ""
    rounds: list[RoundResult] = field(default_factory=list)
    latest_reflection: ResearchReflection | None = None
    decision: StoppingDecision | None = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def max_rounds(self) -> int:
        return self.config.max_rounds or 1

    @property
    def total_sources(self) -> int:
        return sum(r.source_count for r in self.rounds)

    def all_sources(self) -> list[SourceRecord]:
        merged: list[SourceRecord] = []
        for r in self.rounds:
            merged.extend(r.all_sources())
        return merged


class ResearchOrchestrator:
    """Runs the multi-round evidence retrieval loop.

    Flow:
      1. PLANNING: classify the question once, split the tier budget per provider
      2. FETCHING: query all providers in parallel, dedup against the session
      3. REFLECTING: grade evidence and list gaps (skipped on the last round)
      4. DECIDING: evaluate stopping conditions
      5. REFINING: rewrite the original question toward the primary gap, loop to 2
      6. STOPPED: rank everything against the original question and select

    Progress is reported through an optional sink; ``research`` exposes the
    same events as an async generator.
    """

    def __init__(
        self,
        completion: TextCompletionService,
        providers: dict[ProviderKind, ProviderClient],
        config: SessionConfig | None = None,
        *,
        timeouts: dict[ProviderKind, float] | None = None,
        domain: str | None = None,
    ):
        self.config = config or SessionConfig.from_settings()
        self.analyzer = QueryAnalyzer(completion, domain=domain)
        self.reflector = Reflector(completion, domain=domain)
        self.refiner = QueryRefiner(completion)
        self.fetcher = ParallelResearchFetcher(
            providers,
            translator=QueryTranslator(completion),
            timeouts=timeouts,
        )

    @staticmethod
    def _set_phase(
        session: ResearchSession, phase: ResearchPhase, round_number: int | None = None
    ) -> None:
        session.phase = phase
        log_service.log_research_step(session.id, phase.value, "entered", round_number)

    async def _plan(self, session: ResearchSession, progress: ProgressSink | None) -> None:
        streaming.emit(progress, streaming.planning_started(session.query, tier=session.config.tier.value))
        session.analysis = await self.analyzer.analyze(session.query, session.config.non_web_total)
        counts = calculate_source_counts(session.analysis, session.config.non_web_total)
        session.plan = build_fetch_plan(session.config, counts)
        session.current_query = session.query
        streaming.emit(
            progress,
            streaming.planning_complete(
                session.analysis.category.value,
                session.plan.to_dict(),
                session.max_rounds,
                confidence=session.analysis.confidence,
                used_fallback=session.analysis.used_fallback,
            ),
        )

    async def _run_round(
        self,
        session: ResearchSession,
        round_number: int,
        progress: ProgressSink | None,
    ) -> RoundResult:
        self._set_phase(session, ResearchPhase.FETCHING, round_number)
        streaming.emit(
            progress,
            streaming.round_started(round_number, session.current_query, session.max_rounds),
        )
        round_result = await self.fetcher.fetch(
            session.current_query,
            session.plan,
            session.deduplicator,
            round_number=round_number,
            progress=progress,
        )
        session.rounds.append(round_result)
        streaming.emit(
            progress,
            streaming.round_complete(
                round_number,
                round_result.source_count,
                duration_ms=round_result.duration_ms,
                errors={kind.value: msg for kind, msg in round_result.errors.items()},
            ),
        )
        return round_result

    async def _decide(
        self,
        session: ResearchSession,
        round_number: int,
        round_result: RoundResult,
        progress: ProgressSink | None,
    ) -> StoppingDecision:
        if not should_do_reflection(round_number, session.max_rounds):
            self._set_phase(session, ResearchPhase.DECIDING, round_number)
            return evaluate_stopping_conditions(
                round_number, session.max_rounds, round_result, session.rounds, None
            )

        self._set_phase(session, ResearchPhase.REFLECTING, round_number)
        streaming.emit(progress, streaming.reflection_started(round_number))
        reflection = await self.reflector.reflect(
            session.query,
            round_number,
            round_result,
            session.rounds[:-1],
            session.max_rounds,
        )
        session.latest_reflection = reflection
        streaming.emit(progress, streaming.reflection_complete(round_number, reflection.to_dict()))

        self._set_phase(session, ResearchPhase.DECIDING, round_number)
        return evaluate_stopping_conditions(
            round_number,
            session.max_rounds,
            round_result,
            session.rounds,
            reflection,
        )

    def _finish(self, session: ResearchSession, progress: ProgressSink | None) -> ResearchResult:
        self._set_phase(session, ResearchPhase.STOPPED)
        session.deduplicator.log_summary()

        candidates = session.all_sources()
        streaming.emit(progress, streaming.source_selection_started(len(candidates)))
        ranking = rank_sources(session.query, candidates, top_n=RANKING_TOP_N)
        selection = select_sources(
            ranking.ranked,
            SelectionConfig(
                token_budget=session.config.token_budget,
                min_relevance_score=session.config.min_relevance_score,
            ),
        )

        return ResearchResult(
            query=session.query,
            analysis=session.analysis,
            fetch_plan=session.plan,
            rounds=list(session.rounds),
            reflection=session.latest_reflection,
            stopping_decision=session.decision,
            ranking=ranking,
            selection=selection,
            completeness_score=calculate_completeness_score(session.rounds, session.latest_reflection),
            duplicates_filtered=session.deduplicator.duplicates_filtered,
            duration_ms=int((time.monotonic() - session.started_at) * 1000),
        )

    async def run(self, query: str, progress: ProgressSink | None = None) -> ResearchResult:
        """Run one complete research session for ``query``."""
        session = ResearchSession(query=query, config=self.config)
        logger.info(
            f"Research session {session.id} started: tier={session.config.tier.value}, "
            f"max_rounds={session.max_rounds}, query='{query[:100]}'"
        )

        self._set_phase(session, ResearchPhase.PLANNING)
        await self._plan(session, progress)

        round_number = 0
        while round_number < session.max_rounds:
            round_number += 1
            round_result = await self._run_round(session, round_number, progress)
            decision = await self._decide(session, round_number, round_result, progress)
            session.decision = decision
            streaming.emit(progress, streaming.stopping_decision(round_number, decision.to_dict()))
            if decision.should_stop:
                logger.info(f"Stopping after round {round_number}: {decision.reason}")
                break

            self._set_phase(session, ResearchPhase.REFINING, round_number)
            gaps = session.latest_reflection.gaps_identified if session.latest_reflection else []
            refined = await self.refiner.refine(session.query, gaps, round_number + 1)
            session.current_query = refined.refined
            streaming.emit(
                progress,
                streaming.query_refined(round_number + 1, refined.refined, refined.focus_area),
            )

        result = self._finish(session, progress)
        logger.info(
            f"Research session {session.id} complete: {len(result.rounds)} rounds, "
            f"{result.total_sources} sources, {result.selection.selected_count} selected, "
            f"completeness={result.completeness_score}"
        )
        streaming.emit(progress, streaming.research_complete(result.to_dict(), runtime_ms=result.duration_ms))
        return result

    async def research(self, query: str) -> AsyncGenerator[ResearchEvent, None]:
        """Stream progress events for one session, ending with ``research_complete``."""
        queue: asyncio.Queue[ResearchEvent | None] = asyncio.Queue()

        async def runner() -> None:
            try:
                await self.run(query, progress=queue.put_nowait)
            except Exception as exc:
                logger.exception(f"Research session failed: {exc}")
                queue.put_nowait(streaming.error(str(exc), stage="research"))
            finally:
                queue.put_nowait(None)

        task = asyncio.create_task(runner())
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
