from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from loguru import logger

from research_engine.models.events import ProgressSink
from research_engine.models.research import FetchPlan, RoundResult
from research_engine.models.sources import PROVIDER_ORDER, ProviderKind, SourceRecord
from research_engine.services import streaming
from research_engine.services.deduplicator import SourceDeduplicator
from research_engine.services.logger import log_provider_call
from research_engine.tools.search_provider import ProviderClient, default_timeouts

# Providers that index English-language academic content
TRANSLATED_PROVIDERS = frozenset(
    {ProviderKind.PUBMED, ProviderKind.MEDRXIV, ProviderKind.CLINICAL_TRIALS}
)


@dataclass(slots=True)
class ProviderFetchOutcome:
    kind: ProviderKind
    records: list[SourceRecord] = field(default_factory=list)
    duration_ms: int = 0
    error: str | None = None


class ParallelResearchFetcher:
    """Fan out one round of provider searches and fan the results back in.

    A provider that fails or times out contributes an empty list and an
    error string; the round itself always completes. Deduplication runs
    only after every task has settled, in fixed provider order.
    """

    def __init__(
        self,
        providers: dict[ProviderKind, ProviderClient],
        translator=None,
        timeouts: dict[ProviderKind, float] | None = None,
    ):
        self.providers = providers
        self.translator = translator
        self.timeouts = {**default_timeouts(), **(timeouts or {})}

    async def _translate(self, query: str) -> str:
        if self.translator is None:
            return query
        try:
            return await self.translator.translate(query) or query
        except Exception as exc:
            logger.warning(f"Query translation failed, using original query: {exc}")
            return query

    async def _run_provider(
        self,
        kind: ProviderKind,
        query: str,
        count: int,
    ) -> ProviderFetchOutcome:
        provider = self.providers[kind]
        timeout = self.timeouts.get(kind, 10.0)
        start = time.monotonic()
        outcome = ProviderFetchOutcome(kind=kind)
        try:
            records = await asyncio.wait_for(provider.search(query, count), timeout=timeout)
            outcome.records = list(records or [])[:count]
        except TimeoutError:
            outcome.error = f"timed out after {timeout:g}s"
        except Exception as exc:
            outcome.error = f"{type(exc).__name__}: {exc}"
        outcome.duration_ms = int((time.monotonic() - start) * 1000)

        log_provider_call(
            provider=kind.value,
            query=query,
            status="error" if outcome.error else "success",
            result_count=len(outcome.records),
            duration_ms=outcome.duration_ms,
            error=outcome.error,
        )
        return outcome

    async def fetch(
        self,
        query: str,
        plan: FetchPlan,
        deduplicator: SourceDeduplicator,
        *,
        round_number: int = 1,
        progress: ProgressSink | None = None,
    ) -> RoundResult:
        start = time.monotonic()
        errors: dict[ProviderKind, str] = {}

        active: list[ProviderKind] = []
        for kind in PROVIDER_ORDER:
            if plan.count_for(kind) <= 0:
                continue
            if kind not in self.providers:
                errors[kind] = "provider not configured"
                continue
            active.append(kind)

        requested = sum(plan.count_for(kind) for kind in active)
        translated = query
        if any(kind in TRANSLATED_PROVIDERS for kind in active):
            translated = await self._translate(query)
            if translated != query:
                logger.info(f"Round {round_number}: translated query for academic providers: '{translated[:100]}'")

        for kind in active:
            streaming.emit(
                progress,
                streaming.provider_started(kind.value, plan.count_for(kind), round_number=round_number),
            )

        fetched = 0

        async def run(kind: ProviderKind) -> ProviderFetchOutcome:
            nonlocal fetched
            provider_query = translated if kind in TRANSLATED_PROVIDERS else query
            outcome = await self._run_provider(kind, provider_query, plan.count_for(kind))
            fetched += len(outcome.records)
            streaming.emit(
                progress,
                streaming.provider_completed(
                    kind.value,
                    len(outcome.records),
                    outcome.duration_ms,
                    outcome.error is None,
                    error=outcome.error,
                ),
            )
            streaming.emit(progress, streaming.fetch_progress(fetched, requested))
            return outcome

        outcomes = await asyncio.gather(*(run(kind) for kind in active))
        by_kind = {outcome.kind: outcome for outcome in outcomes}

        filters = {
            ProviderKind.PUBMED: deduplicator.filter_pubmed,
            ProviderKind.MEDRXIV: deduplicator.filter_medrxiv,
            ProviderKind.CLINICAL_TRIALS: deduplicator.filter_clinical_trials,
            ProviderKind.EXA: deduplicator.filter_exa,
        }
        sources_by_provider: dict[ProviderKind, list[SourceRecord]] = {}
        timings: dict[ProviderKind, int] = {}
        raw_count = 0
        for kind in PROVIDER_ORDER:
            outcome = by_kind.get(kind)
            if outcome is None:
                sources_by_provider[kind] = []
                continue
            raw_count += len(outcome.records)
            timings[kind] = outcome.duration_ms
            if outcome.error:
                errors[kind] = outcome.error
            sources_by_provider[kind] = filters[kind](outcome.records)

        if errors:
            failed = ", ".join(f"{kind.value} ({msg})" for kind, msg in errors.items())
            logger.warning(f"Round {round_number}: continuing without {failed}")
        if requested and raw_count < requested * 0.5:
            logger.warning(
                f"Round {round_number}: retrieved {raw_count}/{requested} requested sources (below 50%)"
            )

        result = RoundResult(
            round_number=round_number,
            query=query,
            sources_by_provider=sources_by_provider,
            timings_ms=timings,
            errors=errors,
            duration_ms=int((time.monotonic() - start) * 1000),
            requested=requested,
            raw_count=raw_count,
        )
        logger.info(
            f"Round {round_number}: {result.source_count} new sources "
            f"({raw_count} raw) in {result.duration_ms}ms"
        )
        return result
