from __future__ import annotations

from loguru import logger

from research_engine.config import SessionConfig
from research_engine.models.research import FetchPlan, SourceCounts


def rescale_counts(counts: SourceCounts, target: int) -> SourceCounts:
    """Proportionally rescale counts so they sum to ``target``.

    The rounding remainder goes to the largest count; an all-zero input
    puts the whole target on the literature index.
    """
    target = max(target, 0)
    values = [max(counts.pubmed, 0), max(counts.medrxiv, 0), max(counts.clinical_trials, 0)]
    current = sum(values)
    if current == 0:
        return SourceCounts(pubmed=target, medrxiv=0, clinical_trials=0)

    scaled = [int(v * target / current + 0.5) for v in values]
    largest = max(range(3), key=lambda i: values[i])
    scaled[largest] = max(0, scaled[largest] + (target - sum(scaled)))
    return SourceCounts(pubmed=scaled[0], medrxiv=scaled[1], clinical_trials=scaled[2])


def build_fetch_plan(config: SessionConfig, counts: SourceCounts) -> FetchPlan:
    """Single construction path for per-provider fetch counts.

    Non-web counts that do not match the tier total are a configuration
    inconsistency: logged as an error and auto-corrected, never fatal.
    """
    expected = config.non_web_total
    if counts.total != expected:
        logger.error(
            f"Provider counts {counts.total} do not match tier {config.tier.value} "
            f"total {expected}; rescaling proportionally"
        )
        counts = rescale_counts(counts, expected)

    return FetchPlan(
        pubmed=counts.pubmed,
        medrxiv=counts.medrxiv,
        clinical_trials=counts.clinical_trials,
        exa=config.web_total,
    )
