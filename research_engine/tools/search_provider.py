from __future__ import annotations

from typing import Protocol

from research_engine.config import Settings, settings as default_settings
from research_engine.models.sources import ProviderKind, SourceRecord


class ProviderClient(Protocol):
    """A single evidence provider.

    ``search`` never raises for transport or payload problems; it logs and
    returns an empty list. Timeouts are enforced by the caller.
    """

    kind: ProviderKind

    async def search(self, query: str, max_results: int) -> list[SourceRecord]: ...


def build_default_providers(settings: Settings | None = None) -> dict[ProviderKind, ProviderClient]:
    """Build the provider registry from configuration."""
    from research_engine.tools.clinical_trials import ClinicalTrialsClient
    from research_engine.tools.exa_search import ExaClient
    from research_engine.tools.medrxiv_search import MedRxivClient
    from research_engine.tools.pubmed_search import PubMedClient

    cfg = settings or default_settings
    return {
        ProviderKind.PUBMED: PubMedClient(
            api_key=cfg.pubmed_api_key,
            base_url=cfg.pubmed_base_url,
            years_back=cfg.pubmed_years_back,
        ),
        ProviderKind.MEDRXIV: MedRxivClient(
            base_url=cfg.europepmc_base_url,
            since=cfg.medrxiv_since,
        ),
        ProviderKind.CLINICAL_TRIALS: ClinicalTrialsClient(
            base_url=cfg.clinical_trials_base_url,
        ),
        ProviderKind.EXA: ExaClient(
            api_key=cfg.exa_api_key,
            base_url=cfg.exa_base_url,
        ),
    }


def default_timeouts(settings: Settings | None = None) -> dict[ProviderKind, float]:
    cfg = settings or default_settings
    return {
        ProviderKind.PUBMED: cfg.pubmed_timeout_seconds,
        ProviderKind.MEDRXIV: cfg.medrxiv_timeout_seconds,
        ProviderKind.CLINICAL_TRIALS: cfg.clinical_trials_timeout_seconds,
        ProviderKind.EXA: cfg.exa_timeout_seconds,
    }
