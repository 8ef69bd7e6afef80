from __future__ import annotations

from enum import StrEnum

from loguru import logger
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "google/gemini-2.0-flash-001"
    openrouter_model: str = ""
    llm_timeout_seconds: float = 30.0

    # Providers
    exa_api_key: str = ""
    exa_base_url: str = "https://api.exa.ai"
    pubmed_api_key: str = ""
    pubmed_base_url: str = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
    pubmed_years_back: int = 5
    europepmc_base_url: str = "https://www.ebi.ac.uk/europepmc/webservices/rest"
    medrxiv_since: str = "2023-01-01"
    clinical_trials_base_url: str = "https://clinicaltrials.gov/api/v2"

    # Per-provider timeouts (seconds)
    pubmed_timeout_seconds: float = 15.0
    medrxiv_timeout_seconds: float = 10.0
    clinical_trials_timeout_seconds: float = 12.0
    exa_timeout_seconds: float = 10.0

    # Research session defaults
    research_domain: str = "diabetes care"
    default_tier: str = "T3"
    max_rounds_cap: int = 4
    token_budget: int = 16800
    min_relevance_score: int = 40

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_to_file: bool = False
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()


class Tier(StrEnum):
    T2 = "T2"
    T3 = "T3"


# non_web: literature + preprint + registry budget; web: semantic web budget
TIER_PRESETS: dict[Tier, dict[str, int]] = {
    Tier.T2: {"non_web": 5, "web": 5, "max_rounds": 2},
    Tier.T3: {"non_web": 15, "web": 10, "max_rounds": 4},
}


class SessionConfig(BaseModel):
    """Per-session knobs. Invalid input raises ``ValueError`` at construction."""

    tier: Tier = Tier.T3
    max_rounds: int | None = Field(default=None, ge=1)
    token_budget: int = Field(default=16800, ge=0)
    min_relevance_score: int = Field(default=40, ge=0, le=100)

    @model_validator(mode="after")
    def _apply_tier_defaults(self) -> "SessionConfig":
        if self.max_rounds is None:
            self.max_rounds = TIER_PRESETS[self.tier]["max_rounds"]
        cap = max(settings.max_rounds_cap, 1)
        if self.max_rounds > cap:
            logger.warning(f"max_rounds={self.max_rounds} exceeds cap, clamping to {cap}")
            self.max_rounds = cap
        return self

    @property
    def non_web_total(self) -> int:
        return TIER_PRESETS[self.tier]["non_web"]

    @property
    def web_total(self) -> int:
        return TIER_PRESETS[self.tier]["web"]

    @classmethod
    def from_settings(cls, **overrides) -> "SessionConfig":
        values = {
            "tier": settings.default_tier,
            "token_budget": settings.token_budget,
            "min_relevance_score": settings.min_relevance_score,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
