from __future__ import annotations

import pytest

from research_engine.config import SessionConfig, Tier
from research_engine.models.research import SourceCounts
from research_engine.services.fetch_plan import build_fetch_plan, rescale_counts


class TestSessionConfig:
    def test_tier_presets_drive_max_rounds(self):
        assert SessionConfig(tier=Tier.T2).max_rounds == 2
        assert SessionConfig(tier=Tier.T3).max_rounds == 4

    def test_tier_budgets(self):
        t2 = SessionConfig(tier="T2")
        t3 = SessionConfig(tier="T3")
        assert (t2.non_web_total, t2.web_total) == (5, 5)
        assert (t3.non_web_total, t3.web_total) == (15, 10)

    def test_explicit_max_rounds_is_kept(self):
        assert SessionConfig(tier=Tier.T3, max_rounds=1).max_rounds == 1

    def test_max_rounds_is_capped(self):
        assert SessionConfig(tier=Tier.T3, max_rounds=50).max_rounds == 4

    def test_invalid_values_raise_value_error(self):
        with pytest.raises(ValueError):
            SessionConfig(tier="T9")
        with pytest.raises(ValueError):
            SessionConfig(min_relevance_score=150)
        with pytest.raises(ValueError):
            SessionConfig(max_rounds=0)

    def test_from_settings_ignores_none_overrides(self):
        config = SessionConfig.from_settings(tier="T2", max_rounds=None, token_budget=None)
        assert config.tier == Tier.T2
        assert config.token_budget == 16800
        assert config.min_relevance_score == 40


class TestFetchPlan:
    def test_consistent_counts_pass_through(self):
        plan = build_fetch_plan(SessionConfig(tier=Tier.T3), SourceCounts(10, 2, 3))
        assert (plan.pubmed, plan.medrxiv, plan.clinical_trials, plan.exa) == (10, 2, 3, 10)
        assert plan.total == 25

    def test_inconsistent_counts_are_rescaled(self):
        plan = build_fetch_plan(SessionConfig(tier=Tier.T2), SourceCounts(10, 4, 6))
        assert plan.pubmed + plan.medrxiv + plan.clinical_trials == 5
        assert plan.pubmed >= plan.clinical_trials >= plan.medrxiv
        assert plan.exa == 5

    def test_rescale_all_zero_puts_budget_on_literature(self):
        counts = rescale_counts(SourceCounts(0, 0, 0), 15)
        assert (counts.pubmed, counts.medrxiv, counts.clinical_trials) == (15, 0, 0)

    def test_rescale_always_hits_target(self):
        for a in range(0, 8):
            for b in range(0, 8):
                for target in (5, 15):
                    counts = rescale_counts(SourceCounts(a, b, 3), target)
                    assert counts.total == target
                    assert min(counts.pubmed, counts.medrxiv, counts.clinical_trials) >= 0
