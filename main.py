"""Evidence retrieval CLI.

Runs one multi-round research session and prints progress plus the
selected sources.
"""

import argparse
import asyncio
import json

from research_engine.agents.orchestrator import ResearchOrchestrator
from research_engine.config import SessionConfig, Tier
from research_engine.llm_client import get_completion_service
from research_engine.models.events import ResearchEvent
from research_engine.services.source_selector import format_selected_sources_for_synthesis
from research_engine.tools.search_provider import build_default_providers, default_timeouts


def print_event(event: ResearchEvent) -> None:
    event_type = event.event.value
    data = event.data

    if event_type == "planning_complete":
        plan = ", ".join(f"{k}={v}" for k, v in data.get("fetch_plan", {}).items())
        print(f"[*] Category: {data.get('category')} | Plan: {plan} | Max rounds: {data.get('max_rounds')}")

    elif event_type == "round_started":
        print(f"\n[~] Round {data.get('round')}/{data.get('max_rounds')}: {data.get('query', '')[:80]}")

    elif event_type == "provider_completed":
        mark = "+" if data.get("success") else "!"
        print(f"  [{mark}] {data.get('provider')}: {data.get('count')} results ({data.get('duration_ms')}ms)")

    elif event_type == "round_complete":
        print(f"  [=] {data.get('source_count')} new sources")

    elif event_type == "reflection_complete":
        gaps = data.get("gaps_identified", [])
        print(f"  [?] Evidence: {data.get('evidence_quality')}, gaps: {len(gaps)}")
        for gap in gaps[:3]:
            print(f"      - {gap}")

    elif event_type == "stopping_decision" and data.get("should_stop"):
        print(f"  [x] Stopping: {data.get('reason')}")

    elif event_type == "query_refined":
        print(f"  [>] Refined ({data.get('focus_area')}): {data.get('refined', '')[:80]}")

    elif event_type == "source_selection_started":
        print(f"\n[+] Ranking {data.get('candidate_count')} sources...")

    elif event_type == "error":
        print(f"\n[!] Error: {data.get('message', 'Unknown error')}")


async def run_research(
    query: str,
    *,
    tier: str | None = None,
    max_rounds: int | None = None,
    token_budget: int | None = None,
    min_relevance: int | None = None,
    model: str | None = None,
    as_json: bool = False,
) -> None:
    config = SessionConfig.from_settings(
        tier=tier,
        max_rounds=max_rounds,
        token_budget=token_budget,
        min_relevance_score=min_relevance,
    )
    orchestrator = ResearchOrchestrator(
        get_completion_service(model),
        build_default_providers(),
        config,
        timeouts=default_timeouts(),
    )

    if not as_json:
        print(f"Research query: {query}")
        print("-" * 50)

    result = await orchestrator.run(query, progress=None if as_json else print_event)

    if as_json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return

    print("\n[*] Research Complete!")
    print(f"   Runtime: {result.duration_ms}ms")
    print(f"   Rounds: {len(result.rounds)}")
    print(f"   Sources: {result.total_sources} ({result.duplicates_filtered} duplicates filtered)")
    print(f"   Selected: {result.selection.selected_count} ({result.selection.selection_strategy})")
    print(f"   Tokens: {result.selection.total_tokens}")
    print(f"   Completeness: {result.completeness_score}")
    print(f"\n{'='*50}")
    print(format_selected_sources_for_synthesis(result.selection.selected))


def main():
    parser = argparse.ArgumentParser(description="Multi-round evidence retrieval")
    parser.add_argument("--query", "-q", required=True, help="Research question")
    parser.add_argument("--tier", "-t", choices=[t.value for t in Tier], help="Source budget tier")
    parser.add_argument("--max-rounds", type=int, help="Override the tier's round limit")
    parser.add_argument("--token-budget", type=int, help="Token budget for selected sources")
    parser.add_argument("--min-relevance", type=int, help="Minimum relevance score (0-100)")
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")

    args = parser.parse_args()

    asyncio.run(
        run_research(
            args.query,
            tier=args.tier,
            max_rounds=args.max_rounds,
            token_budget=args.token_budget,
            min_relevance=args.min_relevance,
            model=args.model,
            as_json=args.json,
        )
    )


if __name__ == "__main__":
    main()
