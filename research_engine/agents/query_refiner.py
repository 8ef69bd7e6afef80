from __future__ import annotations

import json
from datetime import date

from loguru import logger

from research_engine.llm_client import TextCompletionService
from research_engine.models.research import RefinedQuery
from research_engine.services.llm_output import extract_json_object
from research_engine.services.prompt_store import render_prompt

MAX_QUERY_LENGTH = 200


def cap_query_length(query: str) -> str:
    if len(query) > MAX_QUERY_LENGTH:
        return query[: MAX_QUERY_LENGTH - 3] + "..."
    return query


class QueryRefiner:
    """Rewrite the original question toward the primary knowledge gap."""

    name = "query_refiner"

    def __init__(self, completion: TextCompletionService):
        self.completion = completion

    async def refine(self, original: str, gaps: list[str], round_number: int) -> RefinedQuery:
        if not gaps:
            logger.debug(f"Round {round_number}: no gaps, reusing original query")
            return RefinedQuery(
                original=original,
                refined=original,
                focus_area="general evidence",
                reasoning="No specific gaps to address",
            )

        primary_gap = gaps[0]
        fallback = RefinedQuery(
            original=original,
            refined=cap_query_length(f"{original} {primary_gap}"),
            focus_area=primary_gap,
            reasoning="Refinement unavailable, appended primary gap to original query",
        )

        try:
            raw_text = await self.completion.generate(
                render_prompt("query_refiner.system_prompt", current_year=date.today().year),
                render_prompt(
                    "query_refiner.user_prompt",
                    query=original,
                    gap_lines="\n".join(f"{i}. {gap}" for i, gap in enumerate(gaps, 1)),
                    primary_gap=primary_gap,
                ),
                temperature=0.8,
                max_output_tokens=512,
                caller=self.name,
            )
            payload = extract_json_object(raw_text)
        except json.JSONDecodeError:
            logger.warning(f"Round {round_number}: unparseable refiner output, appending primary gap")
            return fallback
        except Exception as exc:
            logger.warning(f"Round {round_number}: refinement call failed: {exc}")
            return fallback

        refined = " ".join(str(payload.get("refined") or "").split()) or original
        focus_area = str(payload.get("focus_area") or payload.get("focusArea") or primary_gap)
        result = RefinedQuery(
            original=original,
            refined=cap_query_length(refined),
            focus_area=focus_area,
            reasoning=str(payload.get("reasoning") or "Query refinement for identified gaps"),
        )
        logger.info(f"Round {round_number}: refined query '{result.refined[:80]}' (focus: {result.focus_area})")
        return result
