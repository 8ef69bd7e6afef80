from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from research_engine.agents.query_refiner import QueryRefiner, cap_query_length


def _completion(**kwargs) -> AsyncMock:
    completion = AsyncMock()
    completion.generate = AsyncMock(**kwargs)
    return completion


def test_cap_query_length():
    assert cap_query_length("short") == "short"
    capped = cap_query_length("x" * 250)
    assert len(capped) == 200
    assert capped.endswith("...")


@pytest.mark.asyncio
async def test_no_gaps_reuses_original_without_calling_service():
    completion = _completion(return_value="unused")
    refined = await QueryRefiner(completion).refine("metformin and B12", [], 1)

    assert refined.refined == "metformin and B12"
    assert refined.focus_area == "general evidence"
    completion.generate.assert_not_awaited()


@pytest.mark.asyncio
async def test_uses_model_refinement():
    completion = _completion(
        return_value='{"refined": "metformin long-term B12 deficiency cohort 2024", '
        '"focus_area": "long-term outcomes", "reasoning": "targets the gap"}'
    )
    refined = await QueryRefiner(completion).refine(
        "metformin and B12", ["Limited long-term data", "No pediatric data"], 1
    )

    assert refined.refined == "metformin long-term B12 deficiency cohort 2024"
    assert refined.focus_area == "long-term outcomes"
    assert refined.original == "metformin and B12"
    kwargs = completion.generate.await_args.kwargs
    assert kwargs["temperature"] == 0.8
    assert kwargs["max_output_tokens"] == 512
    user_prompt = completion.generate.await_args.args[1]
    assert "1. Limited long-term data" in user_prompt
    assert "2. No pediatric data" in user_prompt


@pytest.mark.asyncio
async def test_overlong_refinement_is_capped():
    completion = _completion(return_value='{"refined": "%s", "focus_area": "x"}' % ("word " * 80))
    refined = await QueryRefiner(completion).refine("q", ["gap one"], 2)
    assert len(refined.refined) <= 200


@pytest.mark.asyncio
async def test_parse_failure_appends_primary_gap():
    completion = _completion(return_value="I would search for something else")
    refined = await QueryRefiner(completion).refine("insulin pumps", ["cost effectiveness data"], 1)

    assert refined.refined == "insulin pumps cost effectiveness data"
    assert refined.focus_area == "cost effectiveness data"


@pytest.mark.asyncio
async def test_service_error_appends_primary_gap():
    completion = _completion(side_effect=TimeoutError())
    refined = await QueryRefiner(completion).refine("insulin pumps", ["pediatric outcomes"], 1)
    assert refined.refined == "insulin pumps pediatric outcomes"


@pytest.mark.asyncio
async def test_empty_refinement_falls_back_to_original():
    completion = _completion(return_value='{"refined": "", "focus_area": ""}')
    refined = await QueryRefiner(completion).refine("insulin pumps", ["pediatric outcomes"], 1)
    assert refined.refined == "insulin pumps"
    assert refined.focus_area == "pediatric outcomes"
