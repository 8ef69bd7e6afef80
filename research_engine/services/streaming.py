from __future__ import annotations

from typing import Any

from loguru import logger

from research_engine.models.events import EventType, ProgressSink, ResearchEvent


def emit(sink: ProgressSink | None, event: ResearchEvent) -> None:
    """Deliver an event to an optional sink. Sink failures never reach the caller."""
    if sink is None:
        return
    try:
        sink(event)
    except Exception as exc:
        logger.warning(f"Progress sink raised on {event.event.value}: {exc}")


def planning_started(query: str, **kwargs: Any) -> ResearchEvent:
    return ResearchEvent(event=EventType.PLANNING_STARTED, data={"query": query, **kwargs})


def planning_complete(
    category: str,
    fetch_plan: dict[str, int],
    max_rounds: int,
    **kwargs: Any,
) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.PLANNING_COMPLETE,
        data={
            "category": category,
            "fetch_plan": fetch_plan,
            "max_rounds": max_rounds,
            **kwargs,
        },
    )


def round_started(round_number: int, query: str, max_rounds: int) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.ROUND_STARTED,
        data={"round": round_number, "query": query, "max_rounds": max_rounds},
    )


def provider_started(provider: str, count: int, *, round_number: int | None = None) -> ResearchEvent:
    data: dict[str, Any] = {"provider": provider, "count": count}
    if round_number is not None:
        data["round"] = round_number
    return ResearchEvent(event=EventType.PROVIDER_STARTED, data=data)


def provider_completed(
    provider: str,
    count: int,
    duration_ms: int,
    success: bool,
    *,
    error: str | None = None,
) -> ResearchEvent:
    data: dict[str, Any] = {
        "provider": provider,
        "count": count,
        "duration_ms": duration_ms,
        "success": success,
    }
    if error:
        data["error"] = error
    return ResearchEvent(event=EventType.PROVIDER_COMPLETED, data=data)


def fetch_progress(fetched: int, total: int) -> ResearchEvent:
    return ResearchEvent(event=EventType.FETCH_PROGRESS, data={"fetched": fetched, "total": total})


def round_complete(round_number: int, source_count: int, **kwargs: Any) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.ROUND_COMPLETE,
        data={"round": round_number, "source_count": source_count, **kwargs},
    )


def reflection_started(round_number: int) -> ResearchEvent:
    return ResearchEvent(event=EventType.REFLECTION_STARTED, data={"round": round_number})


def reflection_complete(round_number: int, reflection: dict[str, Any]) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.REFLECTION_COMPLETE,
        data={"round": round_number, **reflection},
    )


def stopping_decision(round_number: int, decision: dict[str, Any]) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.STOPPING_DECISION,
        data={"round": round_number, **decision},
    )


def query_refined(round_number: int, refined: str, focus_area: str) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.QUERY_REFINED,
        data={"round": round_number, "refined": refined, "focus_area": focus_area},
    )


def source_selection_started(candidate_count: int) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.SOURCE_SELECTION_STARTED,
        data={"candidate_count": candidate_count},
    )


def research_complete(result: dict[str, Any], runtime_ms: int | None = None) -> ResearchEvent:
    data: dict[str, Any] = {"result": result}
    if runtime_ms is not None:
        data["runtime_ms"] = runtime_ms
    return ResearchEvent(event=EventType.RESEARCH_COMPLETE, data=data)


def error(message: str, stage: str | None = None) -> ResearchEvent:
    data: dict[str, Any] = {"message": message}
    if stage:
        data["stage"] = stage
    return ResearchEvent(event=EventType.ERROR, data=data)
