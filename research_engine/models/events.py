from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class EventType(str, Enum):
    PLANNING_STARTED = "planning_started"
    PLANNING_COMPLETE = "planning_complete"
    ROUND_STARTED = "round_started"
    PROVIDER_STARTED = "provider_started"
    PROVIDER_COMPLETED = "provider_completed"
    FETCH_PROGRESS = "fetch_progress"
    ROUND_COMPLETE = "round_complete"
    REFLECTION_STARTED = "reflection_started"
    REFLECTION_COMPLETE = "reflection_complete"
    STOPPING_DECISION = "stopping_decision"
    QUERY_REFINED = "query_refined"
    SOURCE_SELECTION_STARTED = "source_selection_started"
    RESEARCH_COMPLETE = "research_complete"
    ERROR = "error"


@dataclass
class ResearchEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.data)}\n\n"


ProgressSink = Callable[[ResearchEvent], None]
