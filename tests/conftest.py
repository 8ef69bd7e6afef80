from __future__ import annotations

import asyncio
import json
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

from research_engine.models.sources import ProviderKind, SourceRecord


class FakeProvider:
    """Provider double: returns canned records, optionally slow or failing."""

    def __init__(
        self,
        kind: ProviderKind,
        records: list[SourceRecord] | Callable[[str, int], list[SourceRecord]] | None = None,
        *,
        delay: float = 0.0,
        error: Exception | None = None,
    ):
        self.kind = kind
        self._records = records or []
        self.delay = delay
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def search(self, query: str, max_results: int) -> list[SourceRecord]:
        self.calls.append((query, max_results))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self._records):
            return self._records(query, max_results)
        return list(self._records)


def make_record(kind: ProviderKind, ident: str, **kwargs: Any) -> SourceRecord:
    defaults: dict[str, Any] = {"title": f"{kind.value} study {ident}", "published": "2025-01-01"}
    if kind == ProviderKind.PUBMED:
        defaults["pmid"] = ident
    elif kind == ProviderKind.MEDRXIV:
        defaults["doi"] = f"10.1101/{ident}"
    elif kind == ProviderKind.CLINICAL_TRIALS:
        defaults["nct_id"] = f"NCT{ident}"
    else:
        defaults["url"] = f"https://www.mayoclinic.org/{ident}"
        defaults["venue"] = "mayoclinic.org"
    defaults.update(kwargs)
    return SourceRecord(kind=kind, **defaults)


def scripted_completion(responses: dict[str, Any]) -> AsyncMock:
    """Completion double that answers by ``caller`` name.

    Values may be a string, a dict (sent as JSON), an exception, or a
    callable receiving (system_prompt, user_prompt).
    """

    async def generate(system_prompt: str, user_prompt: str, **kwargs: Any) -> str:
        response = responses.get(kwargs.get("caller", ""), "")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(system_prompt, user_prompt)
        if isinstance(response, dict):
            return json.dumps(response)
        return response

    completion = AsyncMock()
    completion.generate = AsyncMock(side_effect=generate)
    return completion


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def provider_factory():
    return FakeProvider


@pytest.fixture
def completion_factory():
    return scripted_completion
