from __future__ import annotations

import json
from typing import Any

import httpx
from loguru import logger

from research_engine.models.sources import ProviderKind, SourceRecord
from research_engine.tools.web_utils import clean_text, extract_domain, is_valid_url

TRUSTED_MEDICAL_DOMAINS: tuple[str, ...] = (
    "mayoclinic.org",
    "clevelandclinic.org",
    "hopkinsmedicine.org",
    "cdc.gov",
    "nih.gov",
    "who.int",
    "diabetes.org",
    "joslin.org",
    "jdrf.org",
    "diabetesed.net",
    "beyondtype1.org",
    "diatribe.org",
    "idf.org",
    "easd.org",
    "diabetesjournals.org",
    "endocrine.org",
    "cochranelibrary.com",
)


def is_trusted_domain(domain: str) -> bool:
    domain = (domain or "").lower()
    return any(domain == trusted or domain.endswith(f".{trusted}") for trusted in TRUSTED_MEDICAL_DOMAINS)


def _map_result(item: dict[str, Any]) -> SourceRecord | None:
    url = str(item.get("url") or "")
    if not is_valid_url(url):
        return None
    highlights = [h for h in item.get("highlights", []) or [] if isinstance(h, str)]
    snippet = clean_text(str(item.get("text") or ""), max_length=500)
    if not snippet and highlights:
        snippet = clean_text(" ".join(highlights), max_length=500)
    author = item.get("author")
    return SourceRecord(
        kind=ProviderKind.EXA,
        title=clean_text(str(item.get("title") or ""), max_length=300) or "Untitled",
        url=url,
        abstract=snippet,
        published=str(item.get("publishedDate") or ""),
        venue=extract_domain(url),
        authors=[author] if isinstance(author, str) and author else [],
        highlights=highlights,
        score=item.get("score") if isinstance(item.get("score"), (int, float)) else None,
    )


class ExaClient:
    """Exa neural search restricted to trusted medical domains."""

    kind = ProviderKind.EXA

    def __init__(
        self,
        *,
        api_key: str = "",
        base_url: str = "https://api.exa.ai",
        include_domains: tuple[str, ...] = TRUSTED_MEDICAL_DOMAINS,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.include_domains = include_domains

    async def search(self, query: str, max_results: int) -> list[SourceRecord]:
        if max_results <= 0 or not query.strip():
            return []
        if not self.api_key:
            logger.warning("EXA_API_KEY is not configured, skipping web search")
            return []

        body: dict[str, Any] = {
            "query": query,
            "type": "neural",
            "numResults": max_results,
            "contents": {
                "text": {"maxCharacters": 500},
                "highlights": {"numSentences": 3},
            },
        }
        if self.include_domains:
            body["includeDomains"] = list(self.include_domains)

        try:
            async with httpx.AsyncClient(timeout=20.0) as client:
                response = await client.post(
                    f"{self.base_url}/search",
                    json=body,
                    headers={
                        "Accept": "application/json",
                        "x-api-key": self.api_key,
                    },
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            logger.warning(f"Exa search failed for '{query[:80]}': {exc}")
            return []
        if not isinstance(payload, dict):
            logger.warning("Exa search returned an unexpected response shape")
            return []

        records: list[SourceRecord] = []
        for item in payload.get("results", []) or []:
            if not isinstance(item, dict):
                continue
            record = _map_result(item)
            if record is not None:
                records.append(record)
        return records[:max_results]
