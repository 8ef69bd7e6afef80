from __future__ import annotations

import json
from typing import Any

import httpx
from loguru import logger

from research_engine.models.sources import ProviderKind, SourceRecord
from research_engine.tools.web_utils import clean_text

DOI_URL = "https://doi.org/{doi}"


def build_preprint_query(query: str, since: str | None) -> str:
    """Restrict a free-text query to medRxiv preprints indexed by Europe PMC."""
    parts = [f"({query})", "SRC:PPR", 'PUBLISHER:"medRxiv"']
    if since:
        parts.append(f"FIRST_PDATE:[{since} TO *]")
    return " AND ".join(parts)


def _map_preprint(item: dict[str, Any]) -> SourceRecord | None:
    title = clean_text(str(item.get("title") or ""), max_length=500)
    if not title:
        return None
    doi = str(item.get("doi") or "").strip() or None
    url = DOI_URL.format(doi=doi) if doi else ""
    if not url:
        for link in (item.get("fullTextUrlList") or {}).get("fullTextUrl", []) or []:
            if isinstance(link, dict) and link.get("url"):
                url = str(link["url"])
                break
    authors = [a.strip() for a in str(item.get("authorString") or "").split(",") if a.strip()]
    return SourceRecord(
        kind=ProviderKind.MEDRXIV,
        title=title,
        url=url,
        abstract=clean_text(str(item.get("abstractText") or "")),
        published=str(item.get("firstPublicationDate") or ""),
        venue="medRxiv",
        authors=authors,
        doi=doi,
    )


class MedRxivClient:
    """medRxiv preprints through the Europe PMC REST search endpoint."""

    kind = ProviderKind.MEDRXIV

    def __init__(
        self,
        *,
        base_url: str = "https://www.ebi.ac.uk/europepmc/webservices/rest",
        since: str | None = "2023-01-01",
    ):
        self.base_url = base_url.rstrip("/")
        self.since = since

    async def search(self, query: str, max_results: int) -> list[SourceRecord]:
        if max_results <= 0 or not query.strip():
            return []

        params = {
            "query": build_preprint_query(query, self.since),
            "format": "json",
            "resultType": "core",
            "pageSize": max_results,
        }
        try:
            async with httpx.AsyncClient(timeout=20.0) as client:
                response = await client.get(f"{self.base_url}/search", params=params)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            logger.warning(f"medRxiv search failed for '{query[:80]}': {exc}")
            return []
        if not isinstance(payload, dict):
            logger.warning("medRxiv search returned an unexpected response shape")
            return []

        raw_results = (payload.get("resultList") or {}).get("result", []) or []
        records: list[SourceRecord] = []
        for item in raw_results:
            if not isinstance(item, dict):
                continue
            record = _map_preprint(item)
            if record is not None:
                records.append(record)
        return records[:max_results]
