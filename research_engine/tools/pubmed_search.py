from __future__ import annotations

import json
from typing import Any

import httpx
from loguru import logger

from research_engine.models.sources import ProviderKind, SourceRecord

PUBMED_ARTICLE_URL = "https://pubmed.ncbi.nlm.nih.gov/{pmid}/"

ARTICLE_TYPE_MAP = {
    "Meta-Analysis": "Meta-Analysis",
    "Systematic Review": "Systematic Review",
    "Randomized Controlled Trial": "RCT",
    "Clinical Trial": "Clinical Trial",
    "Observational Study": "Observational Study",
    "Case Reports": "Case Report",
    "Review": "Review",
}


def determine_article_type(pub_types: list[Any]) -> str:
    for pub_type in pub_types:
        if isinstance(pub_type, str) and pub_type in ARTICLE_TYPE_MAP:
            return ARTICLE_TYPE_MAP[pub_type]
    return "Research Article"


def _doi_from_summary(article: dict[str, Any]) -> str | None:
    elocation = article.get("elocationid") or ""
    if isinstance(elocation, str) and elocation.startswith("doi:"):
        return elocation[4:].strip() or None
    for aid in article.get("articleids", []) or []:
        if isinstance(aid, dict) and aid.get("idtype") == "doi" and aid.get("value"):
            return str(aid["value"]).strip()
    return None


class PubMedClient:
    """NCBI E-utilities: esearch for ids, esummary for metadata."""

    kind = ProviderKind.PUBMED

    def __init__(
        self,
        *,
        api_key: str = "",
        base_url: str = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils",
        years_back: int = 5,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.years_back = years_back

    def _params(self, **values: Any) -> dict[str, Any]:
        params: dict[str, Any] = {"db": "pubmed", "retmode": "json", **values}
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    async def search(self, query: str, max_results: int) -> list[SourceRecord]:
        if max_results <= 0 or not query.strip():
            return []

        search_params = self._params(term=query, retmax=max_results, sort="relevance")
        if self.years_back > 0:
            search_params["reldate"] = self.years_back * 365
            search_params["datetype"] = "pdat"

        try:
            async with httpx.AsyncClient(timeout=20.0) as client:
                response = await client.get(f"{self.base_url}/esearch.fcgi", params=search_params)
                response.raise_for_status()
                ids = response.json().get("esearchresult", {}).get("idlist", []) or []
                ids = [str(pmid) for pmid in ids][:max_results]
                if not ids:
                    return []

                response = await client.get(
                    f"{self.base_url}/esummary.fcgi",
                    params=self._params(id=",".join(ids)),
                )
                response.raise_for_status()
                summaries = response.json().get("result", {}) or {}
        except (httpx.HTTPError, json.JSONDecodeError, AttributeError) as exc:
            logger.warning(f"PubMed search failed for '{query[:80]}': {exc}")
            return []

        records: list[SourceRecord] = []
        for pmid in ids:
            article = summaries.get(pmid)
            if not isinstance(article, dict):
                continue
            authors = [
                a.get("name", "Unknown")
                for a in article.get("authors", []) or []
                if isinstance(a, dict)
            ]
            records.append(
                SourceRecord(
                    kind=self.kind,
                    title=article.get("title") or "Untitled",
                    url=PUBMED_ARTICLE_URL.format(pmid=pmid),
                    published=article.get("sortpubdate") or article.get("pubdate") or "",
                    venue=article.get("source") or "Unknown Journal",
                    authors=authors,
                    pmid=pmid,
                    doi=_doi_from_summary(article),
                    article_type=determine_article_type(article.get("pubtype", []) or []),
                )
            )
        logger.debug(f"PubMed returned {len(records)} articles for '{query[:80]}'")
        return records
