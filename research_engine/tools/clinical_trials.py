from __future__ import annotations

import json
from typing import Any

import httpx
from loguru import logger

from research_engine.models.sources import ProviderKind, SourceRecord
from research_engine.tools.web_utils import clean_text

STUDY_URL = "https://clinicaltrials.gov/study/{nct_id}"


def _map_study(study: dict[str, Any]) -> SourceRecord | None:
    protocol = study.get("protocolSection") or {}
    ident = protocol.get("identificationModule") or {}
    nct_id = str(ident.get("nctId") or "").strip()
    title = ident.get("officialTitle") or ident.get("briefTitle") or ""
    if not nct_id or not title:
        return None

    status_module = protocol.get("statusModule") or {}
    description = protocol.get("descriptionModule") or {}
    sponsor = (protocol.get("sponsorCollaboratorsModule") or {}).get("leadSponsor") or {}
    design = protocol.get("designModule") or {}
    conditions = (protocol.get("conditionsModule") or {}).get("conditions", []) or []
    phases = design.get("phases", []) or []
    start = (status_module.get("startDateStruct") or {}).get("date") or ""
    first_posted = (status_module.get("studyFirstPostDateStruct") or {}).get("date") or ""

    return SourceRecord(
        kind=ProviderKind.CLINICAL_TRIALS,
        title=clean_text(str(title), max_length=500),
        url=STUDY_URL.format(nct_id=nct_id),
        abstract=clean_text(str(description.get("briefSummary") or "")),
        published=str(first_posted or start),
        venue=str(sponsor.get("name") or ""),
        nct_id=nct_id,
        status=status_module.get("overallStatus"),
        phase=", ".join(str(p) for p in phases) or None,
        conditions=[str(c) for c in conditions],
    )


class ClinicalTrialsClient:
    """ClinicalTrials.gov API v2 study search."""

    kind = ProviderKind.CLINICAL_TRIALS

    def __init__(self, *, base_url: str = "https://clinicaltrials.gov/api/v2"):
        self.base_url = base_url.rstrip("/")

    async def search(self, query: str, max_results: int) -> list[SourceRecord]:
        if max_results <= 0 or not query.strip():
            return []

        params = {
            "query.term": query,
            "pageSize": max_results,
            "format": "json",
            "sort": "@relevance",
        }
        try:
            async with httpx.AsyncClient(timeout=20.0) as client:
                response = await client.get(f"{self.base_url}/studies", params=params)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            logger.warning(f"ClinicalTrials.gov search failed for '{query[:80]}': {exc}")
            return []
        if not isinstance(payload, dict):
            logger.warning("ClinicalTrials.gov search returned an unexpected response shape")
            return []

        records: list[SourceRecord] = []
        for study in payload.get("studies", []) or []:
            if not isinstance(study, dict):
                continue
            record = _map_study(study)
            if record is not None:
                records.append(record)
        return records[:max_results]
