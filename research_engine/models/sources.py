from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from research_engine.tools.web_utils import normalize_url


class ProviderKind(StrEnum):
    PUBMED = "pubmed"
    MEDRXIV = "medrxiv"
    CLINICAL_TRIALS = "clinicaltrials"
    EXA = "exa"


# Fixed order used for deduplication and reporting
PROVIDER_ORDER: tuple[ProviderKind, ...] = (
    ProviderKind.PUBMED,
    ProviderKind.MEDRXIV,
    ProviderKind.CLINICAL_TRIALS,
    ProviderKind.EXA,
)


@dataclass(slots=True)
class SourceRecord:
    """One retrieved item, discriminated by ``kind``.

    ``venue`` holds the journal for articles, the server for preprints,
    the lead sponsor for trials and the domain for web results.
    """

    kind: ProviderKind
    title: str
    url: str = ""
    abstract: str = ""
    published: str = ""
    venue: str = ""
    authors: list[str] = field(default_factory=list)
    pmid: str | None = None
    doi: str | None = None
    nct_id: str | None = None
    status: str | None = None
    phase: str | None = None
    article_type: str | None = None
    conditions: list[str] = field(default_factory=list)
    highlights: list[str] = field(default_factory=list)
    score: float | None = None

    def identity_key(self) -> str | None:
        if self.pmid and self.pmid.strip():
            return f"pmid:{self.pmid.strip()}"
        if self.doi and self.doi.strip():
            return f"doi:{self.doi.strip().lower()}"
        if self.nct_id and self.nct_id.strip():
            return f"nct:{self.nct_id.strip().upper()}"
        if self.url and self.url.strip():
            normalized = normalize_url(self.url)
            if normalized:
                return f"url:{normalized}"
        return None

    @property
    def year(self) -> int | None:
        digits = self.published[:4]
        if len(digits) == 4 and digits.isdigit():
            return int(digits)
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "title": self.title,
            "url": self.url,
            "abstract": self.abstract,
            "published": self.published,
            "venue": self.venue,
            "authors": list(self.authors),
        }
        for key in ("pmid", "doi", "nct_id", "status", "phase", "article_type", "score"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.conditions:
            data["conditions"] = list(self.conditions)
        return data
