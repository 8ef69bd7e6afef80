from __future__ import annotations

from typing import Any, Iterable

from loguru import logger

from research_engine.models.sources import SourceRecord


class SourceDeduplicator:
    """Session-scoped memory of identity keys already returned.

    Records with no extractable identity are always passed through.
    Lives for exactly one research session and is never reset mid-session.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self.duplicates_filtered = 0

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def is_seen(self, record: SourceRecord) -> bool:
        key = record.identity_key()
        return key is not None and key in self._seen

    def mark_seen(self, record: SourceRecord) -> None:
        key = record.identity_key()
        if key is not None:
            self._seen.add(key)

    def filter(self, records: Iterable[SourceRecord]) -> list[SourceRecord]:
        """Drop records already seen (including repeats inside ``records``)."""
        kept: list[SourceRecord] = []
        for record in records:
            key = record.identity_key()
            if key is None:
                kept.append(record)
                continue
            if key in self._seen:
                self.duplicates_filtered += 1
                continue
            self._seen.add(key)
            kept.append(record)
        return kept

    def filter_pubmed(self, records: Iterable[SourceRecord]) -> list[SourceRecord]:
        return self.filter(records)

    def filter_medrxiv(self, records: Iterable[SourceRecord]) -> list[SourceRecord]:
        return self.filter(records)

    def filter_clinical_trials(self, records: Iterable[SourceRecord]) -> list[SourceRecord]:
        return self.filter(records)

    def filter_exa(self, records: Iterable[SourceRecord]) -> list[SourceRecord]:
        return self.filter(records)

    def summary(self) -> dict[str, Any]:
        return {
            "unique_sources": self.seen_count,
            "duplicates_filtered": self.duplicates_filtered,
        }

    def log_summary(self) -> None:
        logger.info(
            f"Deduplication: {self.seen_count} unique sources tracked, "
            f"{self.duplicates_filtered} duplicates filtered"
        )
