"""Classification Stage - Resolve raw guesses against the hierarchy master.

Every pattern set in the master is scored against a record's search text:
the score is the summed length of the patterns found, so long, specific
patterns outweigh short generic ones. The winning entry's ancestor path
becomes the record's canonical category / work type / variety / detail.

Records without any pattern hit keep their raw guesses (provenance RAW).
Without a master the whole batch passes through.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from photoledger.config import settings
from photoledger.models import (
    ClassifiedRecord,
    HierarchyPath,
    MatchEntry,
    MatchStatus,
    Provenance,
    RawRecord,
)

from .stage_detect import WorkTypeDetector, normalize_text, select_master
from .stage_master import HierarchyMaster

logger = logging.getLogger(__name__)


@dataclass
class ClassificationReport:
    """Result of classifying a batch."""

    records: list[ClassifiedRecord] = field(default_factory=list)
    unmatched_count: int = 0
    failed_count: int = 0  # records that degraded because of an error

    @property
    def matched_count(self) -> int:
        return sum(1 for r in self.records if r.is_matched)


def build_search_text(raw: RawRecord) -> str:
    """Normalized text the patterns are searched in."""
    return normalize_text(
        " ".join(
            (raw.detected_text, raw.description, raw.category, raw.variety, raw.detail)
        )
    )


def _overlaps(guess: str, label: str) -> bool:
    if not guess or not label:
        return False
    guess = normalize_text(guess)
    label = normalize_text(label)
    return guess in label or label in guess


def guess_affinity(raw: RawRecord, path: HierarchyPath) -> int:
    """Number of taxonomy levels the raw guesses already partially match."""
    pairs = (
        (raw.category, path.category),
        (raw.work_type, path.work_type),
        (raw.variety, path.variety),
        (raw.detail, path.detail),
    )
    return sum(1 for guess, label in pairs if _overlaps(guess, label))


class Classifier:
    """Master matcher for photo records.

    The master is read-only, so a single Classifier can serve many threads.
    """

    def __init__(
        self,
        master: Optional[HierarchyMaster] = None,
        max_workers: Optional[int] = None,
    ):
        """Initialize the classifier.

        Args:
            master: Hierarchy master to match against. None means every
                record passes through with its raw guesses.
            max_workers: Thread count for batch classification.
        """
        self.master = master
        self.max_workers = max_workers or settings.max_workers
        self._prepared: list[tuple[MatchEntry, tuple[tuple[str, str], ...]]] = []
        if master is not None:
            for entry in master.entries:
                normalized = tuple((p, normalize_text(p)) for p in entry.patterns)
                self._prepared.append((entry, normalized))

    def best_entry(
        self, raw: RawRecord
    ) -> Optional[tuple[MatchEntry, list[str], int]]:
        """Find the highest scoring entry for a record.

        Ties on score prefer the entry whose path agrees with more of the
        raw guesses, then the entry seen first in traversal order.

        Returns:
            (entry, matched patterns, score), or None when nothing scores.
        """
        text = build_search_text(raw)
        if not text.strip():
            return None

        best = None
        best_key = None
        for entry, patterns in self._prepared:
            hits = [(orig, norm) for orig, norm in patterns if norm and norm in text]
            if not hits:
                continue
            score = sum(len(norm) for _, norm in hits)
            key = (score, guess_affinity(raw, entry.path), -entry.order)
            if best_key is None or key > best_key:
                best_key = key
                best = (entry, [orig for orig, _ in hits], score)
        return best

    def classify(self, raw: RawRecord) -> ClassifiedRecord:
        """Classify one record."""
        if self.master is None:
            return ClassifiedRecord.pass_through(raw, MatchStatus.NO_MASTER)

        found = self.best_entry(raw)
        if found is None:
            return ClassifiedRecord.pass_through(raw, MatchStatus.UNMATCHED)

        entry, matched, score = found
        data = raw.model_dump()
        data.update(
            category=entry.path.category,
            work_type=entry.path.work_type,
            variety=entry.path.variety,
            detail=entry.path.detail,
        )
        return ClassifiedRecord(
            **data,
            remarks=entry.path.remark,
            provenance=Provenance.MASTER,
            match_status=MatchStatus.MATCHED,
            matched_patterns=matched,
            match_score=score,
            raw_category=raw.category,
            raw_work_type=raw.work_type,
            raw_variety=raw.variety,
            raw_detail=raw.detail,
        )

    def _classify_safe(self, item: Any) -> tuple[ClassifiedRecord, bool]:
        raw = RawRecord.coerce(item)
        try:
            return self.classify(raw), False
        except Exception as exc:  # a bad record must not abort the batch
            logger.warning("Classification failed for %s: %s", raw.file_name or "<unnamed>", exc)
            return ClassifiedRecord.pass_through(raw, MatchStatus.UNMATCHED), True

    def classify_all(self, items: Iterable[Any]) -> ClassificationReport:
        """Classify a batch, preserving input order.

        Args:
            items: RawRecords or mappings in the recognizer's JSON shape.

        Returns:
            ClassificationReport with records and diagnostic counts.
        """
        items = list(items)
        if self.max_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(self._classify_safe, items))
        else:
            outcomes = [self._classify_safe(item) for item in items]

        report = ClassificationReport(records=[r for r, _ in outcomes])
        report.failed_count = sum(1 for _, failed in outcomes if failed)
        report.unmatched_count = sum(
            1 for r in report.records if r.match_status == MatchStatus.UNMATCHED
        )
        if self.master is not None:
            logger.info(
                "Classified %d records: %d matched, %d unmatched",
                len(report.records),
                report.matched_count,
                report.unmatched_count,
            )
        return report


def classify(raw: RawRecord, master: Optional[HierarchyMaster]) -> ClassifiedRecord:
    """Classify a single record against a master."""
    return Classifier(master, max_workers=1).classify(raw)


def classify_batch(
    raw_records: Iterable[Any],
    master: Optional[HierarchyMaster] = None,
    narrow: bool = True,
    max_workers: Optional[int] = None,
) -> list[ClassifiedRecord]:
    """Classify a batch of raw records.

    Args:
        raw_records: RawRecords or recognizer JSON mappings.
        master: Optional hierarchy master.
        narrow: Restrict the master to work types detected in the batch.
        max_workers: Thread count; defaults to settings.

    Returns:
        ClassifiedRecords in input order.
    """
    return classify_report(raw_records, master, narrow, max_workers).records


def classify_report(
    raw_records: Iterable[Any],
    master: Optional[HierarchyMaster] = None,
    narrow: bool = True,
    max_workers: Optional[int] = None,
) -> ClassificationReport:
    """Same as classify_batch but returns the full report."""
    items = list(raw_records)
    if master is not None and narrow:
        coerced = [RawRecord.coerce(item) for item in items]
        master = select_master(master, coerced, WorkTypeDetector())
        items = coerced
    return Classifier(master, max_workers=max_workers).classify_all(items)
