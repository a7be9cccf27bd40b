"""Work-Type Detection Stage - Narrow the master before classification.

Scans recognized text across a photo batch and proposes the work types that
appear to be present. This is a recall-oriented prefilter: extra candidates
only cost a little search time, a missed work type loses the correct match,
so the keyword lists are deliberately broad.
"""

import logging
import unicodedata
from collections.abc import Iterable, Mapping, Sequence
from typing import Optional

from photoledger.models import RawRecord

from .stage_master import HierarchyMaster

logger = logging.getLogger(__name__)


# Work type -> keywords. Static configuration, independent of the master.
WORK_TYPE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "舗装工": (
        "舗装", "アスファルト", "合材", "温度", "転圧", "舗設", "敷均し", "乳剤",
        "路盤", "表層", "基層", "フィニッシャー", "ローラー", "プライムコート",
        "タックコート", "asphalt", "paving", "roller",
    ),
    "区画線工": (
        "区画線", "ライン", "白線", "黄線", "溶融式", "ペイント", "外側線",
        "中央線", "road marking", "lane line",
    ),
    "構造物撤去工": (
        "撤去", "取壊", "取り壊", "解体", "はつり", "カッター", "demolition",
    ),
    "道路土工": (
        "掘削", "路床", "盛土", "切土", "埋戻", "バックホウ", "残土",
        "excavation", "backhoe",
    ),
    "排水構造物工": (
        "側溝", "集水", "人孔", "マンホール", "桝", "排水", "管渠", "drain",
        "manhole",
    ),
    "人孔改良工": (
        "人孔改良", "マンホール蓋", "鉄蓋", "嵩上", "manhole cover",
    ),
}


def normalize_text(text: str) -> str:
    """NFKC-normalize and lower-case text for substring matching."""
    return unicodedata.normalize("NFKC", text or "").lower()


class WorkTypeDetector:
    """Proposes candidate work types from recognized text.

    Each record contributes its detected text, scene description and
    category guess; a work type is a candidate when any of its keywords
    occurs in any record.
    """

    def __init__(self, keywords: Optional[Mapping[str, Sequence[str]]] = None):
        """Initialize the detector.

        Args:
            keywords: Work type to keyword mapping. Defaults to
                WORK_TYPE_KEYWORDS.
        """
        source = keywords if keywords is not None else WORK_TYPE_KEYWORDS
        self.keywords = {
            work_type: tuple(normalize_text(k) for k in words if k)
            for work_type, words in source.items()
        }

    def record_text(self, record: RawRecord) -> str:
        """Combined normalized text of one record."""
        return normalize_text(
            " ".join((record.detected_text, record.description, record.category))
        )

    def detect_record(self, record: RawRecord) -> set[str]:
        """Work types suggested by a single record."""
        text = self.record_text(record)
        if not text.strip():
            return set()
        return {
            work_type
            for work_type, words in self.keywords.items()
            if any(word in text for word in words)
        }

    def detect(self, raw_records: Iterable[RawRecord]) -> set[str]:
        """Union of work types suggested across a batch."""
        found: set[str] = set()
        for record in raw_records:
            found |= self.detect_record(record)
        return found


def detect_work_types(raw_records: Iterable[RawRecord]) -> set[str]:
    """Detect candidate work types with the default keyword table."""
    return WorkTypeDetector().detect(raw_records)


def select_master(
    master: HierarchyMaster,
    raw_records: Sequence[RawRecord],
    detector: Optional[WorkTypeDetector] = None,
) -> HierarchyMaster:
    """Narrow a master to the work types detected in a batch.

    Work types the keyword table has no entry for can never be detected,
    so they always stay in the narrowed master. Falls back to the
    unfiltered master when nothing is detected or when the detected work
    types have no pattern entries in the master.
    """
    detector = detector or WorkTypeDetector()
    candidates = detector.detect(raw_records)
    if not candidates:
        logger.info("No work types detected; using full master")
        return master

    uncovered = set(master.work_types()) - set(detector.keywords)
    if uncovered:
        logger.debug("Keeping work types without keywords: %s", sorted(uncovered))

    filtered = master.filter_by_work_types(candidates | uncovered)
    if not filtered.entries:
        logger.info(
            "Detected work types %s not in master; using full master",
            sorted(candidates),
        )
        return master

    logger.info(
        "Narrowed master to %s (%d of %d entries)",
        sorted(candidates),
        len(filtered),
        len(master),
    )
    return filtered
