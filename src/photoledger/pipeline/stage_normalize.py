"""Normalization Stage - Reconcile readings within related photo sets.

A measurement event is usually documented by several consecutive photos:
one close-up of the signage board with a legible reading and a few wider
shots whose OCR of small text is unreliable. This stage groups such runs
into photo sets and copies the board photo's reading onto the others.

Grouping rules:
- a set is a contiguous run sharing category, work type, variety and station
- stations are compared in canonical form (width, case and OCR variants)
- a set never exceeds the maximum set size (3 by convention)

Sets with zero or several board photos are left untouched and counted as
ambiguous; the stage never guesses which board is authoritative.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Optional

from photoledger.config import settings
from photoledger.models import ClassifiedRecord

from .measurements import contains_measurement

logger = logging.getLogger(__name__)


# Fields copied from the board photo onto the rest of its set
AUTHORITATIVE_FIELDS = ("measurements", "detected_text")

# Station notations
SEPARATOR_RE = re.compile(r"no\.(\d+)[.\-](\d+)")
PATTERN_PLUS = re.compile(r"no\.?\s*(\d+)\+(\d+)", re.IGNORECASE)
PATTERN_DOT = re.compile(r"no\.?\s*(\d+)\.(\d+)", re.IGNORECASE)
PATTERN_DASH = re.compile(r"no\.?\s*(\d+)-(\d+)", re.IGNORECASE)
PATTERN_INT = re.compile(r"no\.?\s*(\d+)$", re.IGNORECASE)


def _is_station_prefix(chars: list[str], i: int) -> bool:
    """True for the "o" of a leading "No" station prefix."""
    return (
        i > 0
        and chars[i - 1] in "nN"
        and (i == 1 or not chars[i - 2].isalpha())
    )


def _fix_ocr_errors(text: str) -> str:
    """Replace O→0 and l/I→1 when adjacent to a digit.

    The "o" of a "No" prefix stays a letter, so "No10" is not read as "N010".
    """
    chars = list(text)
    out = []
    for i, c in enumerate(chars):
        prev_digit = i > 0 and chars[i - 1].isdigit()
        next_digit = i + 1 < len(chars) and chars[i + 1].isdigit()
        if prev_digit or next_digit:
            if c in "oO" and not _is_station_prefix(chars, i):
                c = "0"
            elif c in "lI":
                c = "1"
        out.append(c)
    return "".join(out)


def normalize_station_format(station: str) -> str:
    """Canonical comparison form of a station label.

    "Ｎｏ．１０＋５０", "NO.10.50" and "no.1O-5O" all become "no.10+50".
    """
    text = unicodedata.normalize("NFKC", station or "").strip()
    text = _fix_ocr_errors(text).lower()
    return SEPARATOR_RE.sub(r"no.\1+\2", text)


@dataclass(frozen=True)
class StationPattern:
    """Parsed station notation."""

    style: str  # "plus", "dot", "dash" or "integer"
    main: int
    offset: Optional[int] = None


def detect_station_pattern(station: str) -> Optional[StationPattern]:
    """Detect which notation a station label uses."""
    station = unicodedata.normalize("NFKC", station or "").strip()
    for style, pattern in (("plus", PATTERN_PLUS), ("dot", PATTERN_DOT), ("dash", PATTERN_DASH)):
        match = pattern.search(station)
        if match:
            return StationPattern(style, int(match.group(1)), int(match.group(2)))
    match = PATTERN_INT.search(station)
    if match:
        return StationPattern("integer", int(match.group(1)))
    return None


@dataclass
class PhotoSet:
    """Contiguous records believed to document one measurement event."""

    indices: list[int] = field(default_factory=list)
    board_indices: list[int] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.indices)

    @property
    def is_trivial(self) -> bool:
        return self.size < 2

    @property
    def board_index(self) -> Optional[int]:
        """Index of the single authoritative record, if exactly one exists."""
        return self.board_indices[0] if len(self.board_indices) == 1 else None

    @property
    def ambiguous(self) -> bool:
        return not self.is_trivial and self.board_index is None


@dataclass
class NormalizationCorrection:
    """One field rewrite applied by the normalizer."""

    file_name: str
    index: int
    field: str
    original: str
    corrected: str
    reason: str


@dataclass
class NormalizationStats:
    """Diagnostic counts for a normalization run."""

    total_records: int = 0
    corrected_records: int = 0
    field_corrections: int = 0
    photo_sets: int = 0
    ambiguous_sets: int = 0
    replaced_readings: int = 0  # own readings overwritten by a board reading


@dataclass
class NormalizationResult:
    """Output of a normalization run."""

    records: list[ClassifiedRecord]
    sets: list[PhotoSet] = field(default_factory=list)
    corrections: list[NormalizationCorrection] = field(default_factory=list)
    stats: NormalizationStats = field(default_factory=NormalizationStats)


class Normalizer:
    """Partitions classified records into photo sets and propagates board readings.

    Scanning is sequential and order-dependent; a run must not be split
    across workers.
    """

    def __init__(self, max_set_size: Optional[int] = None):
        """Initialize the normalizer.

        Args:
            max_set_size: Maximum records per photo set (default from settings).
        """
        self.max_set_size = max_set_size or settings.max_set_size
        if self.max_set_size < 1:
            raise ValueError("max_set_size must be at least 1")

    @staticmethod
    def set_key(record: ClassifiedRecord) -> tuple[str, str, str, str]:
        """Values that must agree for records to share a set."""
        return (
            record.category,
            record.work_type,
            record.variety,
            normalize_station_format(record.station),
        )

    def partition(self, records: list[ClassifiedRecord]) -> list[PhotoSet]:
        """Split records into photo sets in input order."""
        sets: list[PhotoSet] = []
        current = PhotoSet()
        current_key = None

        for index, record in enumerate(records):
            key = self.set_key(record)
            if current.indices and (key != current_key or current.size >= self.max_set_size):
                sets.append(current)
                current = PhotoSet()
            if not current.indices:
                current_key = key
            current.indices.append(index)
            if record.has_board:
                current.board_indices.append(index)

        if current.indices:
            sets.append(current)
        return sets

    def run(self, records: list[ClassifiedRecord]) -> NormalizationResult:
        """Normalize a batch and report what changed.

        Returns:
            NormalizationResult with new records (inputs are not modified),
            the photo sets, every correction and summary stats.
        """
        records = list(records)
        result = NormalizationResult(records=list(records))
        result.sets = self.partition(records)
        corrected: set[int] = set()

        for photo_set in result.sets:
            if photo_set.is_trivial:
                continue
            if photo_set.ambiguous:
                result.stats.ambiguous_sets += 1
                logger.debug(
                    "Ambiguous photo set %s: %d board photos",
                    [records[i].file_name for i in photo_set.indices],
                    len(photo_set.board_indices),
                )
                continue

            board = records[photo_set.board_index]
            for index in photo_set.indices:
                if index == photo_set.board_index:
                    continue
                target = result.records[index]
                updates = {}
                for name in AUTHORITATIVE_FIELDS:
                    original = getattr(target, name)
                    value = getattr(board, name)
                    if original == value:
                        continue
                    updates[name] = value
                    reason = f"Copied from board photo {board.file_name}"
                    if name == "measurements" and contains_measurement(original):
                        result.stats.replaced_readings += 1
                        reason = f"Replaced own reading with board photo {board.file_name}"
                        logger.debug(
                            "%s: reading %r replaced by %r", target.file_name, original, value
                        )
                    result.corrections.append(
                        NormalizationCorrection(
                            file_name=target.file_name,
                            index=index,
                            field=name,
                            original=original,
                            corrected=value,
                            reason=reason,
                        )
                    )
                if updates:
                    result.records[index] = target.model_copy(update=updates)
                    corrected.add(index)

        result.stats.total_records = len(records)
        result.stats.photo_sets = len(result.sets)
        result.stats.corrected_records = len(corrected)
        result.stats.field_corrections = len(result.corrections)

        if result.stats.ambiguous_sets:
            logger.info(
                "%d of %d photo sets ambiguous (no single board photo)",
                result.stats.ambiguous_sets,
                result.stats.photo_sets,
            )
        logger.info(
            "Normalized %d records: %d corrected",
            result.stats.total_records,
            result.stats.corrected_records,
        )
        return result


def normalize(
    records: list[ClassifiedRecord],
    max_set_size: Optional[int] = None,
) -> list[ClassifiedRecord]:
    """Normalize a classified batch, returning the rewritten records."""
    return Normalizer(max_set_size).run(records).records


def find_photo_sets(
    records: list[ClassifiedRecord],
    max_set_size: Optional[int] = None,
) -> list[list[ClassifiedRecord]]:
    """Group records into photo sets.

    Args:
        records: Classified records in input order.
        max_set_size: Maximum records per set.

    Returns:
        List of record groups.
    """
    sets = Normalizer(max_set_size).partition(list(records))
    return [[records[i] for i in s.indices] for s in sets]
