"""Hierarchy Master Stage - Load and query the construction taxonomy.

The taxonomy is a tree of category → work-type → variety → detail, with an
optional remark level below detail. Pattern sets hang off detail or remark
nodes; a pattern found in recognized text means the photo belongs to that
node's ancestor path.

Three authoring shapes are accepted and normalized into the same tree:
- nested JSON objects with a reserved `matchPatterns` array at terminal nodes
- a flat CSV with seven ordered columns (division, photo category,
  work type, variety, subphase, remark key, search patterns)
- an Excel workbook whose first sheet carries named header columns
  (写真区分, 工種, 種別, 細別 or 作業段階, optional 備考, matchPatterns)
"""

import csv
import io
import json
import logging
import re
import zipfile
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, Optional, Union

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from photoledger.errors import MasterLoadError
from photoledger.models import HierarchyLevel, HierarchyNode, HierarchyPath, MatchEntry
from photoledger.models.hierarchy import LEVEL_ORDER, PATTERN_LEVELS

logger = logging.getLogger(__name__)


PATTERN_KEY = "matchPatterns"
DEFAULT_DIVISION_KEYS = ("直接工事費",)

# Flat form column order
FLAT_COLUMNS = (
    "division",
    "category",
    "work_type",
    "variety",
    "detail",
    "remark",
    "patterns",
)

# Excel header names per flat column; the remark column is optional
XLSX_HEADERS: dict[str, tuple[str, ...]] = {
    "category": ("写真区分",),
    "work_type": ("工種",),
    "variety": ("種別",),
    "detail": ("細別", "作業段階"),
    "remark": ("備考",),
    "patterns": ("matchPatterns", "マッチパターン", "パターン"),
}

PATTERN_SPLIT_RE = re.compile(r"[|,]")

MasterSource = Union[str, Path, Mapping[str, Any]]


class HierarchyMaster:
    """Read-only taxonomy with a flat key index and precomputed match entries.

    Built once; lookups are dictionary hits and matching iterates the
    entry list instead of walking the tree.
    """

    def __init__(self, root: HierarchyNode, source: str = ""):
        if not root.is_root:
            raise ValueError("HierarchyMaster requires a root node")
        self.root = root
        self.source = source
        self._index: dict[str, list[HierarchyPath]] = {}
        self._entries: list[MatchEntry] = []
        self._leaf_paths: list[HierarchyPath] = []
        self._build_index()

    def _build_index(self) -> None:
        for chain, node in self.root.walk():
            if node.level not in PATTERN_LEVELS:
                continue
            path = HierarchyPath(
                category=chain[0],
                work_type=chain[1],
                variety=chain[2],
                detail=chain[3],
                remark=chain[4] if len(chain) > 4 else "",
            )
            if node.patterns:
                self._entries.append(
                    MatchEntry(path=path, patterns=node.patterns, order=len(self._entries))
                )
            if node.patterns or node.is_leaf:
                self._leaf_paths.append(path)
                for key in chain:
                    paths = self._index.setdefault(key, [])
                    if path not in paths:
                        paths.append(path)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def entries(self) -> list[MatchEntry]:
        """Pattern-bearing leaves in traversal order."""
        return list(self._entries)

    @property
    def leaf_paths(self) -> list[HierarchyPath]:
        return list(self._leaf_paths)

    @property
    def is_empty(self) -> bool:
        return not self.root.children

    def lookup_path(self, leaf_key: str) -> Optional[HierarchyPath]:
        """Return the full ancestor chain of a leaf key.

        Leaf keys are remark keys, or detail keys for leaves without a
        remark level. When a key occurs under several branches the first
        one in traversal order wins.
        """
        for path in self._index.get(leaf_key, []):
            if path.leaf_key == leaf_key:
                return path
        return None

    def lookup_paths(self, key: str) -> list[HierarchyPath]:
        """Return every leaf path that passes through a key at any level."""
        return list(self._index.get(key, []))

    def categories(self) -> list[str]:
        return list(self.root.children)

    def work_types(self) -> list[str]:
        """Sorted list of all work types."""
        types = {
            wt for cat in self.root.children.values() for wt in cat.children
        }
        return sorted(types)

    def varieties(self, work_type: str) -> list[str]:
        """Sorted list of varieties under a work type."""
        found = set()
        for cat in self.root.children.values():
            node = cat.children.get(work_type)
            if node:
                found.update(node.children)
        return sorted(found)

    def details(self, work_type: str, variety: str) -> list[str]:
        """Sorted list of details under (work type, variety)."""
        found = set()
        for cat in self.root.children.values():
            node = cat.children.get(work_type)
            if node and variety in node.children:
                found.update(node.children[variety].children)
        return sorted(found)

    def to_hierarchy_dict(self) -> dict[str, Any]:
        """Render the tree back into the nested authoring shape."""

        def render(node: HierarchyNode) -> dict[str, Any]:
            out: dict[str, Any] = {}
            if node.patterns:
                out[PATTERN_KEY] = list(node.patterns)
            for key, child in node.children.items():
                out[key] = render(child)
            return out

        return render(self.root)

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def filter_by_work_types(self, candidates: Iterable[str]) -> "HierarchyMaster":
        """Return a pruned copy restricted to the given work-type branches.

        Categories left without any work type are dropped. The original
        master is not modified.
        """
        wanted = set(candidates)
        root = HierarchyNode(key="")
        for cat_key, cat in self.root.children.items():
            kept = {
                wt_key: wt.copy()
                for wt_key, wt in cat.children.items()
                if wt_key in wanted
            }
            if kept:
                root.children[cat_key] = HierarchyNode(
                    key=cat_key, level=cat.level, children=kept
                )
        return HierarchyMaster(root, source=self.source)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return (
            f"HierarchyMaster(source={self.source!r}, categories={len(self.root.children)}, "
            f"entries={len(self._entries)})"
        )


# ----------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------


def split_patterns(value: Any) -> tuple[str, ...]:
    """Normalize a pattern cell or array into a tuple of unique patterns."""
    if value is None:
        return ()
    if isinstance(value, str):
        parts = PATTERN_SPLIT_RE.split(value)
    elif isinstance(value, Sequence):
        parts = []
        for item in value:
            if not isinstance(item, str):
                raise MasterLoadError(f"Pattern must be a string, got {type(item).__name__}")
            parts.append(item)
    else:
        raise MasterLoadError(f"Patterns must be a list or string, got {type(value).__name__}")

    seen: dict[str, None] = {}
    for part in parts:
        part = part.strip()
        if part:
            seen.setdefault(part, None)
    return tuple(seen)


def _reject_duplicates(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    """json object_pairs_hook that refuses duplicate keys."""
    out: dict[str, Any] = {}
    for key, value in pairs:
        if key in out:
            raise MasterLoadError(f"Duplicate key '{key}' at the same node")
        out[key] = value
    return out


def _add_child(node: HierarchyNode, key: Any, chain: tuple[str, ...]) -> HierarchyNode:
    if not isinstance(key, str) or not key.strip():
        raise MasterLoadError(f"Empty key under {'/'.join(chain) or 'root'}")
    key = key.strip()
    if key in node.children:
        raise MasterLoadError(f"Duplicate key '{key}' under {'/'.join(chain) or 'root'}")
    try:
        level = node.child_level()
    except ValueError:
        raise MasterLoadError(f"Too many levels under {'/'.join(chain)}")
    child = HierarchyNode(key=key, level=level)
    node.children[key] = child
    return child


def _check_levels(root: HierarchyNode) -> None:
    """Every terminal node must sit at detail level or below."""
    for chain, node in root.walk():
        if node.is_leaf and node.level not in PATTERN_LEVELS:
            raise MasterLoadError(
                f"Missing required levels below '{'/'.join(chain)}' "
                f"(stops at {node.level.value})"
            )


def from_nested(
    data: Mapping[str, Any],
    division_keys: Sequence[str] = DEFAULT_DIVISION_KEYS,
    source: str = "",
) -> HierarchyMaster:
    """Build a master from the nested authoring shape.

    A single outer division wrapper (e.g. direct construction cost) is
    unwrapped when present.
    """
    if not isinstance(data, Mapping):
        raise MasterLoadError("Master root must be an object", source)
    if len(data) == 1:
        (only_key,) = data.keys()
        if only_key in division_keys:
            data = data[only_key]
            if not isinstance(data, Mapping):
                raise MasterLoadError(f"Division '{only_key}' must be an object", source)

    root = HierarchyNode(key="")

    def build(node: HierarchyNode, mapping: Mapping[str, Any], chain: tuple[str, ...]) -> None:
        for key, value in mapping.items():
            if key == PATTERN_KEY:
                if node.level not in PATTERN_LEVELS:
                    where = "/".join(chain) or "root"
                    raise MasterLoadError(f"Patterns not allowed at {where}", source)
                node.patterns = split_patterns(value)
                continue
            if not isinstance(value, Mapping):
                raise MasterLoadError(
                    f"Expected an object for '{key}' under {'/'.join(chain) or 'root'}", source
                )
            child = _add_child(node, key, chain)
            build(child, value, chain + (child.key,))

    try:
        build(root, data, ())
        _check_levels(root)
    except MasterLoadError as exc:
        if source and exc.source is None:
            raise MasterLoadError(str(exc), source) from exc
        raise

    return HierarchyMaster(root, source=source)


def from_rows(rows: Iterable[Sequence[str]], source: str = "") -> HierarchyMaster:
    """Build a master from the flat tabular shape.

    The first row is a header and is skipped. Blank rows are ignored.
    """
    root = HierarchyNode(key="")
    terminal_paths: set[tuple[str, ...]] = set()

    iterator = iter(rows)
    next(iterator, None)  # header

    for line_no, row in enumerate(iterator, start=2):
        cells = [c.strip() if isinstance(c, str) else "" for c in row]
        if not any(cells):
            continue
        if len(cells) < len(FLAT_COLUMNS):
            raise MasterLoadError(
                f"Row {line_no}: expected {len(FLAT_COLUMNS)} columns, got {len(cells)}", source
            )

        _division, category, work_type, variety, detail, remark, patterns = cells[:7]
        levels = (category, work_type, variety, detail)
        missing = [lvl.value for lvl, val in zip(LEVEL_ORDER, levels) if not val]
        if missing:
            raise MasterLoadError(
                f"Row {line_no}: missing required levels {', '.join(missing)}", source
            )

        node = root
        chain: tuple[str, ...] = ()
        for key in levels:
            node = node.children.get(key) or _add_child(node, key, chain)
            chain += (key,)

        if remark:
            if remark in node.children:
                raise MasterLoadError(
                    f"Row {line_no}: duplicate remark '{remark}' under {'/'.join(chain)}", source
                )
            node = _add_child(node, remark, chain)
            chain += (remark,)
        elif chain in terminal_paths:
            raise MasterLoadError(
                f"Row {line_no}: duplicate entry for {'/'.join(chain)}", source
            )
        terminal_paths.add(chain)

        try:
            node.patterns = split_patterns(patterns)
        except MasterLoadError as exc:
            raise MasterLoadError(f"Row {line_no}: {exc}", source) from exc

    return HierarchyMaster(root, source=source)


def _parse_json_text(text: str, division_keys: Sequence[str], source: str) -> HierarchyMaster:
    try:
        data = json.loads(text, object_pairs_hook=_reject_duplicates)
    except json.JSONDecodeError as exc:
        raise MasterLoadError(f"Invalid JSON: {exc}", source) from exc
    except MasterLoadError as exc:
        raise MasterLoadError(str(exc), source) from exc
    return from_nested(data, division_keys=division_keys, source=source)


def _parse_csv_text(text: str, source: str) -> HierarchyMaster:
    try:
        rows = list(csv.reader(io.StringIO(text)))
    except csv.Error as exc:
        raise MasterLoadError(f"Invalid CSV: {exc}", source) from exc
    if not rows:
        raise MasterLoadError("Empty master file", source)
    return from_rows(rows, source=source)


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_xlsx_file(path: Path) -> HierarchyMaster:
    """Read the first sheet of a workbook into the flat tabular shape.

    Columns are located by header name. Rows without a category or without
    patterns are skipped.
    """
    source = str(path)
    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except (OSError, KeyError, zipfile.BadZipFile, InvalidFileException) as exc:
        raise MasterLoadError(f"Cannot read workbook: {exc}", source) from exc

    try:
        rows = workbook.worksheets[0].iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            raise MasterLoadError("Workbook has no header row", source)
        names = [_cell_text(v) for v in header]

        columns: dict[str, Optional[int]] = {}
        for column, aliases in XLSX_HEADERS.items():
            index = next((names.index(a) for a in aliases if a in names), None)
            if index is None and column != "remark":
                raise MasterLoadError(
                    f"Missing column {' / '.join(aliases)} in header", source
                )
            columns[column] = index

        flat_rows: list[list[str]] = [list(FLAT_COLUMNS)]
        skipped = 0
        for row in rows:
            values = [
                _cell_text(row[i]) if i is not None and i < len(row) else ""
                for i in columns.values()
            ]
            cells = dict(zip(columns, values))
            if not cells["category"] or not split_patterns(cells["patterns"]):
                if any(values):
                    skipped += 1
                continue
            flat_rows.append(["", *values])
    finally:
        workbook.close()

    if skipped:
        logger.debug("Skipped %d workbook rows without category or patterns", skipped)
    return from_rows(flat_rows, source=source)


def load_master(
    source: MasterSource,
    division_keys: Optional[Sequence[str]] = None,
) -> HierarchyMaster:
    """Load a hierarchy master from a file, decoded JSON, or raw text.

    Args:
        source: Path to a `.json`/`.csv`/`.xlsx` file, a decoded nested mapping,
            or the text of either format.
        division_keys: Outer wrapper keys to unwrap in the nested shape.

    Returns:
        The loaded HierarchyMaster.

    Raises:
        MasterLoadError: If the source cannot be read or is malformed.
    """
    division_keys = tuple(division_keys or DEFAULT_DIVISION_KEYS)

    if isinstance(source, Mapping):
        master = from_nested(source, division_keys=division_keys, source="<mapping>")
    elif isinstance(source, Path) or (
        isinstance(source, str) and "\n" not in source and not source.lstrip().startswith("{")
    ):
        master = _load_file(Path(source), division_keys)
    elif isinstance(source, str):
        if source.lstrip().startswith("{"):
            master = _parse_json_text(source, division_keys, "<text>")
        else:
            master = _parse_csv_text(source, "<text>")
    else:
        raise MasterLoadError(f"Unsupported master source type: {type(source).__name__}")

    if not master.entries:
        logger.warning("Master %s has no match patterns", master.source)
    logger.debug("Loaded %r", master)
    return master


def _load_file(path: Path, division_keys: Sequence[str]) -> HierarchyMaster:
    if not path.exists():
        raise MasterLoadError("Master file not found", str(path))

    suffix = path.suffix.lower()
    if suffix not in (".json", ".csv", ".xlsx"):
        raise MasterLoadError(
            f"Unsupported master format '{suffix}' (json, csv, xlsx only)", str(path)
        )
    if suffix == ".xlsx":
        return _parse_xlsx_file(path)

    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise MasterLoadError(f"Cannot read master: {exc}", str(path)) from exc

    if suffix == ".json":
        return _parse_json_text(text, division_keys, str(path))
    return _parse_csv_text(text, str(path))
