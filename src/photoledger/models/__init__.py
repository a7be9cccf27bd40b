"""Data models for the Photo Ledger pipeline.

This module defines the Pydantic models that flow between pipeline stages.
All record and layout models support JSON serialization so the external
recognition step and the two renderers can exchange them as plain data.

Key Design Principles:
1. Raw records are immutable; stages derive new records
2. Provenance preservation: every record says whether its labels came
   from the master or from raw recognition
3. Explicit values: masters and layout configs are passed into every call,
   never held as process-wide state

Model Hierarchy:
- RawRecord → ClassifiedRecord
- HierarchyNode tree → HierarchyPath / MatchEntry
- LayoutConfig + ClassifiedRecords → PlacementPlan → Pages → Cells
"""

from .base import (
    FieldKey,
    HierarchyLevel,
    MatchStatus,
    Provenance,
    Rect,
)
from .hierarchy import (
    HierarchyNode,
    HierarchyPath,
    MatchEntry,
)
from .layout import (
    DEFAULT_FIELDS,
    Cell,
    FieldDef,
    FieldPlacement,
    LayoutConfig,
    Page,
    PlacementPlan,
    TextLine,
    mm_to_pt,
    pt_to_mm,
)
from .record import (
    ClassifiedRecord,
    RawRecord,
)

__all__ = [
    # Base types
    "FieldKey",
    "HierarchyLevel",
    "MatchStatus",
    "Provenance",
    "Rect",
    # Records
    "RawRecord",
    "ClassifiedRecord",
    # Hierarchy
    "HierarchyNode",
    "HierarchyPath",
    "MatchEntry",
    # Layout
    "DEFAULT_FIELDS",
    "Cell",
    "FieldDef",
    "FieldPlacement",
    "LayoutConfig",
    "Page",
    "PlacementPlan",
    "TextLine",
    "mm_to_pt",
    "pt_to_mm",
]
