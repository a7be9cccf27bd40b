"""Pipeline stages for Photo Ledger processing.

Deterministic Stages (run after external photo recognition):
1. stage_master - Load the hierarchy master (nested JSON, flat CSV or Excel)
2. stage_detect - Work-type detection to narrow the master
3. stage_classify - Resolve raw guesses against the master
4. stage_alias - Canonicalize spelling variants of unmatched records
5. stage_normalize - Propagate board readings within photo sets
   (measurements - parse temperature, dimension and density readings)
6. stage_layout - Placement plan for the PDF / spreadsheet renderers

Each stage is independent and can be run separately or chained through
the CLI.
"""

from .measurements import (
    Measurement,
    contains_measurement,
    extract_dimension_mm,
    extract_measurements,
    extract_temperature,
    is_temperature_photo,
)
from .stage_alias import AliasConfig, apply_aliases
from .stage_classify import ClassificationReport, Classifier, classify, classify_batch, classify_report
from .stage_detect import WorkTypeDetector, detect_work_types, select_master
from .stage_layout import LayoutEngine, plan_layout
from .stage_master import HierarchyMaster, load_master
from .stage_normalize import (
    NormalizationResult,
    Normalizer,
    PhotoSet,
    detect_station_pattern,
    find_photo_sets,
    normalize,
    normalize_station_format,
)
from .text_fit import GlyphMetrics, truncate_to_width, wrap_to_width

__all__ = [
    # Master
    "HierarchyMaster",
    "load_master",
    # Work-type detection
    "WorkTypeDetector",
    "detect_work_types",
    "select_master",
    # Classification
    "ClassificationReport",
    "Classifier",
    "classify",
    "classify_batch",
    "classify_report",
    # Aliases
    "AliasConfig",
    "apply_aliases",
    # Normalization
    "NormalizationResult",
    "Normalizer",
    "PhotoSet",
    "detect_station_pattern",
    "find_photo_sets",
    "normalize",
    "normalize_station_format",
    # Measurements
    "Measurement",
    "contains_measurement",
    "extract_dimension_mm",
    "extract_measurements",
    "extract_temperature",
    "is_temperature_photo",
    # Layout
    "LayoutEngine",
    "plan_layout",
    "GlyphMetrics",
    "truncate_to_width",
    "wrap_to_width",
]
