"""Base models and common types for the Photo Ledger pipeline."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Provenance(str, Enum):
    """Where the classification values of a record came from."""

    MASTER = "master"  # resolved by master match
    RAW = "raw"  # passed through from raw recognition


class MatchStatus(str, Enum):
    """Outcome of matching a record against the hierarchy master."""

    MATCHED = "matched"
    UNMATCHED = "unmatched"
    NO_MASTER = "no_master"


class HierarchyLevel(str, Enum):
    """Levels of the construction taxonomy, root to leaf."""

    CATEGORY = "category"
    WORK_TYPE = "work_type"
    VARIETY = "variety"
    DETAIL = "detail"
    REMARK = "remark"


class FieldKey(str, Enum):
    """Closed set of fields rendered in a cell's info panel."""

    DATE = "date"
    PHOTO_CATEGORY = "photo_category"
    WORK_TYPE = "work_type"
    VARIETY = "variety"
    DETAIL = "detail"
    STATION = "station"
    REMARKS = "remarks"
    MEASUREMENTS = "measurements"


class Rect(BaseModel):
    """Axis-aligned rectangle in millimetres, origin at the page top-left."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(..., description="Left edge X coordinate (mm)")
    y: float = Field(..., description="Top edge Y coordinate (mm)")
    width: float = Field(..., ge=0.0, description="Width (mm)")
    height: float = Field(..., ge=0.0, description="Height (mm)")

    @property
    def x2(self) -> float:
        """Right edge X coordinate."""
        return self.x + self.width

    @property
    def y2(self) -> float:
        """Bottom edge Y coordinate."""
        return self.y + self.height

    def contains(self, other: "Rect", tolerance: float = 1e-6) -> bool:
        """Check whether another rectangle lies entirely inside this one."""
        return (
            other.x >= self.x - tolerance
            and other.y >= self.y - tolerance
            and other.x2 <= self.x2 + tolerance
            and other.y2 <= self.y2 + tolerance
        )

    def to_points(self) -> "Rect":
        """Convert to PDF points (1mm = 72/25.4 pt)."""
        factor = 72.0 / 25.4
        return Rect(
            x=self.x * factor,
            y=self.y * factor,
            width=self.width * factor,
            height=self.height * factor,
        )
