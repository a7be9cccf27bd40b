"""Layout models: configuration and the placement plan handed to renderers."""

from typing import Iterator, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .base import FieldKey, Rect
from .record import ClassifiedRecord


MM_PER_PT = 25.4 / 72.0

# A4 portrait
A4_WIDTH_MM = 210.0
A4_HEIGHT_MM = 297.0


def mm_to_pt(mm: float) -> float:
    """Convert millimetres to PDF points."""
    return mm / MM_PER_PT


def pt_to_mm(pt: float) -> float:
    """Convert PDF points to millimetres."""
    return pt * MM_PER_PT


class FieldDef(BaseModel):
    """One row group of the info panel."""

    model_config = ConfigDict(frozen=True)

    key: FieldKey
    label: str
    row_span: int = Field(default=1, ge=1, description="Vertical row units reserved")


DEFAULT_FIELDS: tuple[FieldDef, ...] = (
    FieldDef(key=FieldKey.DATE, label="日時"),
    FieldDef(key=FieldKey.PHOTO_CATEGORY, label="区分"),
    FieldDef(key=FieldKey.WORK_TYPE, label="工種"),
    FieldDef(key=FieldKey.VARIETY, label="種別"),
    FieldDef(key=FieldKey.DETAIL, label="作業段階"),
    FieldDef(key=FieldKey.STATION, label="測点"),
    FieldDef(key=FieldKey.REMARKS, label="備考"),
    FieldDef(key=FieldKey.MEASUREMENTS, label="測定値", row_span=3),
)

# Reduced field sets per photos-per-page; densities not listed use every field.
DEFAULT_FIELD_SUBSETS: dict[int, list[FieldKey]] = {
    2: [FieldKey.STATION, FieldKey.REMARKS],
}


class LayoutConfig(BaseModel):
    """
    Page geometry and field definitions shared by every renderer.

    All lengths are millimetres except font size (points). The model is
    plain data so the PDF and spreadsheet renderers can be handed the same
    serialized configuration.
    """

    model_config = ConfigDict(frozen=True)

    page_width_mm: float = Field(default=A4_WIDTH_MM, gt=0)
    page_height_mm: float = Field(default=A4_HEIGHT_MM, gt=0)
    margin_mm: float = Field(default=10.0, ge=0)
    gap_mm: float = Field(default=10.0, ge=0, description="Vertical gap between photos")
    photo_ratio: float = Field(default=0.65, gt=0, lt=1, description="Photo share of usable width")
    photos_per_page: Literal[2, 3] = 3

    fields: list[FieldDef] = Field(default_factory=lambda: list(DEFAULT_FIELDS))
    field_subsets: dict[int, list[FieldKey]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_FIELD_SUBSETS.items()}
    )

    # Text
    font_size_pt: float = Field(default=9.0, gt=0)
    line_height: float = Field(default=1.5, ge=1.0, description="Row unit = font size x this")
    label_ratio: float = Field(default=0.25, gt=0, lt=1, description="Label column share of panel")
    panel_padding_mm: float = Field(default=1.5, ge=0)
    ellipsis: str = Field(default="…", min_length=1)
    font_path: Optional[str] = Field(None, description="TrueType/OpenType font used for metrics")

    @field_validator("fields")
    @classmethod
    def _unique_keys(cls, fields: list[FieldDef]) -> list[FieldDef]:
        keys = [f.key for f in fields]
        if len(keys) != len(set(keys)):
            raise ValueError("Field keys must be unique")
        if not fields:
            raise ValueError("At least one field is required")
        return fields

    @model_validator(mode="after")
    def _check_geometry(self) -> "LayoutConfig":
        if self.usable_width_mm <= 0 or self.usable_height_mm <= 0:
            raise ValueError("Margins leave no usable page area")
        if self.photo_height_mm <= 0:
            raise ValueError("Gap too large for photos-per-page")
        return self

    @classmethod
    def three_up(cls, **overrides) -> "LayoutConfig":
        """A4 layout with three photos per page."""
        return cls(photos_per_page=3, **overrides)

    @classmethod
    def two_up(cls, **overrides) -> "LayoutConfig":
        """A4 layout with two photos per page."""
        return cls(photos_per_page=2, **overrides)

    @property
    def usable_width_mm(self) -> float:
        return self.page_width_mm - self.margin_mm * 2

    @property
    def usable_height_mm(self) -> float:
        return self.page_height_mm - self.margin_mm * 2

    @property
    def cell_height_mm(self) -> float:
        """Vertical extent of one cell, equal to the photo height."""
        return self.photo_height_mm

    @property
    def cell_pitch_mm(self) -> float:
        """Distance between the tops of consecutive cells."""
        return self.photo_height_mm + self.gap_mm

    @property
    def photo_width_mm(self) -> float:
        return self.usable_width_mm * self.photo_ratio

    @property
    def info_width_mm(self) -> float:
        return self.usable_width_mm * (1 - self.photo_ratio)

    @property
    def photo_height_mm(self) -> float:
        """Fixed photo height for this density (gaps between photos excluded)."""
        n = self.photos_per_page
        return (self.usable_height_mm - self.gap_mm * (n - 1)) / n

    @property
    def row_unit_mm(self) -> float:
        """Height of one text row in the info panel."""
        return pt_to_mm(self.font_size_pt * self.line_height)

    def active_fields(self) -> list[FieldDef]:
        """Fields rendered at this density, in FieldDef order."""
        subset = self.field_subsets.get(self.photos_per_page)
        if subset is None:
            return list(self.fields)
        wanted = set(subset)
        return [f for f in self.fields if f.key in wanted]


class TextLine(BaseModel):
    """A single line of text positioned on the page."""

    text: str
    x: float
    y: float = Field(..., description="Top of the line box (mm)")
    width: float = Field(..., ge=0.0, description="Measured text width (mm)")


class FieldPlacement(BaseModel):
    """Position of one field's label and value lines inside the info panel."""

    key: FieldKey
    label: str
    row_span: int = Field(..., ge=1)
    label_rect: Rect
    value_rect: Rect
    lines: list[TextLine] = Field(default_factory=list)
    truncated: bool = Field(default=False, description="Value was cut and ellipsized")
    overflow: bool = Field(default=False, description="Rows fell outside the panel")


class Cell(BaseModel):
    """One photo slot on a page."""

    slot: int = Field(..., ge=0, description="0-indexed position on the page")
    index: int = Field(..., ge=0, description="Position of the record in the input")
    record: ClassifiedRecord
    cell_rect: Rect
    photo_rect: Rect
    info_rect: Rect
    fields: list[FieldPlacement] = Field(default_factory=list)
    caption: Optional[TextLine] = Field(None, description="File name under the fields")


class Page(BaseModel):
    """A single ledger page."""

    page_number: int = Field(..., ge=1, description="1-indexed page number")
    cells: list[Cell] = Field(default_factory=list)


class PlacementPlan(BaseModel):
    """Complete geometric instruction set consumed by the renderers."""

    config: LayoutConfig
    field_keys: list[FieldKey] = Field(default_factory=list)
    pages: list[Page] = Field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def cell_count(self) -> int:
        return sum(len(p.cells) for p in self.pages)

    def iter_cells(self) -> Iterator[Cell]:
        """Iterate over all cells in page order."""
        for page in self.pages:
            yield from page.cells
