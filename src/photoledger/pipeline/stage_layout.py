"""Layout Stage - Compute the placement plan for the photo ledger.

Paginates classified records into fixed-size cells and positions every
photo, info panel row and caption in page millimetres. The plan is the
single source of truth for both renderers (PDF and spreadsheet), so they
cannot drift apart in geometry or truncation.

Cell anatomy (one row of the page):
- photo box on the left, fixed height per density
- info panel on the right with label / value columns
- file name caption at the bottom of the info panel

No rendering happens here; the stage is a pure function of its inputs.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from photoledger.models import (
    Cell,
    ClassifiedRecord,
    FieldDef,
    FieldPlacement,
    LayoutConfig,
    Page,
    PlacementPlan,
    Rect,
    TextLine,
)

from .text_fit import GlyphMetrics, TextMetrics, truncate_to_width, wrap_to_width

logger = logging.getLogger(__name__)


# Shown for fields without a value
EMPTY_VALUE = "-"


def _as_record(item: Any) -> ClassifiedRecord:
    if isinstance(item, ClassifiedRecord):
        return item
    if isinstance(item, Mapping):
        return ClassifiedRecord.model_validate(item)
    raise TypeError(f"Cannot lay out {type(item).__name__}")


class LayoutEngine:
    """Places records onto ledger pages.

    Positions derive only from the configuration and the record's slot, so
    identical inputs always produce an identical plan.
    """

    def __init__(
        self,
        config: Optional[LayoutConfig] = None,
        metrics: Optional[TextMetrics] = None,
    ):
        """Initialize the layout engine.

        Args:
            config: Page geometry and fields. Defaults to A4 three-up.
            metrics: Width measurer. Defaults to GlyphMetrics for the
                configured font and size.
        """
        self.config = config or LayoutConfig()
        self.metrics = metrics or GlyphMetrics(self.config.font_path, self.config.font_size_pt)
        self.fields = self.config.active_fields()

    def plan(self, records: Iterable[Any]) -> PlacementPlan:
        """Build the placement plan for records in input order.

        Args:
            records: ClassifiedRecords (or their JSON mappings).

        Returns:
            PlacementPlan with ceil(n / photos_per_page) pages.
        """
        records = [_as_record(r) for r in records]
        per_page = self.config.photos_per_page

        pages: list[Page] = []
        for start in range(0, len(records), per_page):
            page = Page(page_number=len(pages) + 1)
            for slot, record in enumerate(records[start:start + per_page]):
                page.cells.append(self.place_cell(record, slot, start + slot))
            pages.append(page)

        plan = PlacementPlan(
            config=self.config,
            field_keys=[f.key for f in self.fields],
            pages=pages,
        )

        overflowing = sum(
            1 for cell in plan.iter_cells() if any(f.overflow for f in cell.fields)
        )
        if overflowing:
            logger.info("%d cells overflow their info panel", overflowing)
        logger.debug(
            "Planned %d records on %d pages (%d-up)",
            len(records),
            plan.page_count,
            per_page,
        )
        return plan

    def place_cell(self, record: ClassifiedRecord, slot: int, index: int) -> Cell:
        """Position one record in the given page slot."""
        cfg = self.config
        left = cfg.margin_mm
        top = cfg.margin_mm + slot * cfg.cell_pitch_mm

        cell_rect = Rect(x=left, y=top, width=cfg.usable_width_mm, height=cfg.cell_height_mm)
        photo_rect = Rect(x=left, y=top, width=cfg.photo_width_mm, height=cfg.photo_height_mm)
        info_rect = Rect(
            x=left + cfg.photo_width_mm,
            y=top,
            width=cfg.info_width_mm,
            height=cfg.photo_height_mm,
        )

        caption = self._place_caption(record.file_name, info_rect)
        limit = caption.y if caption is not None else info_rect.y2 - cfg.panel_padding_mm
        fields = self._place_fields(record, info_rect, limit)

        return Cell(
            slot=slot,
            index=index,
            record=record,
            cell_rect=cell_rect,
            photo_rect=photo_rect,
            info_rect=info_rect,
            fields=fields,
            caption=caption,
        )

    def _inner_width(self, info_rect: Rect) -> float:
        return max(0.0, info_rect.width - self.config.panel_padding_mm * 2)

    def _place_caption(self, file_name: str, info_rect: Rect) -> Optional[TextLine]:
        if not file_name:
            return None
        cfg = self.config
        width = self._inner_width(info_rect)
        text, _ = truncate_to_width(file_name, width, self.metrics, cfg.ellipsis)
        return TextLine(
            text=text,
            x=info_rect.x + cfg.panel_padding_mm,
            y=info_rect.y2 - cfg.panel_padding_mm - cfg.row_unit_mm,
            width=self.metrics.width_mm(text),
        )

    def _place_fields(
        self,
        record: ClassifiedRecord,
        info_rect: Rect,
        limit: float,
    ) -> list[FieldPlacement]:
        """Stack fields top-down, dropping rows that fall below limit."""
        cfg = self.config
        unit = cfg.row_unit_mm
        inner_width = self._inner_width(info_rect)
        label_width = inner_width * cfg.label_ratio
        value_width = inner_width - label_width
        label_x = info_rect.x + cfg.panel_padding_mm
        value_x = label_x + label_width

        placements = []
        y = info_rect.y + cfg.panel_padding_mm
        for field in self.fields:
            placements.append(
                self._place_field(record, field, label_x, value_x, label_width, value_width, y, limit)
            )
            y += field.row_span * unit
        return placements

    def _place_field(
        self,
        record: ClassifiedRecord,
        field: FieldDef,
        label_x: float,
        value_x: float,
        label_width: float,
        value_width: float,
        y: float,
        limit: float,
    ) -> FieldPlacement:
        cfg = self.config
        unit = cfg.row_unit_mm

        # Rows of this field that still fit above the limit
        room = max(0.0, limit - y)
        visible_rows = min(field.row_span, math.floor(room / unit + 1e-9))
        top = min(y, limit)
        height = visible_rows * unit

        value = record.field_value(field.key) or EMPTY_VALUE
        lines, truncated = wrap_to_width(value, value_width, visible_rows, self.metrics, cfg.ellipsis)

        return FieldPlacement(
            key=field.key,
            label=field.label,
            row_span=field.row_span,
            label_rect=Rect(x=label_x, y=top, width=label_width, height=height),
            value_rect=Rect(x=value_x, y=top, width=value_width, height=height),
            lines=[
                TextLine(
                    text=text,
                    x=value_x,
                    y=y + row * unit,
                    width=self.metrics.width_mm(text),
                )
                for row, text in enumerate(lines)
            ],
            truncated=truncated,
            overflow=visible_rows < field.row_span,
        )


def plan_layout(
    records: Iterable[Any],
    config: Optional[LayoutConfig] = None,
    metrics: Optional[TextMetrics] = None,
) -> PlacementPlan:
    """Compute the placement plan for a batch of classified records.

    Args:
        records: ClassifiedRecords in ledger order.
        config: Layout configuration (A4 three-up by default).
        metrics: Optional width measurer, GlyphMetrics by default.

    Returns:
        PlacementPlan consumed by the renderers.
    """
    return LayoutEngine(config, metrics).plan(records)
