"""Alias Stage - Canonicalize spelling variants in pass-through records.

Records that could not be matched against the master keep the recognizer's
free-text guesses, which drift between spellings ("品質" vs "品質管理写真").
Alias tables map such variants onto canonical labels. Master-resolved
records are already canonical and are left alone.
"""

import logging
from typing import Iterable, Optional

from pydantic import BaseModel, Field, ValidationError

from photoledger.errors import PhotoLedgerError
from photoledger.models import ClassifiedRecord, Provenance

logger = logging.getLogger(__name__)


class AliasConfig(BaseModel):
    """Variant → canonical label maps per classification field."""

    photo_category: dict[str, str] = Field(default_factory=dict)
    work_type: dict[str, str] = Field(default_factory=dict)
    variety: dict[str, str] = Field(default_factory=dict)
    detail: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_preset(cls, name: str) -> Optional["AliasConfig"]:
        """Get a built-in preset by name (english or japanese)."""
        builder = PRESETS.get(name.lower())
        return builder() if builder else None

    @classmethod
    def from_json(cls, text: str) -> "AliasConfig":
        try:
            return cls.model_validate_json(text)
        except ValidationError as exc:
            raise PhotoLedgerError(f"Invalid alias JSON: {exc}") from exc

    def merge(self, other: "AliasConfig") -> None:
        """Merge another config into this one; the other wins on conflicts."""
        self.photo_category.update(other.photo_category)
        self.work_type.update(other.work_type)
        self.variety.update(other.variety)
        self.detail.update(other.detail)

    @staticmethod
    def transform(value: str, aliases: dict[str, str]) -> str:
        """Map a value through an alias table.

        Exact matches win; otherwise the longest alias contained in the
        value is used.
        """
        if not value:
            return value
        if value in aliases:
            return aliases[value]

        best: Optional[str] = None
        for pattern in aliases:
            if pattern in value and (best is None or len(pattern) > len(best)):
                best = pattern
        return aliases[best] if best is not None else value

    def apply(self, record: ClassifiedRecord) -> ClassifiedRecord:
        """Canonicalize a pass-through record."""
        if record.provenance != Provenance.RAW:
            return record
        return record.model_copy(
            update={
                "category": self.transform(record.category, self.photo_category),
                "work_type": self.transform(record.work_type, self.work_type),
                "variety": self.transform(record.variety, self.variety),
                "detail": self.transform(record.detail, self.detail),
            }
        )


def _common_categories() -> dict[str, str]:
    return {
        "品質": "品質管理写真",
        "品質管理": "品質管理写真",
        "出来形": "出来形管理写真",
        "出来形管理": "出来形管理写真",
        "施工状況": "施工状況写真",
    }


def pavement_preset() -> AliasConfig:
    """Aliases for pavement works."""
    categories = _common_categories()
    categories.update({
        "施工中": "施工状況写真",
        "安全": "安全管理写真",
        "安全管理": "安全管理写真",
        "材料": "使用材料写真",
        "使用材料": "使用材料写真",
    })
    return AliasConfig(
        photo_category=categories,
        work_type={"舗装": "舗装工", "As": "舗装工", "アスファルト": "舗装工"},
        variety={
            "打換え": "舗装打換え工",
            "打換": "舗装打換え工",
            "オーバーレイ": "舗装オーバーレイ工",
        },
        detail={
            "表層": "表層工",
            "基層": "基層工",
            "上層路盤": "上層路盤工",
            "下層路盤": "下層路盤工",
        },
    )


def marking_preset() -> AliasConfig:
    """Aliases for road-marking works."""
    return AliasConfig(
        photo_category=_common_categories(),
        work_type={"区画線": "区画線工", "ライン": "区画線工", "白線": "区画線工"},
        variety={"溶融式": "溶融式区画線", "ペイント": "ペイント式区画線"},
    )


def general_preset() -> AliasConfig:
    """Photo-category aliases only."""
    return AliasConfig(
        photo_category={
            "品質": "品質管理写真",
            "出来形": "出来形管理写真",
            "施工": "施工状況写真",
            "安全": "安全管理写真",
            "材料": "使用材料写真",
            "着工": "着工前写真",
            "完成": "完成写真",
        }
    )


PRESETS = {
    "pavement": pavement_preset,
    "舗装": pavement_preset,
    "marking": marking_preset,
    "区画線": marking_preset,
    "general": general_preset,
    "汎用": general_preset,
}


def apply_aliases(
    records: Iterable[ClassifiedRecord],
    preset: Optional[str] = None,
    alias_json: Optional[str] = None,
) -> list[ClassifiedRecord]:
    """Apply a preset and/or custom alias JSON to pass-through records.

    Custom aliases override the preset. An unknown preset name is logged
    and ignored.
    """
    config = AliasConfig()
    if preset:
        preset_config = AliasConfig.from_preset(preset)
        if preset_config is None:
            logger.warning("Unknown alias preset '%s' (pavement/marking/general)", preset)
        else:
            config.merge(preset_config)
    if alias_json:
        config.merge(AliasConfig.from_json(alias_json))

    return [config.apply(r) for r in records]
