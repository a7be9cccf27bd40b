"""Record-level models: raw recognition output and classified records."""

from collections.abc import Mapping
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .base import FieldKey, MatchStatus, Provenance


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class RawRecord(BaseModel):
    """
    Per-photo output of the external recognition step.

    All recognized values are free-form guesses. The record is immutable
    once produced; later stages derive new records instead of mutating it.
    Both snake_case and the camelCase keys emitted by the recognizer are
    accepted on input.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # File identity
    file_name: str = Field(default="", validation_alias=_alias("file_name", "fileName"))
    file_path: str = Field(default="", validation_alias=_alias("file_path", "filePath"))
    date: str = Field(default="", description="Capture date (EXIF), supplied upstream")

    # Classification guesses
    category: str = Field(
        default="",
        validation_alias=_alias("category", "photo_category", "photoCategory"),
        description="Photo category guess, e.g. quality-control photo",
    )
    work_type: str = Field(default="", validation_alias=_alias("work_type", "workType"))
    variety: str = Field(default="")
    detail: str = Field(default="", validation_alias=_alias("detail", "subphase"))

    # Board / measurement readings
    station: str = Field(default="", description="Station label, e.g. No.10+50")
    measurements: str = Field(default="")
    has_board: bool = Field(default=False, validation_alias=_alias("has_board", "hasBoard"))
    detected_text: str = Field(
        default="", validation_alias=_alias("detected_text", "detectedText")
    )

    # Free text
    description: str = Field(
        default="",
        validation_alias=_alias("description", "scene_description", "sceneDescription"),
    )
    reasoning: str = Field(default="")

    @classmethod
    def coerce(cls, data: Any) -> "RawRecord":
        """Build a record from loosely-typed input without raising.

        Strict validation is tried first. When it fails, every field whose
        value is usable (strings, and a bool-like board flag) is kept and the
        rest fall back to defaults.
        """
        if isinstance(data, RawRecord):
            return data
        if not isinstance(data, Mapping):
            return cls()

        try:
            return cls.model_validate(data)
        except ValidationError:
            pass

        cleaned: dict[str, Any] = {}
        for name, info in cls.model_fields.items():
            choices = info.validation_alias.choices if info.validation_alias else [name]
            for key in choices:
                if key not in data:
                    continue
                value = data[key]
                if name == "has_board":
                    if isinstance(value, str):
                        cleaned[name] = value.strip().lower() in ("true", "1", "yes")
                    elif isinstance(value, (bool, int)):
                        cleaned[name] = bool(value)
                elif isinstance(value, str):
                    cleaned[name] = value
                elif isinstance(value, (int, float)) and not isinstance(value, bool):
                    cleaned[name] = str(value)
                break
        return cls.model_validate(cleaned)


class ClassifiedRecord(RawRecord):
    """
    A RawRecord after master matching.

    `category`, `work_type`, `variety` and `detail` hold the resolved values:
    canonical labels when `provenance` is MASTER, the untouched raw guesses
    when it is RAW. The original guesses are always kept in the `raw_*`
    fields.
    """

    remarks: str = Field(default="", description="Remark key of the matched leaf")

    provenance: Provenance = Field(default=Provenance.RAW)
    match_status: MatchStatus = Field(default=MatchStatus.NO_MASTER)
    matched_patterns: list[str] = Field(default_factory=list)
    match_score: int = Field(default=0, ge=0)

    raw_category: str = Field(default="")
    raw_work_type: str = Field(default="")
    raw_variety: str = Field(default="")
    raw_detail: str = Field(default="")

    @classmethod
    def pass_through(
        cls,
        raw: RawRecord,
        status: MatchStatus = MatchStatus.NO_MASTER,
    ) -> "ClassifiedRecord":
        """Wrap a raw record unchanged with provenance RAW."""
        data = raw.model_dump()
        return cls(
            **data,
            provenance=Provenance.RAW,
            match_status=status,
            raw_category=raw.category,
            raw_work_type=raw.work_type,
            raw_variety=raw.variety,
            raw_detail=raw.detail,
        )

    @property
    def is_matched(self) -> bool:
        """Check if the record was resolved against the master."""
        return self.match_status == MatchStatus.MATCHED

    def field_value(self, key: FieldKey) -> str:
        """Get the display value for an info-panel field."""
        if key == FieldKey.PHOTO_CATEGORY:
            return self.category
        return getattr(self, key.value)
