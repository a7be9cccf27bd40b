"""Measurement readings in recognized text.

Blackboard photos carry readings such as an asphalt arrival temperature,
a layer thickness or a compaction ratio. These helpers find and parse them
so the normalizer can tell when a record already had a reading of its own.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

TEMPERATURE_RE = re.compile(r"(\d+\.?\d*)\s*[℃度]")
DIMENSION_RE = re.compile(r"[t=]?\s*(\d+\.?\d*)\s*(mm|cm|m)\b")
DENSITY_RE = re.compile(r"(\d+\.?\d*)\s*%")
QUANTITY_RE = re.compile(r"\d+\.?\d*\s*(kg|g|L|kN|MPa)")

TEMPERATURE_KEYWORDS_RE = re.compile(
    r"(到着温度|敷均し温度|初期締固め|温度測定|温度計|出荷時|舗設温度)", re.IGNORECASE
)

MM_PER_UNIT = {"mm": 1.0, "cm": 10.0, "m": 1000.0}


class MeasurementKind(str, Enum):
    TEMPERATURE = "temperature"
    DIMENSION = "dimension"
    DENSITY = "density"


@dataclass(frozen=True)
class Measurement:
    """One parsed reading."""

    kind: MeasurementKind
    value: float
    unit: str


def contains_measurement(text: str) -> bool:
    """True when text holds a temperature, dimension, ratio or other unit reading."""
    if not text:
        return False
    return any(
        pattern.search(text)
        for pattern in (TEMPERATURE_RE, DIMENSION_RE, DENSITY_RE, QUANTITY_RE)
    )


def extract_measurements(text: str) -> list[Measurement]:
    """All temperature, dimension and density readings in text.

    Readings are grouped by kind (temperatures first, then dimensions,
    then densities), each group in text order.
    """
    if not text:
        return []
    found = [
        Measurement(MeasurementKind.TEMPERATURE, float(m.group(1)), "℃")
        for m in TEMPERATURE_RE.finditer(text)
    ]
    found += [
        Measurement(MeasurementKind.DIMENSION, float(m.group(1)), m.group(2))
        for m in DIMENSION_RE.finditer(text)
    ]
    found += [
        Measurement(MeasurementKind.DENSITY, float(m.group(1)), "%")
        for m in DENSITY_RE.finditer(text)
    ]
    return found


def extract_temperature(text: str) -> Optional[float]:
    """First temperature in degrees Celsius, if any."""
    match = TEMPERATURE_RE.search(text or "")
    return float(match.group(1)) if match else None


def extract_dimension_mm(text: str) -> Optional[float]:
    """First dimension converted to millimetres, if any."""
    match = DIMENSION_RE.search(text or "")
    if not match:
        return None
    return float(match.group(1)) * MM_PER_UNIT[match.group(2)]


def is_temperature_photo(text: str) -> bool:
    """True for text naming a temperature check or holding a temperature."""
    if not text:
        return False
    return bool(TEMPERATURE_KEYWORDS_RE.search(text)) or extract_temperature(text) is not None
