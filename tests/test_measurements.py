"""Tests for measurement reading helpers."""

import pytest

from photoledger.pipeline.measurements import (
    Measurement,
    MeasurementKind,
    contains_measurement,
    extract_dimension_mm,
    extract_measurements,
    extract_temperature,
    is_temperature_photo,
)


class TestContainsMeasurement:
    """Tests for reading detection."""

    @pytest.mark.parametrize(
        "text",
        ["出荷時156℃", "到着温度 160.4度", "t=50mm", "厚さ 5cm", "締固め度 98.5%", "荷重 25kN"],
    )
    def test_readings_detected(self, text):
        """Temperatures, dimensions, ratios and other units count as readings."""
        assert contains_measurement(text)

    @pytest.mark.parametrize("text", ["", "舗設状況", "No.10+50"])
    def test_no_reading(self, text):
        """Station labels and plain descriptions are not readings."""
        assert not contains_measurement(text)


class TestExtract:
    """Tests for value parsing."""

    def test_temperature(self):
        """The first temperature is returned in degrees."""
        assert extract_temperature("出荷時156℃") == pytest.approx(156.0)
        assert extract_temperature("温度 160.4度") == pytest.approx(160.4)
        assert extract_temperature("測定なし") is None

    def test_dimension_in_mm(self):
        """Dimensions are converted to millimetres."""
        assert extract_dimension_mm("t=50mm") == pytest.approx(50.0)
        assert extract_dimension_mm("厚さ 5cm") == pytest.approx(50.0)
        assert extract_dimension_mm("幅 2.5m") == pytest.approx(2500.0)
        assert extract_dimension_mm("舗設状況") is None

    def test_all_readings(self):
        """Every reading is returned with its kind and unit."""
        readings = extract_measurements("出荷時156℃、t=50mm 締固め度 98.5%")

        assert readings == [
            Measurement(MeasurementKind.TEMPERATURE, 156.0, "℃"),
            Measurement(MeasurementKind.DIMENSION, 50.0, "mm"),
            Measurement(MeasurementKind.DENSITY, 98.5, "%"),
        ]

    def test_empty_text(self):
        """Empty text has no readings."""
        assert extract_measurements("") == []


class TestTemperaturePhoto:
    """Tests for temperature photo detection."""

    @pytest.mark.parametrize("text", ["到着温度", "敷均し温度測定", "出荷時 156℃"])
    def test_temperature_photos(self, text):
        """Keywords or a temperature reading mark a temperature photo."""
        assert is_temperature_photo(text)

    def test_other_photo(self):
        """Other photos are not temperature photos."""
        assert not is_temperature_photo("舗設状況")
