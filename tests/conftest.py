"""Pytest configuration and fixtures."""

import json

import pytest

from photoledger.models import ClassifiedRecord
from photoledger.pipeline.stage_master import load_master


SAMPLE_MASTER = {
    "直接工事費": {
        "品質管理写真": {
            "舗装工": {
                "舗装打換え工": {
                    "表層工": {
                        "到着温度": {"matchPatterns": ["到着温度", "温度測定"]},
                        "敷均し温度": {"matchPatterns": ["敷均し温度"]},
                    },
                    "上層路盤工": {"matchPatterns": ["路盤", "締固め度"]},
                }
            }
        },
        "出来形管理写真": {
            "区画線工": {
                "区画線工": {
                    "溶融式区画線": {"matchPatterns": ["区画線", "溶融式"]},
                }
            }
        },
    }
}

SAMPLE_MASTER_CSV = """\
division,photo category,work type,variety,subphase,remark,patterns
直接工事費,品質管理写真,舗装工,舗装打換え工,表層工,到着温度,到着温度|温度測定
直接工事費,品質管理写真,舗装工,舗装打換え工,表層工,敷均し温度,敷均し温度
直接工事費,品質管理写真,舗装工,舗装打換え工,上層路盤工,,路盤|締固め度
直接工事費,出来形管理写真,区画線工,区画線工,溶融式区画線,,区画線|溶融式
"""


class FixedMetrics:
    """Width measurer with a constant advance per character."""

    def __init__(self, char_width_mm: float = 2.0):
        self.char_width_mm = char_width_mm

    def width_mm(self, text: str) -> float:
        return len(text) * self.char_width_mm


@pytest.fixture
def sample_master_data():
    """Nested master as decoded JSON."""
    return json.loads(json.dumps(SAMPLE_MASTER))


@pytest.fixture
def sample_master_csv():
    """Flat master equivalent to sample_master_data."""
    return SAMPLE_MASTER_CSV


@pytest.fixture
def master(sample_master_data):
    """Loaded sample master."""
    return load_master(sample_master_data)


@pytest.fixture
def master_json_path(tmp_path):
    """Sample master written to a .json file."""
    path = tmp_path / "master.json"
    path.write_text(json.dumps(SAMPLE_MASTER, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def master_csv_path(tmp_path):
    """Sample master written to a .csv file."""
    path = tmp_path / "master.csv"
    path.write_text(SAMPLE_MASTER_CSV, encoding="utf-8")
    return path


@pytest.fixture
def raw_records():
    """Recognizer output in its camelCase JSON shape."""
    return [
        {
            "fileName": "IMG_0001.jpg",
            "photoCategory": "品質管理",
            "workType": "舗装",
            "variety": "打換え",
            "station": "No.10+50",
            "hasBoard": True,
            "detectedText": "到着温度 158℃",
            "measurements": "158℃",
            "sceneDescription": "合材の到着温度を測定",
        },
        {
            "fileName": "IMG_0002.jpg",
            "photoCategory": "出来形",
            "workType": "区画線",
            "station": "No.3",
            "detectedText": "溶融式 区画線 幅 15cm",
            "sceneDescription": "区画線の幅を計測",
        },
        {
            "fileName": "IMG_0003.jpg",
            "photoCategory": "施工状況",
            "detectedText": "",
            "sceneDescription": "現場全景",
        },
    ]


@pytest.fixture
def metrics():
    """Deterministic text metrics (2 mm per character)."""
    return FixedMetrics(2.0)


@pytest.fixture
def make_record():
    """Factory for classified records with pavement defaults."""

    def build(**overrides) -> ClassifiedRecord:
        data = {
            "file_name": "IMG.jpg",
            "category": "品質管理写真",
            "work_type": "舗装工",
            "variety": "舗装打換え工",
            "detail": "表層工",
            "station": "No.10+50",
        }
        data.update(overrides)
        return ClassifiedRecord(**data)

    return build
