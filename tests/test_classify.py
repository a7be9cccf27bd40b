"""Tests for master-based classification."""

from unittest.mock import patch

import pytest

from photoledger.models import MatchStatus, Provenance, RawRecord
from photoledger.pipeline.stage_classify import (
    Classifier,
    build_search_text,
    classify,
    classify_batch,
    classify_report,
    guess_affinity,
)
from photoledger.pipeline.stage_master import load_master


@pytest.fixture
def tied_master():
    """Two details under different varieties sharing one pattern."""
    return load_master({
        "品質管理写真": {
            "舗装工": {
                "舗装打換え工": {"表層工": {"matchPatterns": ["温度"]}},
                "舗装オーバーレイ工": {"表層工": {"matchPatterns": ["温度"]}},
            }
        }
    })


class TestPassThrough:
    """Tests for classification without a master."""

    def test_no_master_keeps_raw_values(self, raw_records):
        """Every record passes through unchanged with provenance RAW."""
        records = classify_batch(raw_records, master=None)

        assert len(records) == len(raw_records)
        for raw, record in zip(raw_records, records):
            assert record.provenance == Provenance.RAW
            assert record.match_status == MatchStatus.NO_MASTER
            assert record.category == raw["photoCategory"]
            assert record.work_type == raw.get("workType", "")
            assert record.file_name == raw["fileName"]

    def test_unmatched_record(self, master):
        """Records without pattern hits keep their guesses."""
        raw = RawRecord(category="施工状況", detected_text="現場全景")
        record = classify(raw, master)

        assert record.provenance == Provenance.RAW
        assert record.match_status == MatchStatus.UNMATCHED
        assert record.category == "施工状況"
        assert record.raw_category == "施工状況"


class TestMasterMatch:
    """Tests for resolved records."""

    def test_match_overwrites_labels(self, master):
        """The winning path replaces the four classification fields."""
        raw = RawRecord(category="品質", work_type="舗装", detected_text="到着温度 158℃")
        record = classify(raw, master)

        assert record.provenance == Provenance.MASTER
        assert record.match_status == MatchStatus.MATCHED
        assert record.category == "品質管理写真"
        assert record.work_type == "舗装工"
        assert record.variety == "舗装打換え工"
        assert record.detail == "表層工"
        assert record.remarks == "到着温度"
        assert record.matched_patterns == ["到着温度"]
        assert record.match_score == 4

    def test_raw_guesses_preserved(self, master):
        """Original guesses stay available after a match."""
        raw = RawRecord(category="品質", work_type="舗装", detected_text="到着温度")
        record = classify(raw, master)

        assert record.raw_category == "品質"
        assert record.raw_work_type == "舗装"

    def test_longer_pattern_wins(self, master):
        """Summed pattern length decides between entries."""
        raw = RawRecord(detected_text="敷均し温度 145℃ 到着")
        record = classify(raw, master)
        assert record.remarks == "敷均し温度"

    def test_multiple_hits_add_up(self, master):
        """Several patterns of one entry accumulate their lengths."""
        raw = RawRecord(detected_text="溶融式 区画線")
        record = classify(raw, master)

        assert record.detail == "溶融式区画線"
        assert record.match_score == len("溶融式") + len("区画線")
        assert record.matched_patterns == ["区画線", "溶融式"]

    def test_full_width_text_matches(self):
        """Width variants in recognized text still match."""
        custom = load_master({
            "品質管理写真": {"舗装工": {"舗装打換え工": {"表層工": {"matchPatterns": ["As温度"]}}}}
        })
        record = classify(RawRecord(detected_text="Ａｓ温度 160"), custom)
        assert record.is_matched


class TestTieBreak:
    """Tests for deterministic tie resolution."""

    def test_first_entry_wins_without_guesses(self, tied_master):
        """Equal scores resolve to master traversal order."""
        record = classify(RawRecord(detected_text="温度"), tied_master)
        assert record.variety == "舗装打換え工"

    def test_guess_affinity_breaks_tie(self, tied_master):
        """A raw guess agreeing with a later entry wins the tie."""
        raw = RawRecord(variety="オーバーレイ", detected_text="温度")
        record = classify(raw, tied_master)
        assert record.variety == "舗装オーバーレイ工"

    def test_affinity_counts_levels(self):
        """Affinity counts the levels whose guesses overlap the path."""
        raw = RawRecord(category="品質管理", work_type="舗装工", variety="切削")
        master = load_master({
            "品質管理写真": {"舗装工": {"舗装打換え工": {"表層工": {"matchPatterns": ["x"]}}}}
        })
        assert guess_affinity(raw, master.entries[0].path) == 2

    def test_deterministic_across_workers(self, master, raw_records):
        """Threaded and sequential batches give identical results."""
        sequential = classify_batch(raw_records, master, max_workers=1)
        threaded = classify_batch(raw_records, master, max_workers=4)

        assert [r.model_dump() for r in sequential] == [r.model_dump() for r in threaded]


class TestBatch:
    """Tests for batch classification."""

    def test_batch_preserves_order(self, master, raw_records):
        """Output order follows input order."""
        records = classify_batch(raw_records, master)
        assert [r.file_name for r in records] == ["IMG_0001.jpg", "IMG_0002.jpg", "IMG_0003.jpg"]

    def test_batch_report_counts(self, master, raw_records):
        """The report counts matched and unmatched records."""
        report = classify_report(raw_records, master)

        assert report.matched_count == 2
        assert report.unmatched_count == 1
        assert report.failed_count == 0
        assert report.records[1].detail == "溶融式区画線"

    def test_narrowing_keeps_unlisted_work_types(self):
        """A work type unknown to the detector still matches in a narrowed batch."""
        custom = load_master({
            "施工状況写真": {
                "舗装工": {"舗装打換え工": {"表層工": {"matchPatterns": ["到着温度"]}}},
                "コンクリート工": {"場所打ち工": {"打設工": {"matchPatterns": ["打設"]}}},
            }
        })
        records = classify_batch(
            [
                {"fileName": "a.jpg", "detectedText": "アスファルト 到着温度"},
                {"fileName": "b.jpg", "detectedText": "コンクリート打設"},
            ],
            custom,
        )

        assert records[0].work_type == "舗装工"
        assert records[1].work_type == "コンクリート工"
        assert records[1].provenance == Provenance.MASTER

    def test_malformed_record_degrades(self, master):
        """Wrongly typed values are coerced instead of aborting the batch."""
        items = [
            {"fileName": "bad.jpg", "station": 12, "hasBoard": "yes", "detectedText": None},
            None,
        ]
        records = classify_batch(items, master)

        assert len(records) == 2
        assert records[0].file_name == "bad.jpg"
        assert records[0].station == "12"
        assert records[0].has_board is True
        assert records[1].file_name == ""
        assert all(r.provenance == Provenance.RAW for r in records)

    def test_classifier_error_degrades(self, master):
        """An exception while classifying one record passes it through."""
        classifier = Classifier(master, max_workers=1)
        with patch.object(classifier, "classify", side_effect=RuntimeError("boom")):
            report = classifier.classify_all([{"fileName": "x.jpg", "detectedText": "到着温度"}])

        assert report.failed_count == 1
        assert report.records[0].provenance == Provenance.RAW
        assert report.records[0].match_status == MatchStatus.UNMATCHED

    def test_search_text_normalized(self):
        """Search text folds width and case."""
        raw = RawRecord(detected_text="ＮＯ．１０", description="Test")
        text = build_search_text(raw)
        assert "no.10" in text
        assert "test" in text
