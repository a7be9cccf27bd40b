"""Tests for the command line interface."""

import json

import pytest
from typer.testing import CliRunner

from photoledger.cli import app, classify

runner = CliRunner()


@pytest.fixture
def raw_json_path(tmp_path, raw_records):
    """Raw recognizer output written to disk."""
    path = tmp_path / "raw.json"
    path.write_text(json.dumps(raw_records, ensure_ascii=False), encoding="utf-8")
    return path


class TestClassifyCommand:
    """Tests for `photoledger classify`."""

    def test_classify_with_master(self, raw_json_path, master_json_path, tmp_path):
        """Matched records carry canonical labels in the output file."""
        output = tmp_path / "classified.json"
        result = runner.invoke(
            app,
            ["classify", str(raw_json_path), "--master", str(master_json_path), "--output", str(output)],
        )

        assert result.exit_code == 0, result.output
        records = json.loads(output.read_text(encoding="utf-8"))
        assert records[0]["category"] == "品質管理写真"
        assert records[0]["provenance"] == "master"
        assert records[2]["provenance"] == "raw"

    def test_classify_without_master(self, raw_json_path, tmp_path):
        """Without a master every record passes through."""
        output = tmp_path / "classified.json"
        result = runner.invoke(app, ["classify", str(raw_json_path), "--output", str(output)])

        assert result.exit_code == 0, result.output
        records = json.loads(output.read_text(encoding="utf-8"))
        assert [r["match_status"] for r in records] == ["no_master"] * 3

    def test_classify_with_alias_preset(self, raw_json_path, tmp_path):
        """Alias presets canonicalize pass-through records."""
        output = tmp_path / "classified.json"
        result = runner.invoke(
            app,
            ["classify", str(raw_json_path), "--alias-preset", "pavement", "--output", str(output)],
        )

        assert result.exit_code == 0, result.output
        records = json.loads(output.read_text(encoding="utf-8"))
        assert records[0]["category"] == "品質管理写真"
        assert records[0]["work_type"] == "舗装工"

    def test_stdout_is_pure_json(self, raw_json_path, master_json_path, capsys):
        """Without --output, stdout holds only the JSON and status goes to stderr."""
        classify(
            raw_json_path,
            master=str(master_json_path),
            output=None,
            alias_preset=None,
            detect=True,
        )
        captured = capsys.readouterr()

        records = json.loads(captured.out)
        assert len(records) == 3
        assert records[0]["category"] == "品質管理写真"
        assert "Classified" in captured.err
        assert "Classified" not in captured.out

    def test_bad_master_exits(self, raw_json_path, tmp_path):
        """A missing master file fails the command."""
        result = runner.invoke(
            app, ["classify", str(raw_json_path), "--master", str(tmp_path / "missing.json")]
        )
        assert result.exit_code == 1
        assert "Master load failed" in result.output

    def test_bad_input_exits(self, tmp_path):
        """Unreadable input fails the command."""
        path = tmp_path / "raw.json"
        path.write_text("not json", encoding="utf-8")
        result = runner.invoke(app, ["classify", str(path)])
        assert result.exit_code == 1


class TestPipelineCommands:
    """Tests for normalize, plan and run."""

    def test_normalize(self, tmp_path, make_record):
        """Board readings propagate through the command."""
        records = [
            make_record(file_name="a.jpg"),
            make_record(file_name="b.jpg", has_board=True, measurements="158℃"),
        ]
        source = tmp_path / "classified.json"
        source.write_text(
            json.dumps([r.model_dump(mode="json") for r in records], ensure_ascii=False),
            encoding="utf-8",
        )
        output = tmp_path / "normalized.json"

        result = runner.invoke(app, ["normalize", str(source), "--output", str(output)])

        assert result.exit_code == 0, result.output
        normalized = json.loads(output.read_text(encoding="utf-8"))
        assert normalized[0]["measurements"] == "158℃"

    def test_plan_two_up(self, tmp_path, make_record):
        """Six records at two per page give three pages."""
        source = tmp_path / "classified.json"
        source.write_text(
            json.dumps([make_record(file_name=f"{i}.jpg").model_dump(mode="json") for i in range(6)]),
            encoding="utf-8",
        )
        output = tmp_path / "plan.json"

        result = runner.invoke(
            app, ["plan", str(source), "--photos-per-page", "2", "--output", str(output)]
        )

        assert result.exit_code == 0, result.output
        plan = json.loads(output.read_text(encoding="utf-8"))
        assert len(plan["pages"]) == 3
        assert plan["field_keys"] == ["station", "remarks"]

    def test_plan_rejects_density(self, tmp_path):
        """Unsupported photos-per-page values fail."""
        source = tmp_path / "classified.json"
        source.write_text("[]", encoding="utf-8")
        result = runner.invoke(app, ["plan", str(source), "--photos-per-page", "4"])
        assert result.exit_code == 1

    def test_run_all_stages(self, raw_json_path, master_csv_path, tmp_path):
        """The run command chains every stage."""
        output = tmp_path / "plan.json"
        result = runner.invoke(
            app,
            ["run", str(raw_json_path), "--master", str(master_csv_path), "--output", str(output)],
        )

        assert result.exit_code == 0, result.output
        plan = json.loads(output.read_text(encoding="utf-8"))
        cells = [c for page in plan["pages"] for c in page["cells"]]
        assert len(cells) == 3
        assert cells[1]["record"]["detail"] == "溶融式区画線"


class TestMasterCommand:
    """Tests for `photoledger master`."""

    def test_master_summary(self, master_json_path):
        """The summary table reports the entry count."""
        result = runner.invoke(app, ["master", str(master_json_path)])

        assert result.exit_code == 0, result.output
        assert "4 pattern entries" in result.output
