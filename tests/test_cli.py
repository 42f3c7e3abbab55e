"""Tests for the cbdata command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from cbdata.cli import main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    store = tmp_path / "store"
    store.mkdir()
    (store / "index.csv").write_text("Series,Section\nGDPH,nipa\n")
    (store / "nipa_data.csv").write_text(
        "date,GDPH\n2020-03-31,1.0\n2020-06-30,3.0\n2020-09-30,5.0\n"
    )
    (tmp_path / "cbdata.yaml").write_text("db_id: CHIDATA\nchidata_dir: store\n")
    return tmp_path


class TestDataCommand:
    def test_scalar(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["data", "2+3", "--project", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "5.0"

    def test_series_from_store(self, runner: CliRunner, project: Path) -> None:
        result = runner.invoke(main, ["data", "GDPH", "--project", str(project)])
        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert lines[0] == "date,GDPH"
        assert lines[1] == "2020-03-31,1.0"
        assert len(lines) == 4

    def test_flags_override_config(self, runner: CliRunner, project: Path) -> None:
        result = runner.invoke(
            main,
            ["data", "GDPH@CHIDATA*2", "--project", str(project), "--start", "2020-04-01", "--freq", "A"],
        )
        assert result.exit_code == 0, result.output
        assert result.output.strip().splitlines() == ["date,DATASERIES", "2020-12-31,8.0"]

    def test_unknown_function(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["data", "FOO(2)", "--project", str(tmp_path)])
        assert result.exit_code != 0
        assert "Undefined transformation" in result.output

    def test_bad_set_format(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["data", "2", "--project", str(tmp_path), "--set", "novalue"])
        assert result.exit_code != 0
        assert "Invalid --set format" in result.output

    def test_bad_option_value(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(
            main, ["data", "2", "--project", str(tmp_path), "--set", "startDate=someday"]
        )
        assert result.exit_code != 0
        assert "startDate" in result.output

    def test_missing_series(self, runner: CliRunner, project: Path) -> None:
        result = runner.invoke(main, ["data", "NOPE", "--project", str(project)])
        assert result.exit_code != 0
        assert "Pull failed for NOPE@CHIDATA" in result.output

    def test_output_file_and_provenance(self, runner: CliRunner, project: Path) -> None:
        out = project / "out.csv"
        result = runner.invoke(
            main,
            ["data", "GDPH", "--project", str(project), "--output", str(out), "--provenance"],
        )
        assert result.exit_code == 0, result.output
        assert out.read_text().startswith("date,GDPH\n")
        assert f"Wrote {out}" in result.output
        payload = json.loads(result.output.split("\n", 1)[1])
        assert payload[0]["id"] == "GDPH@CHIDATA"
        assert payload[0]["source_info"]["section"] == "nipa"


class TestFunctionsCommand:
    def test_listing(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["functions"])
        assert result.exit_code == 0
        assert "DIFA" in result.output
        assert "AGG" in result.output

    def test_json(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["functions", "--json"])
        assert result.exit_code == 0
        names = [entry["name"] for entry in json.loads(result.output)]
        assert names == sorted(names)
        assert {"lag", "diff", "yryrpct", "merge"} <= set(names)


class TestFreqCommand:
    def test_monthly(self, runner: CliRunner, tmp_path: Path) -> None:
        csv_path = tmp_path / "m.csv"
        csv_path.write_text("date,X\n2020-01-31,1\n2020-02-29,2\n2020-03-31,3\n")
        result = runner.invoke(main, ["freq", str(csv_path)])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "M (12 periods per year)"

    def test_irregular(self, runner: CliRunner, tmp_path: Path) -> None:
        csv_path = tmp_path / "i.csv"
        csv_path.write_text("date,X\n2020-01-01,1\n2020-01-20,2\n2020-06-01,3\n")
        result = runner.invoke(main, ["freq", str(csv_path)])
        assert result.exit_code == 0, result.output
        assert result.output.strip().splitlines()[-1] == "IRREGULAR"


class TestEventsCommand:
    def test_no_events(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["events", str(tmp_path)])
        assert result.exit_code == 0
        assert "No events found." in result.output

    def test_events_after_data(self, runner: CliRunner, project: Path) -> None:
        runner.invoke(main, ["data", "GDPH", "--project", str(project)])
        result = runner.invoke(main, ["events", str(project), "--type", "eval_completed"])
        assert result.exit_code == 0
        assert "eval_completed: Evaluated GDPH" in result.output

    def test_failures_logged_with_error_code(self, runner: CliRunner, tmp_path: Path) -> None:
        runner.invoke(main, ["data", "FOO(2)", "--project", str(tmp_path)])
        result = runner.invoke(main, ["events", str(tmp_path), "--level", "error"])
        assert "eval_failed" in result.output
        assert "(unknown_function)" in result.output

    def test_batch_log(self, runner: CliRunner, project: Path) -> None:
        runner.invoke(main, ["data", "GDPH", "--project", str(project)])
        batch_id = next((project / "logs" / "batches").glob("*.ndjson")).stem
        result = runner.invoke(main, ["events", str(project), "--batch-id", batch_id])
        assert "batch_started" in result.output
        assert "batch_completed" in result.output
        assert "eval_completed: Evaluated GDPH" in result.output
        assert "source_fetch: Pulled GDPH@CHIDATA" in result.output
