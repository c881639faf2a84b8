"""Tests for the querylens command line."""

import json

import pytest
from typer.testing import CliRunner

from querylens import __version__
from querylens.cli.main import app

runner = CliRunner()


@pytest.fixture
def query_a(fixtures_dir):
    return str(fixtures_dir / "query_a.sql")


@pytest.fixture
def plan_file(fixtures_dir):
    return str(fixtures_dir / "plan_giving_detail.json")


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"QueryLens version {__version__}" in result.output


class TestDetectorsCommand:
    def test_lists_builtin_detectors(self):
        result = runner.invoke(app, ["detectors"])

        assert result.exit_code == 0
        for detector_id in ("NON_SARGABLE_PREDICATE", "CORRELATED_SUBQUERY", "MISSING_INDEX"):
            assert detector_id in result.output

    def test_shows_disabled_detector(self, monkeypatch):
        monkeypatch.setenv("QUERYLENS_DETECTOR_HEAVY_AGGREGATION_ENABLED", "false")

        result = runner.invoke(app, ["detectors"])

        assert result.exit_code == 0
        assert result.output.count("yes") == 5


class TestAnalyzeCommand:
    """Tests for `querylens analyze`."""

    def test_json_with_plan(self, query_a, plan_file):
        result = runner.invoke(app, ["analyze", query_a, "--plan", plan_file, "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["summary"]["critical"] == 2
        assert data["bottlenecks"][0]["issue_type"] == "NON_SARGABLE_PREDICATE"

    def test_text_report(self, query_a, plan_file):
        result = runner.invoke(app, ["analyze", query_a, "--plan", plan_file])

        assert result.exit_code == 0
        assert "Ranked findings" in result.output
        assert "QueryLens BI Analysis" in result.output
        assert "PERFORMANCE PROJECTION" in result.output
        assert "heuristic plan" not in result.output

    def test_markdown(self, query_a, plan_file):
        result = runner.invoke(app, ["analyze", query_a, "-p", plan_file, "-f", "markdown"])

        assert result.exit_code == 0
        assert "# QueryLens Analysis Report" in result.output
        assert "## Index Recommendations" in result.output

    def test_heuristic_plan_notice(self, query_a):
        result = runner.invoke(app, ["analyze", query_a])

        assert result.exit_code == 0
        assert "heuristic plan" in result.output
        assert "QueryLens BI Analysis" in result.output

    def test_no_notice_for_json(self, query_a):
        result = runner.invoke(app, ["analyze", query_a, "--format", "json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["summary"]["total"] == 5

    def test_mock_plan_disabled(self, query_a, monkeypatch):
        monkeypatch.setenv("QUERYLENS_USE_MOCK_PLAN", "false")

        result = runner.invoke(app, ["analyze", query_a, "--format", "json"])

        data = json.loads(result.stdout)
        assert data["summary"]["total_cost_ms"] == 0.0

    def test_clean_query(self, fixtures_dir):
        result = runner.invoke(app, ["analyze", str(fixtures_dir / "clean.sql")])

        assert result.exit_code == 0
        assert "No performance anti-patterns found!" in result.output

    def test_detector_filter(self, query_a, plan_file):
        result = runner.invoke(app, [
            "analyze", query_a, "--plan", plan_file, "--format", "json",
            "--detectors", "missing_index,late_filter",
        ])

        data = json.loads(result.stdout)
        assert [r["detector_id"] for r in data["detector_runs"]] == [
            "LATE_FILTER",
            "MISSING_INDEX",
        ]

    def test_exclude(self, query_a, plan_file):
        result = runner.invoke(app, [
            "analyze", query_a, "--plan", plan_file, "--format", "json",
            "--exclude", "HEAVY_AGGREGATION",
        ])

        data = json.loads(result.stdout)
        assert len(data["detector_runs"]) == 5
        assert data["summary"]["total"] == 3

    def test_missing_sql_file(self, tmp_path):
        result = runner.invoke(app, ["analyze", str(tmp_path / "missing.sql")])

        assert result.exit_code == 1
        assert "Cannot read SQL file" in result.output

    def test_invalid_plan(self, query_a, tmp_path):
        plan = tmp_path / "plan.json"
        plan.write_text("{not json")

        result = runner.invoke(app, ["analyze", query_a, "--plan", str(plan)])

        assert result.exit_code == 1
        assert "Invalid JSON format" in result.output

    def test_missing_plan_file(self, query_a, tmp_path):
        result = runner.invoke(app, ["analyze", query_a, "--plan", str(tmp_path / "nope.json")])

        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_fail_on_critical(self, query_a, plan_file):
        result = runner.invoke(app, [
            "analyze", query_a, "--plan", plan_file, "--format", "json", "--fail-on", "critical",
        ])

        assert result.exit_code == 2

    def test_fail_on_warning_with_only_info(self, tmp_path):
        sql = tmp_path / "wide.sql"
        sql.write_text("SELECT a, b, c, d, e, SUM(x)\nFROM t\nGROUP BY a, b, c, d, e")

        result = runner.invoke(app, ["analyze", str(sql), "--format", "json", "--fail-on", "warning"])

        assert result.exit_code == 0

    def test_default_never_fails(self, query_a, plan_file):
        result = runner.invoke(app, ["analyze", query_a, "--plan", plan_file, "--format", "json"])
        assert result.exit_code == 0
