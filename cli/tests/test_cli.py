"""Tests for cli/cli/app.py using typer.testing.CliRunner.

The ``explain`` command runs with the LLM disabled through the
environment, so no network call is made and the fallback comment is
produced.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from cli.app import app

runner = CliRunner()

NO_LLM_ENV = {"SUMMARY_ENGINE_LLM_ENABLED": "false"}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def diff_file(tmp_path: Path) -> Path:
    files = [
        {"filename": "src/app.ts", "status": "modified", "changes": 10, "patch": "@@ -1 +1 @@\n-a\n+b"},
        {"filename": "src/app.test.ts", "status": "modified", "changes": 50, "patch": "+test"},
        {"filename": "README.md", "status": "modified", "changes": 3, "patch": "+docs"},
    ]
    path = tmp_path / "files.json"
    path.write_text(json.dumps(files), encoding="utf-8")
    return path


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'state.db'}"


# ---------------------------------------------------------------------------
# explain
# ---------------------------------------------------------------------------


class TestExplain:
    def test_dry_run_json(self, diff_file) -> None:
        result = runner.invoke(app, ["--json", "explain", str(diff_file), "--dry-run"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["files"] == 3
        assert data["kept"] == ["src/app.ts"]
        assert data["lines"] == 10
        assert data["batches"] == [["src/app.ts"]]

    def test_dry_run_tables(self, diff_file) -> None:
        result = runner.invoke(app, ["explain", str(diff_file), "--dry-run"])
        assert result.exit_code == 0, result.output

    def test_fallback_comment_without_llm(self, diff_file) -> None:
        result = runner.invoke(app, ["explain", str(diff_file)], env=NO_LLM_ENV)

        assert result.exit_code == 0, result.output
        assert "Explain this PR" in result.stdout
        assert "No changes to analyze" in result.stdout

    def test_invalid_diff_file(self, tmp_path) -> None:
        path = tmp_path / "bad.json"
        path.write_text('{"not": "an array"}', encoding="utf-8")

        result = runner.invoke(app, ["explain", str(path)])

        assert result.exit_code == 1

    def test_missing_file(self, tmp_path) -> None:
        result = runner.invoke(app, ["explain", str(tmp_path / "nope.json")])
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# Database commands
# ---------------------------------------------------------------------------


class TestDatabaseCommands:
    def test_stats_on_fresh_database(self, database_url) -> None:
        assert runner.invoke(app, ["init-db", "--database-url", database_url]).exit_code == 0

        result = runner.invoke(app, ["--json", "stats", "--database-url", database_url])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"runs": 0, "loc_analyzed": 0, "last_run_at": None}

    def test_unknown_account(self, database_url) -> None:
        runner.invoke(app, ["init-db", "--database-url", database_url])

        result = runner.invoke(app, ["account", "12345", "--database-url", database_url])

        assert result.exit_code == 1
