"""Tests for the sqlguide click command group."""

from __future__ import annotations

import json
import shutil

import pytest
from click.testing import CliRunner

from sqlguide import __version__
from sqlguide.cli import cli

runner = CliRunner()

FORWARD_REFERENCE_GUIDE = """\
# Out of Order

## 1. Queries

```sql
SELECT * FROM orders;
```

## 2. Tables

```sql
CREATE TABLE orders (id INT, total INT);
```
"""


def invoke(*args: str, **kwargs):
    return runner.invoke(cli, ["--log-level", "ERROR", *args], **kwargs)


@pytest.fixture
def forward_guide(tmp_path):
    path = tmp_path / "forward.md"
    path.write_text(FORWARD_REFERENCE_GUIDE)
    return path


def test_version():
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


# ── check ────────────────────────────────────────────────────────────


class TestCheckCommand:
    def test_clean_guide_json(self, mini_guide_path):
        result = invoke("check", str(mini_guide_path), "--scope", "guide", "--format", "json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["ok"] is True
        assert data["checks"] == ["syntax", "references", "anchors", "ordering"]

    def test_selected_checks(self, mini_guide_path):
        result = invoke("check", str(mini_guide_path), "-c", "anchors", "-c", "ordering", "--format", "json")
        assert result.exit_code == 0
        assert json.loads(result.output)["checks"] == ["anchors", "ordering"]

    def test_forward_reference_fails(self, forward_guide):
        result = invoke("check", str(forward_guide))
        assert result.exit_code == 1
        assert "Checks failed" in result.output
        assert "orders" in result.output

    def test_missing_guide(self, tmp_path):
        result = invoke("check", str(tmp_path / "missing.md"))
        assert result.exit_code == 2

    def test_bad_config(self, tmp_path, mini_guide_path):
        config = tmp_path / "sqlguide.yaml"
        config.write_text("engine: mysql\n")
        result = runner.invoke(cli, ["--config", str(config), "check", str(mini_guide_path)])
        assert result.exit_code == 2
        assert "engine" in result.output

    def test_config_file_applies(self, tmp_path, forward_guide):
        config = tmp_path / "sqlguide.yaml"
        config.write_text("ignored_objects:\n  - orders\n")
        result = runner.invoke(cli, ["--config", str(config), "--log-level", "ERROR", "check", str(forward_guide)])
        assert result.exit_code == 0, result.output


# ── run / validate ───────────────────────────────────────────────────


class TestRunCommand:
    def test_sqlite_json(self, sqlite_guide_path):
        result = invoke("run", str(sqlite_guide_path), "--engine", "sqlite", "--format", "json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["engine"] == "sqlite"
        assert data["counts"]["failed"] == 0

    def test_sqlite_table(self, sqlite_guide_path):
        result = invoke("run", str(sqlite_guide_path), "--engine", "sqlite", "-s", "3")
        assert result.exit_code == 0, result.output
        assert "Statements:" in result.output

    def test_failure_exit_code(self, sqlite_guide_path, tmp_path):
        path = tmp_path / "guide.md"
        path.write_text(sqlite_guide_path.read_text() + "\n```sql\nSELECT missing_column FROM employees;\n```\n")
        result = invoke("run", str(path), "--engine", "sqlite")
        assert result.exit_code == 1
        assert "no such column" in result.output

    def test_postgres_without_dsn(self, sqlite_guide_path):
        result = invoke("run", str(sqlite_guide_path), env={"SQLGUIDE_DSN": None})
        assert result.exit_code == 2
        assert "DSN" in result.output


class TestValidateCommand:
    def test_markdown_report(self, sqlite_guide_path, tmp_path):
        output = tmp_path / "report.md"
        result = invoke("validate", str(sqlite_guide_path), "--engine", "sqlite", "-o", str(output))
        assert result.exit_code == 0, result.output
        report = output.read_text()
        assert report.startswith("# Validation report: SQLite-Friendly Guide")
        assert "Execution order: 1, 2, 3." in report

    def test_json_without_run(self, forward_guide):
        result = invoke("validate", str(forward_guide), "--format", "json", "--no-run")
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["run"] is None
        assert data["forward_references"][0]["name"] == "orders"


# ── toc / convert ────────────────────────────────────────────────────


class TestTocCommand:
    def test_print(self, mini_guide_path):
        result = invoke("toc", str(mini_guide_path))
        assert result.exit_code == 0
        assert result.output.splitlines()[0] == "1. [Tables](#1-tables)"

    def test_write(self, mini_guide_path, tmp_path):
        path = tmp_path / "guide.md"
        path.write_text(mini_guide_path.read_text().replace("3. [Queries](#3-queries)\n", ""))

        result = invoke("toc", str(path), "--write")
        assert result.exit_code == 0, result.output
        assert path.read_text() == mini_guide_path.read_text()

        again = invoke("toc", str(path), "--write")
        assert "up to date" in again.output

    def test_sql_script_is_rejected(self, mini_script_path):
        result = invoke("toc", str(mini_script_path))
        assert result.exit_code == 2


class TestConvertCommand:
    def test_convert(self, mini_script_path, tmp_path):
        script = tmp_path / "guide.sql"
        shutil.copy(mini_script_path, script)
        output = tmp_path / "guide.md"

        result = invoke("convert", str(script), "-o", str(output))
        assert result.exit_code == 0, result.output
        assert output.read_text().startswith("# Mini Reference Guide\n")

        check = invoke("check", str(output), "-c", "anchors", "-c", "ordering")
        assert check.exit_code == 0, check.output


# ── stats / graph / extract ──────────────────────────────────────────


class TestInspectionCommands:
    def test_stats_json(self, mini_guide_path):
        result = invoke("stats", str(mini_guide_path), "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["sections"] == 3
        assert data["objects"] == {"table": 2}

    def test_stats_table(self, mini_guide_path):
        result = invoke("stats", str(mini_guide_path))
        assert result.exit_code == 0
        assert "Objects defined" in result.output

    def test_graph(self, mini_guide_path, tmp_path):
        output = tmp_path / "graph.json"
        result = invoke("graph", str(mini_guide_path), "-o", str(output))
        assert result.exit_code == 0
        graph = json.loads(output.read_text())
        assert graph["execution_order"] == [1, 2, 3]

    def test_extract(self, mini_guide_path):
        result = invoke("extract", str(mini_guide_path), "-s", "2")
        assert result.exit_code == 0
        assert "S2.B1.#2" in result.output
        assert "S1.B1.#1" not in result.output
