"""
Tests for renderers.

Tests verify:
- The table of contents links every numbered section
- apply_toc inserts or replaces the TOC and leaves a current TOC unchanged
- A banner-sectioned script converts to a markdown guide that parses back
- Validation reports render as markdown and JSON
"""

import json

from sqlguide.checks import AnchorCheck, OrderingCheck
from sqlguide.config import GuideConfig
from sqlguide.orchestrator import GuideValidator
from sqlguide.parser import load_guide, parse_guide
from sqlguide.parser.models import BlockKind
from sqlguide.renderers import (
    BaseRenderer,
    GuideMarkdownRenderer,
    JsonReportRenderer,
    ReportRenderer,
    TocRenderer,
)
from sqlguide.sequencer import DependencySequencer


class TestTocRenderer:
    def test_render(self, mini_guide):
        assert TocRenderer(mini_guide).render() == (
            "1. [Tables](#1-tables)\n"
            "2. [Data](#2-data)\n"
            "3. [Queries](#3-queries)\n"
        )

    def test_current_toc_is_unchanged(self, mini_guide, mini_guide_path):
        text = mini_guide_path.read_text()
        assert TocRenderer(mini_guide).apply_toc(text) == text

    def test_replaces_stale_toc(self, mini_guide, mini_guide_path):
        text = mini_guide_path.read_text().replace("2. [Data](#2-data)\n", "")
        updated = TocRenderer(mini_guide).apply_toc(text)
        assert "2. [Data](#2-data)" in updated
        assert updated == mini_guide_path.read_text()

    def test_inserts_toc_after_title(self, make_guide):
        text = "# Guide\n\nIntro.\n\n## 1. One\n\n```sql\nSELECT 1;\n```\n"
        guide = make_guide(text)
        updated = TocRenderer(guide).apply_toc(text)
        assert updated.startswith("# Guide\n\n## Table of Contents\n\n1. [One](#1-one)\n\nIntro.\n")

        reparsed = parse_guide(updated, "markdown")
        assert reparsed.has_toc is True
        plan = DependencySequencer(reparsed).build()
        assert AnchorCheck().run(reparsed, plan) == []

    def test_toc_heading_inside_fence_is_ignored(self, make_guide):
        text = (
            "# Guide\n\n"
            "## 1. Markdown\n\n"
            "```sh\n## Table of Contents\necho hi\n```\n"
        )
        updated = TocRenderer(make_guide(text)).apply_toc(text)
        assert updated.count("## Table of Contents") == 2
        assert "```sh\n## Table of Contents\necho hi\n```" in updated


class TestGuideMarkdownRenderer:
    def test_convert_sql_script(self, mini_script_path, tmp_path):
        script = load_guide(mini_script_path)
        markdown = GuideMarkdownRenderer(script).render()

        assert markdown.startswith("# Mini Reference Guide\n\n## Table of Contents\n\n1. [Table Operations]")
        assert "## 2. Select Queries\n" in markdown
        assert "Create table:\n\n```sql\nCREATE TABLE employees (" in markdown
        assert "```sh\npg_dump -U username -d database_name -f backup.sql\n```" in markdown

        path = tmp_path / "mini_guide.md"
        path.write_text(markdown)
        converted = load_guide(path)

        assert converted.title == script.title
        assert [s.title for s in converted.sections] == [s.title for s in script.sections]
        assert [s.text for s in converted.statements] == [s.text for s in script.statements]
        assert [b.annotation for b in converted.blocks] == [b.annotation for b in script.blocks]
        assert converted.section(3).blocks[0].kind == BlockKind.SHELL

        plan = DependencySequencer(converted).build()
        assert AnchorCheck().run(converted, plan) == []
        assert OrderingCheck().run(converted, plan) == []

    def test_convert_markdown_guide(self, mini_guide):
        markdown = GuideMarkdownRenderer(mini_guide).render()
        reparsed = parse_guide(markdown, "markdown")
        assert [s.text for s in reparsed.statements] == [s.text for s in mini_guide.statements]
        assert "Insert rows:\n\n```sql\nINSERT INTO departments" in markdown


class TestReportRenderer:
    def _report(self, sqlite_guide_path, execute=True):
        config = GuideConfig(engine="sqlite", reference_scope="guide")
        return GuideValidator(config, sqlite_guide_path).validate(execute=execute)

    def test_markdown_report(self, sqlite_guide_path):
        text = ReportRenderer(self._report(sqlite_guide_path)).render()
        assert text.startswith("# Validation report: SQLite-Friendly Guide\n")
        assert "**Result: passed**" in text
        assert "| Statements skipped | 2 |" in text
        assert "Engine `sqlite`, isolation `section`" in text
        assert "Execution order: 1, 2, 3." in text
        assert "Sections can be followed in numbered order: yes" in text

    def test_report_without_run(self, sqlite_guide_path):
        text = ReportRenderer(self._report(sqlite_guide_path, execute=False)).render()
        assert "Not run." in text
        assert "Statements passed" not in text

    def test_json_report(self, sqlite_guide_path):
        data = json.loads(JsonReportRenderer(self._report(sqlite_guide_path)).render())
        assert data["ok"] is True
        assert data["execution_order"] == [1, 2, 3]
        assert data["checks"]["counts"]["errors"] == 0
        assert data["run"]["engine"] == "sqlite"

    def test_md_cell_filter(self):
        assert BaseRenderer._md_cell_filter("a | b\nc") == "a \\| b c"
        assert BaseRenderer._md_cell_filter(None) == ""
