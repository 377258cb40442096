"""Validation report renderers (markdown and JSON)."""

import json
from pathlib import Path
from typing import Any

from sqlguide.orchestrator import ValidationReport
from sqlguide.renderers.base import BaseRenderer


class ReportRenderer(BaseRenderer):
    """Render a ValidationReport as markdown.

    Sections:
        - Summary counts
        - Findings grouped by check
        - Sandbox run per section, with first-cause failures
        - Sequencing (execution order, forward references)
    """

    template_name = "report.md.j2"

    def __init__(self, report: ValidationReport, template_dir: Path | None = None):
        super().__init__(template_dir)
        self.report = report

    def render(self) -> str:
        template = self._get_template()
        return template.render(**self._context())

    def _context(self) -> dict[str, Any]:
        report = self.report
        guide = report.guide
        run = report.run
        sections = {section.ordinal: section.title for section in guide.sections}

        context = {
            **self._get_metadata(),
            "guide": guide,
            "source": str(guide.source) if guide.source else None,
            "stats": guide.stats(),
            "ok": report.ok,
            "checks": report.checks,
            "by_check": report.checks.by_check(),
            "execution_order": report.execution_order,
            "is_pedagogically_ordered": report.is_pedagogically_ordered,
            "forward_references": report.forward_references,
            "run": run,
        }
        if run is not None:
            context["run_counts"] = run.counts()
            context["run_sections"] = [
                {"ordinal": ordinal, "title": sections.get(ordinal, ""), **counts}
                for ordinal, counts in sorted(run.by_section().items())
            ]
            context["failures"] = run.failed(include_cascaded=False)
        return context


class JsonReportRenderer:
    """Render a ValidationReport as JSON."""

    def __init__(self, report: ValidationReport, indent: int = 2):
        self.report = report
        self.indent = indent

    def render(self) -> str:
        return json.dumps(self.report.to_dict(), indent=self.indent, default=str) + "\n"
