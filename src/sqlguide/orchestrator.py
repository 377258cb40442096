"""
Guide validation orchestrator.

Coordinates loading a guide, building its sequence plan, running the
documentation checks and running the examples in sandboxes.

Example:
    >>> validator = GuideValidator(GuideConfig(guide_path=Path("docs/postgresql_guide.md"), engine="sqlite"))
    >>> report = validator.validate()
    >>> report.execution_order[:3]
    [1, 2, 3]
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sqlguide.checks import CheckReport, Finding, Severity, run_checks
from sqlguide.config import GuideConfig
from sqlguide.errors import ConfigError, SequencingError
from sqlguide.logging import get_logger
from sqlguide.parser import load_guide
from sqlguide.parser.models import Guide
from sqlguide.runner import RunReport, SandboxRunner
from sqlguide.sandbox import Sandbox
from sqlguide.sequencer import DependencySequencer, SequencePlan

logger = get_logger(__name__)


@dataclass
class ValidationReport:
    """Checks and sandbox run of one guide."""

    guide: Guide
    checks: CheckReport
    run: RunReport | None = None
    execution_order: list[int] = field(default_factory=list)
    is_pedagogically_ordered: bool = True
    forward_references: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.checks.ok and (self.run is None or self.run.ok)

    def to_dict(self) -> dict[str, Any]:
        return {
            "guide": self.guide.title,
            "source": str(self.guide.source) if self.guide.source else None,
            "ok": self.ok,
            "stats": self.guide.stats(),
            "execution_order": self.execution_order,
            "is_pedagogically_ordered": self.is_pedagogically_ordered,
            "forward_references": self.forward_references,
            "checks": self.checks.to_dict(),
            "run": self.run.to_dict() if self.run else None,
        }


class GuideValidator:
    """Validate a SQL guide end to end.

    Manifesto:
        One command tells a guide author whether every example still
        parses, runs, and can be followed in order. The validator loads
        the guide and builds its plan once, and shares both across the
        checks and the runner.

    Architecture:
        ```
        GuideValidator
              │
              ├──► load_guide()            (once)
              ├──► DependencySequencer     (once)
              │         │
              │         ▼
              │    SequencePlan
              │
              ├──► run_checks()  ──► CheckReport
              └──► SandboxRunner ──► RunReport
        ```

    Guardrails:
        - Do NOT re-parse the guide per check
          ✅ Guide and plan are cached on the validator
        - Do NOT let one failing check hide the others
          ✅ Check failures become error findings
    """

    def __init__(self, config: GuideConfig, guide_path: Path | None = None):
        self.config = config
        self.guide_path = Path(guide_path) if guide_path else config.guide_path
        if self.guide_path is None:
            raise ConfigError("No guide given (pass a path or set guide_path in the config)")
        self._guide: Guide | None = None
        self._plan: SequencePlan | None = None

    @property
    def guide(self) -> Guide:
        if self._guide is None:
            self._guide = load_guide(self.guide_path, self.config)
        return self._guide

    @property
    def plan(self) -> SequencePlan:
        if self._plan is None:
            self._plan = DependencySequencer(self.guide, config=self.config).build()
        return self._plan

    def check(self, names: list[str] | None = None) -> CheckReport:
        """Run documentation checks."""
        report = run_checks(self.guide, self.plan, self.config, names)
        logger.info(
            "checks_completed",
            errors=len(report.errors),
            warnings=len(report.warnings),
            infos=len(report.infos),
        )
        return report

    def run(
        self,
        sections: Iterable[int] | None = None,
        sandbox_factory: Callable[[], Sandbox] | None = None,
    ) -> RunReport:
        """Run the guide's examples in sandboxes."""
        return SandboxRunner(self.config, sandbox_factory).run(self.guide, self.plan, sections)

    def validate(
        self,
        sandbox_factory: Callable[[], Sandbox] | None = None,
        execute: bool = True,
    ) -> ValidationReport:
        """Run checks and (unless ``execute`` is False) the sandbox run."""
        checks = self.check()
        report = ValidationReport(guide=self.guide, checks=checks)
        report.forward_references = [f.to_dict() for f in self.plan.forward_references]

        try:
            report.execution_order = self.plan.execution_order()
            report.is_pedagogically_ordered = report.execution_order == sorted(self.plan.ordinals)
        except SequencingError as e:
            report.is_pedagogically_ordered = False
            checks.findings.append(Finding(check="sequence", severity=Severity.ERROR, message=str(e)))

        if execute:
            report.run = self.run(sandbox_factory=sandbox_factory)
        return report

    def stats(self) -> dict[str, Any]:
        """Counts of sections, blocks, statements and defined objects."""
        stats = self.guide.stats()
        stats["objects"] = self.plan.defined_objects()
        stats["section_dependencies"] = sum(len(d) for d in self.plan.section_dependencies.values())
        stats["forward_references"] = len(self.plan.forward_references)
        return stats

    def dependency_graph(self) -> dict[str, Any]:
        """Section dependency graph with execution order.

        Raises:
            SequencingError: The dependencies contain a cycle
        """
        return self.plan.to_dict()
