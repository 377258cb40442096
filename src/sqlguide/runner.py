"""Sandbox runner: executes each section's worked example against a fresh database.

With ``section`` isolation every section gets its own sandbox.  The
section's prerequisites (statements from earlier sections that create the
objects it uses) run first as the ``setup`` phase, then the section's own
statements run in declared order as the ``section`` phase.  With ``guide``
isolation one sandbox runs the whole guide in document order.

Statement failures are results, never exceptions.  Only a sandbox that
cannot be created or removed (``SandboxError``) aborts a run.

Example::

    from sqlguide.runner import SandboxRunner
    from sqlguide.sequencer import DependencySequencer

    plan = DependencySequencer(guide, config=config).build()
    report = SandboxRunner(config).run(guide, plan)
    for result in report.failed():
        print(result.statement.ref, result.sqlstate, result.message)
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlguide.analysis import is_server_level
from sqlguide.config import GuideConfig
from sqlguide.errors import InvalidConfigError, SandboxError
from sqlguide.logging import LogContext, get_logger
from sqlguide.parser.models import Guide, Statement, StatementKind
from sqlguide.sandbox import Sandbox, create_sandbox
from sqlguide.sequencer import SequencePlan

logger = get_logger(__name__)

# SQLSTATE for "current transaction is aborted, commands ignored until end of transaction block"
IN_FAILED_TRANSACTION = "25P02"


class StatementStatus(str, Enum):
    """Outcome of one statement in a run."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunPhase(str, Enum):
    SETUP = "setup"
    SECTION = "section"


@dataclass
class StatementResult:
    """Result of running (or skipping) a single statement."""

    statement: Statement
    section: int  # section being run; differs from statement.section for setup
    phase: RunPhase
    status: StatementStatus
    message: str = ""
    sqlstate: str | None = None
    duration_ms: float = 0.0
    cascaded: bool = False
    reason: str | None = None  # why a statement was skipped

    def to_dict(self) -> dict[str, Any]:
        """Serialize for reports."""
        return {
            "statement": self.statement.ref,
            "line": self.statement.line,
            "section": self.section,
            "phase": self.phase.value,
            "status": self.status.value,
            "message": self.message,
            "sqlstate": self.sqlstate,
            "duration_ms": round(self.duration_ms, 3),
            "cascaded": self.cascaded,
            "reason": self.reason,
        }


@dataclass
class RunReport:
    """Result of running a guide in sandboxes."""

    guide: str
    engine: str
    isolation: str
    run_id: str
    started_at: datetime
    completed_at: datetime | None = None
    results: list[StatementResult] = field(default_factory=list)
    error: str | None = None  # set when a SandboxError aborted the run

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def aborted(self) -> bool:
        return self.error is not None

    @property
    def ok(self) -> bool:
        """True when nothing failed and the run was not aborted."""
        return not self.aborted and not self.failed()

    def counts(self) -> dict[str, int]:
        """Count results per status."""
        counts = {status.value: 0 for status in StatementStatus}
        for result in self.results:
            counts[result.status.value] += 1
        counts["cascaded"] = sum(1 for r in self.results if r.cascaded)
        return counts

    def by_section(self) -> dict[int, dict[str, int]]:
        """Count results per section and status; setup failures counted apart."""
        sections: dict[int, dict[str, int]] = {}
        for result in self.results:
            counts = sections.setdefault(
                result.section,
                {"passed": 0, "failed": 0, "skipped": 0, "setup_failed": 0},
            )
            if result.phase == RunPhase.SETUP:
                if result.status == StatementStatus.FAILED:
                    counts["setup_failed"] += 1
                continue
            counts[result.status.value] += 1
        return sections

    def failed(self, include_cascaded: bool = True) -> list[StatementResult]:
        """Failed results, optionally without failures caused by an aborted block."""
        return [
            r for r in self.results
            if r.status == StatementStatus.FAILED and (include_cascaded or not r.cascaded)
        ]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for reports."""
        return {
            "guide": self.guide,
            "engine": self.engine,
            "isolation": self.isolation,
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
            "counts": self.counts(),
            "sections": {str(k): v for k, v in sorted(self.by_section().items())},
            "results": [r.to_dict() for r in self.results],
        }


class SandboxRunner:
    """Runs guide statements in disposable sandboxes.

    Args:
        config: Run configuration (engine, isolation, skip rules)
        sandbox_factory: Callable returning a new, unopened Sandbox.
            Defaults to ``create_sandbox(config)``.
    """

    def __init__(self, config: GuideConfig, sandbox_factory: Callable[[], Sandbox] | None = None):
        self.config = config
        self.sandbox_factory = sandbox_factory or (lambda: create_sandbox(config))
        try:
            self._skip_patterns = [re.compile(p, re.IGNORECASE) for p in config.skip_patterns]
        except re.error as e:
            raise InvalidConfigError("skip_patterns", str(e.pattern), f"Invalid skip pattern {e.pattern!r}: {e}") from e

    def run(self, guide: Guide, plan: SequencePlan, sections: Iterable[int] | None = None) -> RunReport:
        """Run the guide.

        Args:
            guide: Parsed guide
            plan: Sequence plan built for the guide
            sections: Section ordinals to run (``section`` isolation only);
                all sections when omitted

        Returns:
            RunReport
        """
        report = RunReport(
            guide=guide.title,
            engine=self.config.engine,
            isolation=self.config.isolation,
            run_id=uuid.uuid4().hex[:12],
            started_at=datetime.now(UTC),
        )
        selected = set(sections) if sections else None

        with LogContext(run_id=report.run_id):
            logger.info("run_started", guide=guide.title, engine=report.engine, isolation=report.isolation)
            try:
                if self.config.isolation == "guide":
                    if selected:
                        logger.warning("section_filter_ignored", isolation="guide")
                    self._run_guide(guide, plan, report)
                else:
                    for ordinal in plan.ordinals:
                        if selected is None or ordinal in selected:
                            self._run_section(ordinal, plan, report)
            except SandboxError as e:
                report.error = str(e)
                logger.error("run_aborted", error=str(e), category=e.category.value)

            report.completed_at = datetime.now(UTC)
            logger.info("run_completed", duration_seconds=report.duration_seconds, **report.counts())
        return report

    def _run_guide(self, guide: Guide, plan: SequencePlan, report: RunReport) -> None:
        with self.sandbox_factory() as sandbox:
            for section in guide.sections:
                with LogContext(section=section.ordinal):
                    self._execute(sandbox, section.statements, RunPhase.SECTION, section.ordinal, plan, report)

    def _run_section(self, ordinal: int, plan: SequencePlan, report: RunReport) -> None:
        statements = [s for s in plan.guide.statements if s.section == ordinal]
        with LogContext(section=ordinal), self.sandbox_factory() as sandbox:
            setup = plan.prerequisites(ordinal)
            if setup:
                logger.debug("section_setup", statements=[s.ref for s in setup])
            self._execute(sandbox, setup, RunPhase.SETUP, ordinal, plan, report)
            self._execute(sandbox, statements, RunPhase.SECTION, ordinal, plan, report)

            counts = report.by_section().get(ordinal, {})
            logger.info("section_completed", **counts)

    def _execute(
        self,
        sandbox: Sandbox,
        statements: list[Statement],
        phase: RunPhase,
        ordinal: int,
        plan: SequencePlan,
        report: RunReport,
    ) -> None:
        """Run statements in order, tracking aborted transaction blocks."""
        aborted_block = False
        for statement in statements:
            reason = self.skip_reason(statement, plan)
            if reason:
                report.results.append(StatementResult(
                    statement=statement,
                    section=ordinal,
                    phase=phase,
                    status=StatementStatus.SKIPPED,
                    reason=reason,
                ))
                continue

            outcome = sandbox.execute(statement)
            if outcome.ok:
                report.results.append(StatementResult(
                    statement=statement,
                    section=ordinal,
                    phase=phase,
                    status=StatementStatus.PASSED,
                    duration_ms=outcome.duration_ms,
                ))
            else:
                cascaded = aborted_block or outcome.sqlstate == IN_FAILED_TRANSACTION
                report.results.append(StatementResult(
                    statement=statement,
                    section=ordinal,
                    phase=phase,
                    status=StatementStatus.FAILED,
                    message=outcome.message,
                    sqlstate=outcome.sqlstate,
                    duration_ms=outcome.duration_ms,
                    cascaded=cascaded,
                ))
                if not cascaded:
                    logger.info(
                        "statement_failed",
                        statement=statement.ref,
                        line=statement.line,
                        phase=phase.value,
                        sqlstate=outcome.sqlstate,
                        error=outcome.message,
                    )
                if sandbox.in_failed_transaction:
                    aborted_block = True

            if aborted_block and not sandbox.in_transaction:
                aborted_block = False

        if sandbox.in_transaction:
            sandbox.recover()

    def skip_reason(self, statement: Statement, plan: SequencePlan | None = None) -> str | None:
        """Why a statement is not executed, or None to execute it."""
        if statement.kind == StatementKind.META:
            return "psql meta-command"
        if statement.kind == StatementKind.SHELL:
            return "shell command"
        if statement.kind != StatementKind.SQL:
            return f"{statement.kind} statement"

        if self.config.skip_server_level:
            info = plan.info_for(statement) if plan is not None else None
            server_level = info.server_level if info is not None else is_server_level(statement.text)
            if server_level:
                return "server-level statement"

        for pattern in self._skip_patterns:
            if pattern.search(statement.text):
                return f"matches skip pattern {pattern.pattern!r}"
        return None


__all__ = [
    "RunPhase",
    "RunReport",
    "SandboxRunner",
    "StatementResult",
    "StatementStatus",
]
