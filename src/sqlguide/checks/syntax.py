"""Syntax check: every SQL statement parses in the guide's dialect."""

from __future__ import annotations

from sqlguide.checks.base import Check, Finding, Severity
from sqlguide.parser.models import Guide
from sqlguide.sequencer import SequencePlan


class SyntaxCheck(Check):
    """Parse every SQL statement with sqlglot.

    - A parse error is an error, except in function, procedure and trigger
      definitions and DO blocks, where sqlglot's coverage of PostgreSQL is
      partial; those are warnings.
    - A statement sqlglot only keeps as an opaque command parses but is not
      verified (info).
    """

    name = "syntax"

    def run(self, guide: Guide, plan: SequencePlan) -> list[Finding]:
        findings = []
        for entry in plan.entries:
            info = entry.info
            if info.syntax_error:
                severity = Severity.WARNING if info.procedural else Severity.ERROR
                findings.append(Finding.at(
                    self.name,
                    severity,
                    f"Does not parse as {self.config.dialect} SQL: {info.syntax_error}",
                    entry.statement,
                ))
            elif not info.verified:
                keyword = entry.statement.text.split(None, 1)[0].upper() if entry.statement.text.strip() else ""
                findings.append(Finding.at(
                    self.name,
                    Severity.INFO,
                    f"{keyword} statement not verified (kept as an opaque command by the parser)",
                    entry.statement,
                ))
        return findings
