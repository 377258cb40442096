"""Finding and check base types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlguide.config import GuideConfig
from sqlguide.parser.models import Guide, Statement
from sqlguide.sequencer import SequencePlan


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Finding:
    """A documentation defect (or note) found by a check.

    Attributes:
        check: Name of the check that produced it
        severity: error, warning or info
        message: Human-readable description
        section: Section ordinal, when the finding concerns one
        block: Block index within the section
        line: Guide line number
        statement: Statement reference (``S9.B2.#1``)
    """

    check: str
    severity: Severity
    message: str
    section: int | None = None
    block: int | None = None
    line: int | None = None
    statement: str | None = None

    @classmethod
    def at(cls, check: str, severity: Severity, message: str, statement: Statement) -> Finding:
        """Finding located at a statement."""
        return cls(
            check=check,
            severity=severity,
            message=message,
            section=statement.section,
            block=statement.block,
            line=statement.line,
            statement=statement.ref,
        )

    @property
    def location(self) -> str:
        parts = []
        if self.statement:
            parts.append(self.statement)
        elif self.section is not None:
            parts.append(f"S{self.section}")
        if self.line is not None:
            parts.append(f"line {self.line}")
        return ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "check": self.check,
            "severity": self.severity.value,
            "message": self.message,
            "section": self.section,
            "block": self.block,
            "line": self.line,
            "statement": self.statement,
        }


@dataclass
class CheckReport:
    """Findings of all checks run on a guide."""

    guide: str
    checks: list[str] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)

    def _with(self, severity: Severity) -> list[Finding]:
        return [f for f in self.findings if f.severity == severity]

    @property
    def errors(self) -> list[Finding]:
        return self._with(Severity.ERROR)

    @property
    def warnings(self) -> list[Finding]:
        return self._with(Severity.WARNING)

    @property
    def infos(self) -> list[Finding]:
        return self._with(Severity.INFO)

    @property
    def ok(self) -> bool:
        return not self.errors

    def by_check(self) -> dict[str, list[Finding]]:
        grouped: dict[str, list[Finding]] = {name: [] for name in self.checks}
        for finding in self.findings:
            grouped.setdefault(finding.check, []).append(finding)
        return grouped

    def to_dict(self) -> dict[str, Any]:
        return {
            "guide": self.guide,
            "checks": list(self.checks),
            "ok": self.ok,
            "counts": {
                "errors": len(self.errors),
                "warnings": len(self.warnings),
                "infos": len(self.infos),
            },
            "findings": [f.to_dict() for f in self.findings],
        }


class Check(ABC):
    """A documentation-quality check over a parsed guide."""

    name = ""

    def __init__(self, config: GuideConfig | None = None):
        self.config = config or GuideConfig()

    @abstractmethod
    def run(self, guide: Guide, plan: SequencePlan) -> list[Finding]:
        """Return the findings for the guide."""
        ...

    def finding(self, severity: Severity, message: str, **location: Any) -> Finding:
        return Finding(check=self.name, severity=severity, message=message, **location)


__all__ = [
    "Check",
    "CheckReport",
    "Finding",
    "Severity",
]
