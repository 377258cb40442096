"""Ordering check: section numbers are unique, increasing and gap-free."""

from __future__ import annotations

from sqlguide.checks.base import Check, Finding, Severity
from sqlguide.parser.models import Guide
from sqlguide.sequencer import SequencePlan


class OrderingCheck(Check):
    name = "ordering"

    def run(self, guide: Guide, plan: SequencePlan) -> list[Finding]:
        findings = []
        if not guide.sections:
            level = "#" * self.config.section_heading_level
            return [self.finding(
                Severity.ERROR,
                f"No numbered sections found (expected headings like '{level} 1. Title')",
            )]

        first_seen: dict[int, int] = {}
        highest: int | None = None
        for section in guide.sections:
            ordinal = section.ordinal
            if ordinal in first_seen:
                findings.append(self.finding(
                    Severity.ERROR,
                    f"Section number {ordinal} is used more than once (first at line {first_seen[ordinal]})",
                    section=ordinal,
                    line=section.line,
                ))
            elif highest is not None and ordinal < highest:
                findings.append(self.finding(
                    Severity.ERROR,
                    f"Section {ordinal} ({section.title}) appears after section {highest}",
                    section=ordinal,
                    line=section.line,
                ))
            first_seen.setdefault(ordinal, section.line)
            highest = ordinal if highest is None else max(highest, ordinal)

            if not section.blocks:
                findings.append(self.finding(
                    Severity.INFO,
                    f"Section {ordinal} ({section.title}) has no code blocks",
                    section=ordinal,
                    line=section.line,
                ))

        numbers = sorted(first_seen)
        if numbers[0] != 1:
            findings.append(self.finding(Severity.WARNING, f"Section numbering starts at {numbers[0]}, not 1"))
        for low, high in zip(numbers, numbers[1:]):
            if high - low > 1:
                missing = f"{low + 1}" if high - low == 2 else f"{low + 1}-{high - 1}"
                findings.append(self.finding(
                    Severity.WARNING,
                    f"Section numbering skips {missing}",
                    section=high,
                ))
        return findings
