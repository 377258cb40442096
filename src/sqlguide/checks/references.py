"""Reference check: relations and columns are defined before they are used.

Strict mode (``reference_scope = "section"``) treats each section as a
worked example that should stand on its own: using a table that only an
earlier section creates is reported as an implicit dependency (warning).
Using one that is created later, or never, is an error in either mode.
"""

from __future__ import annotations

from sqlguide.analysis import PSEUDO_QUALIFIERS, StatementInfo
from sqlguide.checks.base import Check, Finding, Severity
from sqlguide.parser.models import Guide
from sqlguide.sequencer import Catalog, PlanEntry, SequencePlan


class ReferenceCheck(Check):
    """Check relation and column references against the definition ledger."""

    name = "references"

    def run(self, guide: Guide, plan: SequencePlan) -> list[Finding]:
        findings: list[Finding] = []
        catalog = Catalog()
        strict = self.config.reference_scope == "section"

        for entry in plan.entries:
            for name in entry.info.references:
                if name in self.config.ignored_objects:
                    continue
                finding = self._check_relation(name, entry, plan, catalog, strict)
                if finding is not None:
                    findings.append(finding)

            if entry.info.verified or entry.info.action == "alter":
                findings.extend(self._check_columns(entry, catalog))

            catalog.apply(entry.info)
        return findings

    def _check_relation(
        self,
        name: str,
        entry: PlanEntry,
        plan: SequencePlan,
        catalog: Catalog,
        strict: bool,
    ) -> Finding | None:
        statement = entry.statement
        earlier = plan.definition_before(name, entry.position)

        if earlier is None:
            later = plan.definition_after(name, entry.position)
            if later is not None:
                where = "later in this section" if later.section == entry.section else f"in section {later.section}"
                message = f"'{name}' is used before it is defined (defined {where}, {later.statement.ref})"
            else:
                message = f"'{name}' is never defined in the guide"
            return Finding.at(self.name, Severity.ERROR, message, statement)

        if name not in catalog:
            return Finding.at(
                self.name,
                Severity.WARNING,
                f"'{name}' was dropped or renamed before this statement",
                statement,
            )

        if strict and earlier.section != entry.section and not self._defined_in_section(name, entry, plan):
            return Finding.at(
                self.name,
                Severity.WARNING,
                f"'{name}' is defined only in an earlier section; "
                f"this section depends on section {earlier.section} ({earlier.statement.ref})",
                statement,
            )
        return None

    @staticmethod
    def _defined_in_section(name: str, entry: PlanEntry, plan: SequencePlan) -> bool:
        definition = plan.definition_before(name, entry.position)
        while definition is not None:
            if definition.section == entry.section:
                return True
            definition = plan.definition_before(name, definition.position)
        return False

    def _check_columns(self, entry: PlanEntry, catalog: Catalog) -> list[Finding]:
        info = entry.info
        findings = []
        relations = self._relations(info)

        for ref in info.column_refs:
            if ref.qualifier in PSEUDO_QUALIFIERS:
                continue

            if ref.qualifier is not None:
                relation = info.source_aliases.get(ref.qualifier)
                if relation is None and ref.qualifier not in info.source_aliases and ref.qualifier in catalog:
                    relation = ref.qualifier
                if relation is None:
                    continue
                columns = catalog.columns_of(relation)
                if columns is not None and ref.name not in columns:
                    findings.append(Finding.at(
                        self.name,
                        Severity.ERROR,
                        f"Column '{ref.name}' does not exist in '{relation}'",
                        entry.statement,
                    ))
                continue

            if info.opaque_sources or not relations:
                continue
            if ref.name in info.output_aliases or ref.name in info.source_aliases:
                continue
            known = [catalog.columns_of(r) for r in relations]
            if any(columns is None for columns in known):
                continue
            if not any(ref.name in columns for columns in known):
                findings.append(Finding.at(
                    self.name,
                    Severity.ERROR,
                    f"Column '{ref.name}' does not exist in {', '.join(repr(r) for r in sorted(relations))}",
                    entry.statement,
                ))
        return findings

    @staticmethod
    def _relations(info: StatementInfo) -> set[str]:
        """Relations feeding a statement."""
        relations = {name for name in info.source_aliases.values() if name}
        if info.target:
            relations.add(info.target)
        return relations
