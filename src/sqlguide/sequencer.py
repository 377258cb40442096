"""
Dependency sequencer: makes the guide's implicit cross-section structure explicit.

A section of a tutorial guide usually reuses tables created sections earlier.
The sequencer analyses every SQL statement once, keeps a ledger of what each
statement defines, and derives:

- which earlier sections each section depends on (and for which objects)
- references satisfied only by a later section (forward references)
- the setup statements a fresh sandbox needs before a section runs
- a topological execution order over the sections

Architecture:
    ```
    Guide ──► analyze_statement() per SQL statement ──► PlanEntry ledger
                                                            │
              ┌─────────────────────────┬───────────────────┤
              ▼                         ▼                   ▼
      section_dependencies      forward_references    prerequisites(n)
              │
              ▼
      execution_order()  (Kahn, ties broken by ordinal)
    ```

Example:
    >>> plan = DependencySequencer(guide).build()
    >>> [d.depends_on for d in plan.section_dependencies[9]]
    [3, 4]
    >>> plan.is_pedagogically_ordered
    True
"""

import heapq
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from sqlguide.analysis import RELATION_KINDS, StatementInfo, analyze_statement
from sqlguide.config import GuideConfig
from sqlguide.errors import SequencingError
from sqlguide.logging import get_logger
from sqlguide.parser.models import Guide, Statement, StatementKind

logger = get_logger(__name__)


@dataclass
class PlanEntry:
    """One analysed SQL statement at its document position."""

    position: int
    statement: Statement
    info: StatementInfo

    @property
    def section(self) -> int:
        return self.statement.section


@dataclass
class SectionDependency:
    """Section ``section`` uses objects first defined in ``depends_on``."""

    section: int
    depends_on: int
    objects: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"section": self.section, "depends_on": self.depends_on, "objects": list(self.objects)}


@dataclass
class ForwardReference:
    """A reference satisfied only by a definition in a later section."""

    section: int
    statement: str
    line: int
    name: str
    defined_in: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "section": self.section,
            "statement": self.statement,
            "line": self.line,
            "name": self.name,
            "defined_in": self.defined_in,
        }


class Catalog:
    """Relations and columns known after applying statements in order.

    Column lists are ``None`` when they cannot be inferred (views over
    ``SELECT *``, tables created by unparsed statements).
    """

    def __init__(self):
        self.objects: dict[str, str] = {}
        self.columns: dict[str, list[str] | None] = {}

    def __contains__(self, name: str) -> bool:
        return name in self.objects

    def columns_of(self, name: str) -> list[str] | None:
        return self.columns.get(name)

    def apply(self, info: StatementInfo) -> None:
        for name, kind in info.defines.items():
            self.objects[name] = kind
            if kind in RELATION_KINDS:
                columns = info.columns.get(name)
                self.columns[name] = list(columns) if columns is not None else None

        for child, parent in info.inherits.items():
            parent_columns = self.columns.get(parent)
            self.columns[child] = list(parent_columns) if parent_columns is not None else None

        for table, added in info.added_columns.items():
            columns = self.columns.get(table)
            if columns is not None:
                columns.extend(c for c in added if c not in columns)

        for table, dropped in info.dropped_columns.items():
            columns = self.columns.get(table)
            if columns is not None:
                self.columns[table] = [c for c in columns if c not in dropped]

        for table, renamed in info.column_renames.items():
            columns = self.columns.get(table)
            if columns is not None:
                self.columns[table] = [renamed.get(c, c) for c in columns]

        for old, new in info.renames.items():
            if old in self.objects:
                self.objects[new] = self.objects.pop(old)
            if old in self.columns:
                self.columns[new] = self.columns.pop(old)

        for name in info.drops:
            self.objects.pop(name, None)
            self.columns.pop(name, None)


def provided_names(info: StatementInfo) -> list[str]:
    """Names a statement makes available to later statements."""
    return list(info.defines) + list(info.renames.values())


def required_names(info: StatementInfo) -> list[str]:
    """Names a statement needs to exist before it runs."""
    names = list(info.references)
    names.extend(name for name in info.function_calls if name not in names)
    return names


class SequencePlan:
    """Analysed guide plus the dependency structure derived from it."""

    def __init__(self, guide: Guide, entries: list[PlanEntry], config: GuideConfig):
        self.guide = guide
        self.entries = entries
        self.config = config
        self.section_dependencies: dict[int, list[SectionDependency]] = {}
        self.forward_references: list[ForwardReference] = []

        self._by_statement: dict[int, PlanEntry] = {id(e.statement): e for e in entries}
        self._definitions: dict[str, list[PlanEntry]] = defaultdict(list)
        self._creates: dict[str, list[PlanEntry]] = defaultdict(list)
        for entry in entries:
            for name in provided_names(entry.info):
                self._definitions[name].append(entry)
            for name in entry.info.defines:
                self._creates[name].append(entry)

    # =========================================================================
    # Lookups
    # =========================================================================

    def info_for(self, statement: Statement) -> StatementInfo | None:
        """Analysis of a statement (None for meta and shell statements)."""
        entry = self._by_statement.get(id(statement))
        return entry.info if entry else None

    def section_entries(self, ordinal: int) -> list[PlanEntry]:
        return [e for e in self.entries if e.section == ordinal]

    def is_known(self, name: str) -> bool:
        """True when some statement of the guide defines ``name``."""
        return name in self._definitions

    def definition_before(self, name: str, position: int) -> PlanEntry | None:
        """Nearest definition of ``name`` strictly before ``position``."""
        found = None
        for entry in self._definitions.get(name, []):
            if entry.position >= position:
                break
            found = entry
        return found

    def definition_after(self, name: str, position: int) -> PlanEntry | None:
        """First definition of ``name`` after ``position``."""
        for entry in self._definitions.get(name, []):
            if entry.position > position:
                return entry
        return None

    def _ignored(self, name: str) -> bool:
        return name in self.config.ignored_objects

    # =========================================================================
    # Prerequisites
    # =========================================================================

    def missing_names(self, ordinal: int) -> list[tuple[str, PlanEntry]]:
        """Names a section uses before (or without) defining them itself.

        Returns:
            (name, first entry using it) pairs in order of first use
        """
        local: set[str] = set()
        missing: dict[str, PlanEntry] = {}
        for entry in self.section_entries(ordinal):
            for name in required_names(entry.info):
                if name in local or name in missing or self._ignored(name):
                    continue
                missing[name] = entry
            local.update(provided_names(entry.info))
        return list(missing.items())

    def prerequisites(self, ordinal: int) -> list[Statement]:
        """Statements a fresh sandbox needs before section ``ordinal`` runs.

        These are the nearest earlier CREATE of each object the section uses
        without defining, that object's ALTER ... ADD COLUMN statements and
        (when ``include_seed_data`` is on) its INSERT statements, closed over
        their own references. DROP, RENAME and server-level statements are
        never included. Returned in document order.
        """
        section_entries = self.section_entries(ordinal)
        if not section_entries:
            return []
        start = section_entries[0].position

        chosen: dict[int, PlanEntry] = {}
        resolved: set[str] = set()
        pending: list[tuple[str, int]] = [(name, start) for name, _ in reversed(self.missing_names(ordinal))]

        while pending:
            name, before = pending.pop()
            if name in resolved or self._ignored(name):
                continue
            resolved.add(name)

            create = self._nearest_create(name, min(before, start))
            if create is None:
                continue

            needed = [create] + self._column_additions(name, create.position, start)
            if self.config.include_seed_data:
                needed += self._seed_rows(name, create.position, start)

            for entry in needed:
                if entry.position in chosen:
                    continue
                chosen[entry.position] = entry
                for dependency in required_names(entry.info):
                    if dependency != name and dependency not in resolved:
                        pending.append((dependency, entry.position))

        return [chosen[position].statement for position in sorted(chosen)]

    def _nearest_create(self, name: str, before: int) -> PlanEntry | None:
        found = None
        for entry in self._creates.get(name, []):
            if entry.position >= before:
                break
            if entry.info.server_level:
                continue
            found = entry
        return found

    def _column_additions(self, name: str, after: int, before: int) -> list[PlanEntry]:
        return [
            e for e in self.entries
            if after < e.position < before
            and name in e.info.added_columns
            and not (e.info.renames or e.info.dropped_columns or e.info.column_renames)
        ]

    def _seed_rows(self, name: str, after: int, before: int) -> list[PlanEntry]:
        return [
            e for e in self.entries
            if after < e.position < before
            and e.info.action == "insert"
            and e.info.target == name
            and not e.info.server_level
        ]

    # =========================================================================
    # Ordering
    # =========================================================================

    @property
    def ordinals(self) -> list[int]:
        """Distinct section ordinals in document order."""
        seen: list[int] = []
        for section in self.guide.sections:
            if section.ordinal not in seen:
                seen.append(section.ordinal)
        return seen

    def execution_order(self) -> list[int]:
        """Sections in dependency order (Kahn's algorithm, ties by ordinal).

        Raises:
            SequencingError: The dependencies contain a cycle
        """
        nodes = self.ordinals
        in_degree: dict[int, int] = {n: 0 for n in nodes}
        adjacency: dict[int, list[int]] = defaultdict(list)

        for ordinal, dependencies in self.section_dependencies.items():
            for dependency in dependencies:
                adjacency[dependency.depends_on].append(ordinal)
                in_degree[ordinal] += 1

        ready = [n for n, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        order: list[int] = []

        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for neighbor in adjacency[node]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    heapq.heappush(ready, neighbor)

        if len(order) < len(nodes):
            stuck = sorted(n for n in nodes if n not in order)
            raise SequencingError(
                f"Section dependencies contain a cycle between sections {', '.join(map(str, stuck))}"
            ).with_context(guide=str(self.guide.source) if self.guide.source else None, sections=stuck)
        return order

    @property
    def is_pedagogically_ordered(self) -> bool:
        """True when dependency order equals ordinal order."""
        return self.execution_order() == sorted(self.ordinals)

    # =========================================================================
    # Summaries
    # =========================================================================

    def defined_objects(self) -> dict[str, int]:
        """Count objects defined per kind."""
        counts: dict[str, int] = {}
        seen: set[tuple[str, str]] = set()
        for entry in self.entries:
            for name, kind in entry.info.defines.items():
                if (name, kind) in seen:
                    continue
                seen.add((name, kind))
                counts[kind] = counts.get(kind, 0) + 1
        return counts

    def dependency_graph(self) -> dict[str, Any]:
        """Sections as nodes, dependencies as edges."""
        nodes = []
        for section in self.guide.sections:
            defines = []
            for entry in self.section_entries(section.ordinal):
                defines.extend(name for name in entry.info.defines if name not in defines)
            nodes.append({
                "section": section.ordinal,
                "title": section.title,
                "anchor": section.anchor,
                "defines": defines,
            })
        edges = [
            dependency.to_dict()
            for ordinal in self.ordinals
            for dependency in self.section_dependencies.get(ordinal, [])
        ]
        return {
            "guide": self.guide.title,
            "nodes": nodes,
            "edges": edges,
            "forward_references": [f.to_dict() for f in self.forward_references],
        }

    def to_dict(self) -> dict[str, Any]:
        graph = self.dependency_graph()
        graph["execution_order"] = self.execution_order()
        graph["is_pedagogically_ordered"] = graph["execution_order"] == sorted(self.ordinals)
        return graph


class DependencySequencer:
    """Builds a SequencePlan for a guide.

    Guardrails:
        - Do NOT reorder statements inside a section
          ✅ Only sections are sequenced; declared order is kept within them
        - Do NOT pull destructive statements into prerequisites
          ✅ DROP, RENAME and server-level statements are never setup
    """

    def __init__(self, guide: Guide, dialect: str | None = None, config: GuideConfig | None = None):
        self.guide = guide
        self.config = config or GuideConfig()
        self.dialect = dialect or self.config.dialect

    def build(self) -> SequencePlan:
        entries = []
        for position, statement in enumerate(self.guide.statements):
            if statement.kind != StatementKind.SQL:
                continue
            info = analyze_statement(statement, self.dialect, self.config.system_schemas)
            entries.append(PlanEntry(position=position, statement=statement, info=info))

        plan = SequencePlan(self.guide, entries, self.config)
        for ordinal in plan.ordinals:
            plan.section_dependencies[ordinal] = self._dependencies(plan, ordinal)

        logger.debug(
            "sequence_built",
            statements=len(entries),
            dependencies=sum(len(d) for d in plan.section_dependencies.values()),
            forward_references=len(plan.forward_references),
        )
        return plan

    def _dependencies(self, plan: SequencePlan, ordinal: int) -> list[SectionDependency]:
        by_section: dict[int, SectionDependency] = {}
        for name, entry in plan.missing_names(ordinal):
            earlier = plan.definition_before(name, entry.position)
            while earlier is not None and earlier.section == ordinal:
                earlier = plan.definition_before(name, earlier.position)
            if earlier is not None:
                dependency = by_section.setdefault(
                    earlier.section, SectionDependency(section=ordinal, depends_on=earlier.section)
                )
                dependency.objects.append(name)
                continue

            later = plan.definition_after(name, entry.position)
            if later is not None and later.section != ordinal:
                plan.forward_references.append(ForwardReference(
                    section=ordinal,
                    statement=entry.statement.ref,
                    line=entry.statement.line,
                    name=name,
                    defined_in=later.section,
                ))
        return [by_section[key] for key in sorted(by_section)]
