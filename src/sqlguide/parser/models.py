"""
Document model for a SQL guide.

A guide is an ordered list of numbered sections; each section holds code
blocks; each block holds statements. Tables and other database objects
named by the statements are not part of this model: they belong to the
external engine and are inferred later by ``sqlguide.analysis``.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class StatementKind:
    """Kinds of statement found in code blocks."""

    SQL = "sql"
    META = "meta"  # psql backslash command
    SHELL = "shell"


class BlockKind:
    """Kinds of code block."""

    SQL = "sql"
    SHELL = "shell"
    OTHER = "other"


@dataclass
class Statement:
    """A single statement inside a code block.

    Attributes:
        text: Statement text without the terminating semicolon
        line: 1-based line in the guide where the statement starts
        kind: sql, meta or shell
        annotation: The ``--`` comment directly above the statement
        section: Ordinal of the owning section
        block: Index of the owning block within the section
        index: Index of the statement within the block
    """

    text: str
    line: int
    kind: str = StatementKind.SQL
    annotation: str = ""
    section: int = 0
    block: int = 0
    index: int = 0

    @property
    def ref(self) -> str:
        """Stable reference such as ``S9.B2.#1``."""
        return f"S{self.section}.B{self.block}.#{self.index}"

    def to_dict(self) -> dict[str, Any]:
        """Convert statement to dictionary."""
        return {
            "ref": self.ref,
            "text": self.text,
            "line": self.line,
            "kind": self.kind,
            "annotation": self.annotation,
        }


@dataclass
class CodeBlock:
    """A fenced code block (or annotated statement run in a .sql script)."""

    section: int
    index: int
    language: str
    kind: str
    text: str
    line: int
    annotation: str = ""
    statements: list[Statement] = field(default_factory=list)

    @property
    def ref(self) -> str:
        return f"S{self.section}.B{self.index}"

    def to_dict(self) -> dict[str, Any]:
        """Convert block to dictionary."""
        return {
            "ref": self.ref,
            "language": self.language,
            "kind": self.kind,
            "line": self.line,
            "annotation": self.annotation,
            "statements": [s.to_dict() for s in self.statements],
        }


@dataclass
class Heading:
    """A markdown heading with its computed anchor."""

    level: int
    text: str
    anchor: str
    line: int


@dataclass
class Link:
    """An intra-document ``[text](#anchor)`` link."""

    text: str
    anchor: str
    line: int


@dataclass
class Section:
    """A numbered topic of the guide.

    Attributes:
        ordinal: Number parsed from the heading
        title: Heading text after the number
        anchor: Anchor of the heading
        line: Line of the heading
        blocks: Code blocks in document order
        prose: Non-code text of the section
    """

    ordinal: int
    title: str
    anchor: str = ""
    line: int = 0
    blocks: list[CodeBlock] = field(default_factory=list)
    prose: str = ""

    @property
    def statements(self) -> list[Statement]:
        return [s for block in self.blocks for s in block.statements]

    def to_dict(self) -> dict[str, Any]:
        """Convert section to dictionary."""
        return {
            "ordinal": self.ordinal,
            "title": self.title,
            "anchor": self.anchor,
            "line": self.line,
            "blocks": [b.to_dict() for b in self.blocks],
        }


@dataclass
class Guide:
    """A parsed guide document."""

    title: str
    source: Path | None = None
    source_format: str = "markdown"
    sections: list[Section] = field(default_factory=list)
    headings: list[Heading] = field(default_factory=list)
    toc_links: list[Link] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)
    has_toc: bool = False

    def section(self, ordinal: int) -> Section | None:
        """Get the first section with the given ordinal."""
        for section in self.sections:
            if section.ordinal == ordinal:
                return section
        return None

    @property
    def blocks(self) -> list[CodeBlock]:
        return [b for section in self.sections for b in section.blocks]

    @property
    def statements(self) -> list[Statement]:
        return [s for section in self.sections for s in section.statements]

    def stats(self) -> dict[str, Any]:
        """Count sections, blocks and statements by kind."""
        statement_kinds: dict[str, int] = {}
        for statement in self.statements:
            statement_kinds[statement.kind] = statement_kinds.get(statement.kind, 0) + 1

        block_kinds: dict[str, int] = {}
        for block in self.blocks:
            block_kinds[block.kind] = block_kinds.get(block.kind, 0) + 1

        return {
            "title": self.title,
            "source_format": self.source_format,
            "sections": len(self.sections),
            "blocks": len(self.blocks),
            "block_kinds": block_kinds,
            "statements": len(self.statements),
            "statement_kinds": statement_kinds,
            "toc_links": len(self.toc_links),
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert guide to dictionary."""
        return {
            "title": self.title,
            "source": str(self.source) if self.source else None,
            "source_format": self.source_format,
            "sections": [s.to_dict() for s in self.sections],
        }
