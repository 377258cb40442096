"""
Parser for guides written as a single commented SQL script.

Sections are delimited by banner comments::

    -- ============================================================
    -- 9. JOINS
    -- ============================================================

Inside a section, a comment that follows a blank line starts a new block and
becomes its annotation. Commented-out client commands (``-- pg_dump ...``)
are collected into shell blocks.
"""

import re
from pathlib import Path

from sqlguide.config import GuideConfig
from sqlguide.logging import get_logger
from sqlguide.parser.anchors import AnchorRegistry
from sqlguide.parser.models import BlockKind, CodeBlock, Guide, Heading, Section, Statement, StatementKind
from sqlguide.parser.statements import split_statements

logger = get_logger(__name__)

_BANNER_RULE = re.compile(r"^\s*--\s*={5,}\s*$")
_COMMENT = re.compile(r"^\s*--\s?(.*)$")
_NUMBERED_TITLE = re.compile(r"^(\d+)[.)]\s+(.+)$")
_END_TITLE = re.compile(r"^END\b", re.IGNORECASE)
_SHELL_COMMAND = re.compile(
    r"^(pg_dump|pg_dumpall|pg_restore|psql|createdb|dropdb|pg_ctl|vacuumdb|pg_basebackup)\b"
)

_KEEP_UPPER = {"CTE", "JSON", "JSONB", "SQL", "CSV", "DDL", "DML", "ID", "UUID"}
_SPECIAL_WORDS = {"postgresql": "PostgreSQL", "mysql": "MySQL", "sqlite": "SQLite"}
_SMALL_WORDS = {"and", "or", "of", "to", "in", "the", "a", "an", "for", "with"}


def display_title(title: str) -> str:
    """Turn an upper-case banner title into a readable heading.

    Example:
        >>> display_title("COMMON TABLE EXPRESSIONS (CTE)")
        'Common Table Expressions (CTE)'
    """
    words = []
    for position, word in enumerate(title.split()):
        parts = []
        for part in word.split("/"):
            core = part.strip("()")
            if core.lower() in _SPECIAL_WORDS:
                parts.append(part.replace(core, _SPECIAL_WORDS[core.lower()], 1))
            elif core.upper() in _KEEP_UPPER:
                parts.append(part.upper())
            elif position > 0 and core.lower() in _SMALL_WORDS:
                parts.append(part.lower())
            else:
                parts.append(part.replace(core, core.capitalize(), 1) if core else part)
        words.append("/".join(parts))
    return " ".join(words)


class SqlScriptParser:
    """Parse a banner-sectioned SQL script into a Guide.

    Features:
        - Numbered banners become sections; the first other banner is the title
        - An END banner closes the guide
        - Comment runs after blank lines start annotated blocks
        - Scripts without banners become one section numbered 1
    """

    def __init__(self, config: GuideConfig | None = None):
        self.config = config or GuideConfig()

    def parse(self, text: str, source: Path | None = None) -> Guide:
        """Parse script text.

        Args:
            text: Script content
            source: Path the content was read from

        Returns:
            Parsed Guide
        """
        lines = text.splitlines()
        guide = Guide(title="", source=source, source_format="sql_script")
        anchors = AnchorRegistry()

        # (ordinal, title, index of the title line, index of the first body line)
        spans: list[tuple[int, str, int, int]] = []
        body_end = len(lines)

        i = 0
        while i < len(lines):
            if (
                i + 2 < len(lines)
                and _BANNER_RULE.match(lines[i])
                and _BANNER_RULE.match(lines[i + 2])
                and _COMMENT.match(lines[i + 1])
            ):
                title = _COMMENT.match(lines[i + 1]).group(1).strip()
                numbered = _NUMBERED_TITLE.match(title)
                if numbered:
                    spans.append((int(numbered.group(1)), numbered.group(2).strip(), i + 1, i + 3))
                elif _END_TITLE.match(title):
                    body_end = i
                    break
                elif not guide.title:
                    guide.title = display_title(title)
                i += 3
                continue
            i += 1

        if not guide.title:
            guide.title = display_title(source.stem.replace("_", " ")) if source else "Untitled guide"

        if not spans:
            spans.append((1, guide.title, 0, 0))

        for position, (ordinal, title, heading_index, start) in enumerate(spans):
            end = spans[position + 1][2] - 1 if position + 1 < len(spans) else body_end
            section_title = display_title(title)
            heading_text = f"{ordinal}. {section_title}"
            anchor = anchors.anchor_for(heading_text)
            section = Section(
                ordinal=ordinal,
                title=section_title,
                anchor=anchor,
                line=heading_index + 1,
            )
            guide.headings.append(Heading(level=2, text=heading_text, anchor=anchor, line=heading_index + 1))
            self._parse_body(section, lines, start, end)
            guide.sections.append(section)

        logger.debug("sql_script_parsed", sections=len(guide.sections))
        return guide

    def _parse_body(self, section: Section, lines: list[str], start: int, end: int) -> None:
        """Split a section's lines into blocks."""
        chunk_start: int | None = None
        previous_blank = True

        for index in range(start, end):
            line = lines[index]
            if _BANNER_RULE.match(line):
                previous_blank = True
                continue
            if not line.strip():
                previous_blank = True
                continue
            if _COMMENT.match(line) and previous_blank and chunk_start is not None:
                self._add_chunk(section, lines, chunk_start, index)
                chunk_start = index
            elif chunk_start is None:
                chunk_start = index
            previous_blank = False

        if chunk_start is not None:
            self._add_chunk(section, lines, chunk_start, end)

    def _add_chunk(self, section: Section, lines: list[str], start: int, end: int) -> None:
        """Turn lines[start:end] into one code block."""
        chunk = lines[start:end]
        while chunk and not chunk[-1].strip():
            chunk.pop()
        if not chunk:
            return

        annotation_lines = []
        for line in chunk:
            match = _COMMENT.match(line)
            if not match:
                break
            annotation_lines.append(match.group(1).strip())

        text = "\n".join(chunk)
        first_line = start + 1
        index = len(section.blocks) + 1

        statements = split_statements(text, StatementKind.SQL, start_line=first_line)
        kind = BlockKind.SQL
        language = "sql"
        annotation = annotation_lines[0] if annotation_lines else ""

        if not statements and len(annotation_lines) > 1:
            commands = [
                (offset, comment) for offset, comment in enumerate(annotation_lines[1:], start=1)
                if _SHELL_COMMAND.match(comment)
            ]
            if commands:
                kind = BlockKind.SHELL
                language = "sh"
                statements = [
                    Statement(
                        text=comment,
                        line=first_line + offset,
                        kind=StatementKind.SHELL,
                        annotation=annotation,
                    )
                    for offset, comment in commands
                ]
                text = "\n".join(comment for _, comment in commands)
        elif len(annotation_lines) == len(chunk):
            annotation = " ".join(annotation_lines)

        block = CodeBlock(
            section=section.ordinal,
            index=index,
            language=language,
            kind=kind,
            text=text,
            line=first_line,
            annotation=annotation,
        )
        for number, statement in enumerate(statements, start=1):
            statement.section = section.ordinal
            statement.block = index
            statement.index = number
        block.statements = statements
        section.blocks.append(block)
