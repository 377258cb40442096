"""
Markdown guide parser.

Reads a guide written as markdown: numbered section headings, a table of
contents with anchor links, and fenced SQL or shell code blocks.

Example:
    >>> parser = MarkdownGuideParser()
    >>> guide = parser.parse(Path("docs/postgresql_guide.md").read_text())
    >>> guide.sections[8].title
    'Joins'
"""

import re
from pathlib import Path

from sqlguide.config import GuideConfig
from sqlguide.errors import GuideParseError
from sqlguide.logging import get_logger
from sqlguide.parser.anchors import AnchorRegistry
from sqlguide.parser.models import CodeBlock, Guide, Heading, Link, Section
from sqlguide.parser.statements import split_statements

logger = get_logger(__name__)

_HEADING = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_FENCE_OPEN = re.compile(r"^ {0,3}(`{3,}|~{3,})\s*([^`\s]*)")
_ANCHOR_LINK = re.compile(r"\[([^\]]+)\]\(#([^)\s]+)\)")
_NUMBERED_TITLE = re.compile(r"^(\d+)[.)]\s+(.+)$")
_TOC_TITLE = re.compile(r"^(table of contents|contents|toc)$", re.IGNORECASE)
_LEADING_COMMENT = re.compile(r"^\s*--\s?(.*)$")


class MarkdownGuideParser:
    """Parse a markdown guide into sections, blocks and statements.

    Architecture:
        ```
        markdown text
              │
              ▼
        line scan ──► headings (anchors) ──► numbered sections
              │
              ├──► fenced blocks ──► split_statements()
              │
              └──► [text](#anchor) links ──► toc_links / links
        ```

    Guardrails:
        - Do NOT look for headings or links inside code fences
          ✅ Fence state is tracked before anything else on a line
        - Do NOT guess where an unterminated fence ends
          ✅ Raise GuideParseError with the opening line
    """

    def __init__(self, config: GuideConfig | None = None):
        self.config = config or GuideConfig()

    def parse(self, text: str, source: Path | None = None) -> Guide:
        """Parse markdown text.

        Args:
            text: Guide content
            source: Path the content was read from (for reporting)

        Returns:
            Parsed Guide
        """
        level = self.config.section_heading_level
        anchors = AnchorRegistry()
        guide = Guide(title="", source=source, source_format="markdown")

        section: Section | None = None
        prose: list[str] = []
        recent: list[str] = []
        toc_level: int | None = None

        fence: str | None = None
        fence_info = ""
        fence_line = 0
        fence_body: list[str] = []

        for lineno, line in enumerate(text.splitlines(), start=1):
            if fence is not None:
                stripped = line.strip()
                if stripped.startswith(fence[0] * len(fence)) and not stripped.strip(fence[0]):
                    if section is not None:
                        self._add_block(section, fence_info, fence_body, fence_line, recent)
                    else:
                        logger.debug("block_outside_section", line=fence_line)
                    recent = []
                    fence = None
                else:
                    fence_body.append(line)
                continue

            fence_match = _FENCE_OPEN.match(line)
            if fence_match:
                fence = fence_match.group(1)
                fence_info = fence_match.group(2)
                fence_line = lineno
                fence_body = []
                continue

            heading_match = _HEADING.match(line)
            if heading_match:
                heading_level = len(heading_match.group(1))
                heading_text = heading_match.group(2).strip()
                heading = Heading(
                    level=heading_level,
                    text=heading_text,
                    anchor=anchors.anchor_for(heading_text),
                    line=lineno,
                )
                guide.headings.append(heading)

                if heading_level == 1 and not guide.title:
                    guide.title = heading_text

                if toc_level is not None and heading_level <= toc_level:
                    toc_level = None
                if _TOC_TITLE.match(heading_text):
                    toc_level = heading_level
                    guide.has_toc = True

                if heading_level <= level:
                    if section is not None:
                        section.prose = "\n".join(prose).strip()
                        section = None
                    prose = []
                    recent = []
                    numbered = _NUMBERED_TITLE.match(heading_text)
                    if heading_level == level and numbered:
                        section = Section(
                            ordinal=int(numbered.group(1)),
                            title=numbered.group(2).strip(),
                            anchor=heading.anchor,
                            line=lineno,
                        )
                        guide.sections.append(section)
                else:
                    prose.append(line)
                    recent.append(heading_text)
                continue

            for link_match in _ANCHOR_LINK.finditer(line):
                link = Link(text=link_match.group(1), anchor=link_match.group(2), line=lineno)
                guide.links.append(link)
                if toc_level is not None:
                    guide.toc_links.append(link)

            prose.append(line)
            recent.append(line)

        if fence is not None:
            raise GuideParseError(
                f"Unterminated code fence opened at line {fence_line}"
            ).with_context(guide=str(source) if source else None, line=fence_line)

        if section is not None:
            section.prose = "\n".join(prose).strip()

        if not guide.title:
            guide.title = source.stem if source else "Untitled guide"

        logger.debug(
            "markdown_parsed",
            sections=len(guide.sections),
            headings=len(guide.headings),
            links=len(guide.links),
        )
        return guide

    def _add_block(
        self,
        section: Section,
        info: str,
        body: list[str],
        fence_line: int,
        prose: list[str],
    ) -> None:
        """Create a code block from a closed fence."""
        language = info.lower()
        kind = self.config.language_kind(language)
        text = "\n".join(body)

        block = CodeBlock(
            section=section.ordinal,
            index=len(section.blocks) + 1,
            language=language,
            kind=kind,
            text=text,
            line=fence_line,
            annotation=self._annotation(body, prose),
        )
        block.statements = split_statements(text, kind, start_line=fence_line + 1)
        for statement in block.statements:
            statement.section = section.ordinal
            statement.block = block.index
        section.blocks.append(block)

    def _annotation(self, body: list[str], prose: list[str]) -> str:
        """Leading ``--`` comment of the block, else the prose line above it."""
        comments = []
        for line in body:
            if not line.strip():
                if comments:
                    break
                continue
            match = _LEADING_COMMENT.match(line)
            if not match:
                break
            comments.append(match.group(1).strip())
        if comments:
            return " ".join(c for c in comments if c)

        for line in reversed(prose):
            stripped = line.strip()
            if stripped:
                return stripped.rstrip(":").strip()
        return ""
