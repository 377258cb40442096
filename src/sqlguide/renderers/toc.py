"""Table of contents renderer."""

import re
from pathlib import Path

from sqlguide.parser.models import Guide
from sqlguide.renderers.base import BaseRenderer

_HEADING = re.compile(r"^#{1,6}\s+\S")
_TOC_HEADING = re.compile(r"^(#{1,6})\s+(table of contents|contents|toc)\s*#*\s*$", re.IGNORECASE)
_FENCE = re.compile(r"^ {0,3}(`{3,}|~{3,})")


class TocRenderer(BaseRenderer):
    """Render a guide's table of contents from its numbered sections.

    Example:
        >>> print(TocRenderer(guide).render())
        1. [Introduction to PostgreSQL](#1-introduction-to-postgresql)
        2. [Database Operations](#2-database-operations)
        ...
    """

    template_name = "toc.md.j2"

    def __init__(self, guide: Guide, template_dir: Path | None = None):
        super().__init__(template_dir)
        self.guide = guide

    def render(self) -> str:
        template = self._get_template()
        return template.render(sections=self.guide.sections)

    def apply_toc(self, text: str) -> str:
        """Replace the table of contents in ``text`` with a fresh one.

        The lines between the TOC heading and the next heading are replaced.
        Without a TOC heading, one is inserted after the first level-1
        heading (or at the top).
        """
        lines = text.splitlines()
        toc = self.render().rstrip("\n").splitlines()

        start = end = None
        fence = None
        for index, line in enumerate(lines):
            fence_match = _FENCE.match(line)
            if fence_match:
                marker = fence_match.group(1)
                if fence is None:
                    fence = marker
                elif marker[0] == fence[0] and len(marker) >= len(fence):
                    fence = None
                continue
            if fence is not None:
                continue
            if start is None and _TOC_HEADING.match(line):
                start = index
            elif start is not None and _HEADING.match(line):
                end = index
                break

        if start is None:
            insert_at = next((i + 1 for i, line in enumerate(lines) if line.startswith("# ")), 0)
            rest = lines[insert_at:]
            if not rest or rest[0].strip():
                rest = [""] + rest
            new_lines = lines[:insert_at] + ["", "## Table of Contents", ""] + toc + rest
        else:
            end = len(lines) if end is None else end
            new_lines = lines[: start + 1] + [""] + toc + [""] + lines[end:]

        result = "\n".join(new_lines)
        return result + "\n" if text.endswith("\n") or not text else result
