"""Render a parsed guide in the markdown guide format.

Used to convert banner-sectioned ``.sql`` scripts into markdown: every
section becomes a numbered level-2 heading, every block a fenced code block
introduced by its annotation.
"""

import re
from pathlib import Path
from typing import Any

from sqlguide.parser.anchors import AnchorRegistry
from sqlguide.parser.models import BlockKind, CodeBlock, Guide
from sqlguide.renderers.base import BaseRenderer

_COMMENT = re.compile(r"^\s*--")


class GuideMarkdownRenderer(BaseRenderer):
    """Render a Guide as a markdown guide with a table of contents."""

    template_name = "guide.md.j2"

    def __init__(self, guide: Guide, template_dir: Path | None = None):
        super().__init__(template_dir)
        self.guide = guide

    def render(self) -> str:
        template = self._get_template()
        return template.render(**self._context())

    def _context(self) -> dict[str, Any]:
        anchors = AnchorRegistry()
        anchors.anchor_for(self.guide.title)
        anchors.anchor_for("Table of Contents")

        sections = []
        for section in self.guide.sections:
            sections.append({
                "ordinal": section.ordinal,
                "title": section.title,
                "anchor": anchors.anchor_for(f"{section.ordinal}. {section.title}"),
                "blocks": [self._block_view(block) for block in section.blocks],
            })
        return {"title": self.guide.title, "sections": sections}

    @staticmethod
    def _block_view(block: CodeBlock) -> dict[str, Any]:
        """Annotation and code of a block, without the comment already used as annotation."""
        lines = block.text.splitlines()
        if block.kind == BlockKind.SQL and block.statements and lines:
            first = lines[0].strip()
            if _COMMENT.match(first) and first.lstrip("-").strip() == block.annotation:
                lines = lines[1:]
        code = "\n".join(lines).strip("\n")
        prose_only = block.kind == BlockKind.SQL and not block.statements
        return {
            "annotation": block.annotation.rstrip(":. "),
            "language": block.language or "",
            "code": code,
            "prose_only": prose_only,
        }
