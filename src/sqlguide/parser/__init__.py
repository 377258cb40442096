"""
Parser module for SQL guides.

Reads a guide (markdown or banner-sectioned SQL script) into a Guide of
numbered sections, code blocks and statements.
"""

from pathlib import Path

from sqlguide.config import GuideConfig
from sqlguide.errors import GuideNotFoundError, GuideParseError
from sqlguide.logging import get_logger
from sqlguide.parser.anchors import AnchorRegistry, slugify
from sqlguide.parser.markdown import MarkdownGuideParser
from sqlguide.parser.models import (
    BlockKind,
    CodeBlock,
    Guide,
    Heading,
    Link,
    Section,
    Statement,
    StatementKind,
)
from sqlguide.parser.sql_script import SqlScriptParser, display_title
from sqlguide.parser.statements import split_statements

logger = get_logger(__name__)

MARKDOWN_SUFFIXES = {".md", ".markdown"}
SQL_SUFFIXES = {".sql", ".psql"}


def parse_guide(text: str, source_format: str, config: GuideConfig | None = None, source: Path | None = None) -> Guide:
    """Parse guide text in the given format ("markdown" or "sql_script")."""
    if source_format == "markdown":
        return MarkdownGuideParser(config).parse(text, source)
    if source_format == "sql_script":
        return SqlScriptParser(config).parse(text, source)
    raise GuideParseError(f"Unknown guide format: {source_format}")


def load_guide(path: Path, config: GuideConfig | None = None) -> Guide:
    """Read and parse a guide file, choosing the parser by suffix.

    Args:
        path: Guide file (.md/.markdown or .sql)
        config: Parser configuration

    Returns:
        Parsed Guide

    Raises:
        GuideNotFoundError: The file is missing or unreadable
        GuideParseError: The suffix is unknown or the document is malformed
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in MARKDOWN_SUFFIXES:
        source_format = "markdown"
    elif suffix in SQL_SUFFIXES:
        source_format = "sql_script"
    else:
        raise GuideParseError(
            f"Cannot tell guide format from suffix {suffix!r}"
        ).with_context(guide=str(path))

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise GuideNotFoundError(f"Cannot read guide {path}: {e}", cause=e).with_context(guide=str(path)) from e

    guide = parse_guide(text, source_format, config, source=path)
    logger.info(
        "guide_loaded",
        guide=str(path),
        format=source_format,
        sections=len(guide.sections),
        statements=len(guide.statements),
    )
    return guide


__all__ = [
    "AnchorRegistry",
    "BlockKind",
    "CodeBlock",
    "Guide",
    "Heading",
    "Link",
    "MarkdownGuideParser",
    "Section",
    "SqlScriptParser",
    "Statement",
    "StatementKind",
    "display_title",
    "load_guide",
    "parse_guide",
    "slugify",
    "split_statements",
]
