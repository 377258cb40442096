"""
Statement splitter for SQL and shell code blocks.

Splits block text into statements the way psql reads a script: on
semicolons that sit outside quotes, dollar-quoted bodies and comments.
psql backslash commands are single-line statements of their own.

Example:
    >>> statements = split_statements("-- Basic select\\nSELECT 1;\\n\\\\dt\\n", "sql")
    >>> [(s.kind, s.text, s.annotation) for s in statements]
    [('sql', 'SELECT 1', 'Basic select'), ('meta', '\\\\dt', '')]
"""

import re

from sqlguide.parser.models import Statement, StatementKind

_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")
_SHELL_PROMPT = re.compile(r"^\s*\$\s+")


def split_statements(text: str, kind: str, start_line: int = 1) -> list[Statement]:
    """Split a code block into statements.

    Args:
        text: Block text
        kind: Block kind ("sql" or "shell"); anything else yields no statements
        start_line: Guide line number of the block's first line

    Returns:
        Statements in block order, numbered from 1
    """
    if kind == StatementKind.SQL:
        statements = _split_sql(text, start_line)
    elif kind == StatementKind.SHELL:
        statements = _split_shell(text, start_line)
    else:
        statements = []

    for index, statement in enumerate(statements, start=1):
        statement.index = index
    return statements


def _quoted_end(text: str, start: int, quote: str) -> int:
    """Index just past the quote closing the one at ``start``.

    A doubled quote stays inside the literal. In an ``E'...'`` escape
    string a backslash also escapes the character after it.
    """
    backslash = quote == "'" and _is_escape_string(text, start)
    i = start + 1
    n = len(text)
    while i < n:
        if backslash and text[i] == "\\":
            i += 2
            continue
        if text[i] == quote:
            if i + 1 < n and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return n


def _is_escape_string(text: str, start: int) -> bool:
    """True when the quote at ``start`` opens an ``E'...'`` literal."""
    if start == 0 or text[start - 1] not in "Ee":
        return False
    before = text[start - 2] if start >= 2 else ""
    return not (before.isalnum() or before in "_$")


def _block_comment_end(text: str, start: int) -> int:
    """Index just past a (possibly nested) ``/* */`` comment."""
    depth = 0
    i = start
    n = len(text)
    while i < n:
        if text.startswith("/*", i):
            depth += 1
            i += 2
        elif text.startswith("*/", i):
            depth -= 1
            i += 2
            if depth == 0:
                return i
        else:
            i += 1
    return n


def _line_end(text: str, start: int) -> int:
    end = text.find("\n", start)
    return len(text) if end == -1 else end


def _split_sql(text: str, start_line: int) -> list[Statement]:
    statements: list[Statement] = []
    buf: list[str] = []
    pending: list[str] = []
    stmt_line = start_line
    line = start_line
    line_had_code = False
    i = 0
    n = len(text)

    def flush() -> None:
        body = "".join(buf).strip()
        if body:
            statements.append(Statement(
                text=body,
                line=stmt_line,
                kind=StatementKind.SQL,
                annotation=" ".join(pending),
            ))
            pending.clear()
        buf.clear()

    while i < n:
        ch = text[i]

        if ch == "\n":
            if buf:
                buf.append(ch)
            line += 1
            line_had_code = False
            i += 1
            continue

        if not buf:
            # Between statements: whitespace, comments and meta commands
            if ch in " \t\r":
                i += 1
                continue
            if text.startswith("--", i):
                end = _line_end(text, i)
                comment = text[i + 2:end].strip()
                if comment and not line_had_code:
                    pending.append(comment)
                i = end
                continue
            if text.startswith("/*", i):
                end = _block_comment_end(text, i)
                line += text.count("\n", i, end)
                i = end
                continue
            if ch == "\\":
                end = _line_end(text, i)
                statements.append(Statement(
                    text=text[i:end].strip(),
                    line=line,
                    kind=StatementKind.META,
                    annotation=" ".join(pending),
                ))
                pending.clear()
                line_had_code = True
                i = end
                continue
            if ch == ";":
                line_had_code = True
                i += 1
                continue
            stmt_line = line

        if text.startswith("--", i):
            end = _line_end(text, i)
            buf.append(text[i:end])
            i = end
            continue

        if text.startswith("/*", i):
            end = _block_comment_end(text, i)
        elif ch in ("'", '"'):
            end = _quoted_end(text, i, ch)
        elif ch == "$" and not (i > 0 and (text[i - 1].isalnum() or text[i - 1] == "_")):
            match = _DOLLAR_TAG.match(text, i)
            if match:
                close = text.find(match.group(0), match.end())
                end = n if close == -1 else close + len(match.group(0))
            else:
                end = i + 1
        elif ch == ";":
            flush()
            line_had_code = True
            i += 1
            continue
        else:
            end = i + 1

        segment = text[i:end]
        buf.append(segment)
        line += segment.count("\n")
        line_had_code = True
        i = end

    flush()
    return statements


def _split_shell(text: str, start_line: int) -> list[Statement]:
    statements: list[Statement] = []
    pending: list[str] = []
    current: list[str] = []
    current_line = start_line

    for offset, raw in enumerate(text.splitlines()):
        stripped = raw.strip()
        if not current:
            if not stripped:
                continue
            if stripped.startswith("#"):
                comment = stripped.lstrip("#").strip()
                if comment:
                    pending.append(comment)
                continue
            current_line = start_line + offset
            stripped = _SHELL_PROMPT.sub("", stripped)

        if stripped.endswith("\\"):
            current.append(stripped[:-1].rstrip())
            continue

        current.append(stripped)
        statements.append(Statement(
            text=" ".join(part for part in current if part),
            line=current_line,
            kind=StatementKind.SHELL,
            annotation=" ".join(pending),
        ))
        pending = []
        current = []

    if current:
        statements.append(Statement(
            text=" ".join(part for part in current if part),
            line=current_line,
            kind=StatementKind.SHELL,
            annotation=" ".join(pending),
        ))

    return statements
