"""SQLite sandbox: offline smoke runs against an in-memory database."""

from __future__ import annotations

import sqlite3

from sqlglot.errors import SqlglotError

from sqlguide.analysis import transpile
from sqlguide.errors import SandboxConnectionError
from sqlguide.logging import get_logger
from sqlguide.parser.models import Statement

from .base import Sandbox

logger = get_logger(__name__)


class SQLiteSandbox(Sandbox):
    """
    SQLite sandbox.

    Uses the built-in sqlite3 module with ``isolation_level=None`` so the
    guide's own transaction statements are honoured.  Statements are
    transpiled from the guide's dialect with sqlglot before they run.
    Suitable for:
    - Runs without a PostgreSQL server
    - Tests

    PostgreSQL-only features (functions, triggers, JSONB, ...) are expected
    to fail here.
    """

    engine = "sqlite"
    statement_errors = (sqlite3.Error, SqlglotError)

    def __init__(self, dialect: str = "postgres", path: str = ":memory:"):
        super().__init__()
        self._dialect = dialect
        self._path = path
        self._conn: sqlite3.Connection | None = None

    def open(self) -> None:
        """Connect to a fresh SQLite database."""
        if self._open:
            return
        try:
            self._conn = sqlite3.connect(self._path, isolation_level=None)
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise SandboxConnectionError(
                f"Failed to connect to SQLite: {e}",
                cause=e,
            ) from e
        self._open = True
        logger.debug("sandbox_opened", engine=self.engine, path=self._path)

    def close(self) -> None:
        """Close SQLite connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
        self._open = False

    @property
    def in_transaction(self) -> bool:
        return bool(self._conn is not None and self._conn.in_transaction)

    def recover(self) -> None:
        if self.in_transaction:
            self._conn.execute("ROLLBACK")

    def _run(self, statement: Statement) -> int | None:
        rowcount = None
        for part in transpile(statement, read=self._dialect, write="sqlite"):
            cursor = self._conn.execute(part)
            rowcount = cursor.rowcount if cursor.rowcount >= 0 else None
        return rowcount

    def _describe(self, error: BaseException) -> tuple[str, str | None]:
        if isinstance(error, SqlglotError):
            return f"Cannot transpile to SQLite: {str(error).splitlines()[0]}", None
        return str(error).strip(), getattr(error, "sqlite_errorname", None)


__all__ = [
    "SQLiteSandbox",
]
