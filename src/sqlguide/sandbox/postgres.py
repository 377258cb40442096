"""PostgreSQL sandbox: a throwaway database per sandbox, through psycopg3."""

from __future__ import annotations

import uuid

import psycopg
from psycopg import sql
from psycopg.conninfo import make_conninfo
from psycopg.pq import TransactionStatus

from sqlguide.errors import SandboxConnectionError, SandboxError
from sqlguide.logging import get_logger
from sqlguide.parser.models import Statement

from .base import Sandbox

logger = get_logger(__name__)

DATABASE_PREFIX = "sqlguide_"


class PostgresSandbox(Sandbox):
    """
    PostgreSQL sandbox.

    ``open()`` connects to the server with the admin DSN, creates a database
    named ``sqlguide_<hex>`` and connects to it.  Statements run as written in
    autocommit mode, so the guide's own BEGIN/COMMIT blocks behave as they
    would in psql.  ``close()`` drops the database ``WITH (FORCE)``.
    """

    engine = "postgres"
    statement_errors = (psycopg.Error,)

    def __init__(self, admin_dsn: str, statement_timeout_ms: int = 5000):
        super().__init__()
        self._admin_dsn = admin_dsn
        self._statement_timeout_ms = statement_timeout_ms
        self.database = f"{DATABASE_PREFIX}{uuid.uuid4().hex[:12]}"
        self._conn: psycopg.Connection | None = None

    def open(self) -> None:
        """Create the throwaway database and connect to it."""
        if self._open:
            return
        try:
            with psycopg.connect(self._admin_dsn, autocommit=True) as admin:
                admin.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(self.database)))
        except psycopg.OperationalError as e:
            raise SandboxConnectionError(
                f"Failed to connect to PostgreSQL: {e}",
                cause=e,
            ) from e
        except psycopg.Error as e:
            raise SandboxError(
                f"Failed to create sandbox database {self.database}: {e}",
                cause=e,
            ) from e

        try:
            self._conn = psycopg.connect(make_conninfo(self._admin_dsn, dbname=self.database), autocommit=True)
            self._conn.execute(
                sql.SQL("SET statement_timeout = {}").format(sql.Literal(self._statement_timeout_ms))
            )
        except psycopg.Error as e:
            self._drop_database()
            raise SandboxConnectionError(
                f"Failed to connect to sandbox database {self.database}: {e}",
                cause=e,
            ) from e

        self._open = True
        logger.info("sandbox_opened", engine=self.engine, database=self.database)

    def close(self) -> None:
        """Disconnect and drop the throwaway database."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        if self._open:
            self._open = False
            self._drop_database()

    def _drop_database(self) -> None:
        try:
            with psycopg.connect(self._admin_dsn, autocommit=True) as admin:
                admin.execute(
                    sql.SQL("DROP DATABASE IF EXISTS {} WITH (FORCE)").format(sql.Identifier(self.database))
                )
        except psycopg.Error as e:
            raise SandboxError(
                f"Failed to drop sandbox database {self.database}: {e}",
                cause=e,
            ) from e
        logger.info("sandbox_closed", engine=self.engine, database=self.database)

    @property
    def in_transaction(self) -> bool:
        if self._conn is None:
            return False
        return self._conn.info.transaction_status in (TransactionStatus.INTRANS, TransactionStatus.INERROR)

    @property
    def in_failed_transaction(self) -> bool:
        if self._conn is None:
            return False
        return self._conn.info.transaction_status == TransactionStatus.INERROR

    def recover(self) -> None:
        """Roll back an open or aborted transaction block."""
        if self.in_transaction:
            self._conn.execute("ROLLBACK")
            logger.debug("sandbox_recovered", database=self.database)

    def _run(self, statement: Statement) -> int | None:
        cursor = self._conn.execute(statement.text)
        return cursor.rowcount if cursor.rowcount >= 0 else None

    def _describe(self, error: BaseException) -> tuple[str, str | None]:
        diag = getattr(error, "diag", None)
        message = diag.message_primary if diag is not None and diag.message_primary else str(error)
        return message.strip(), getattr(error, "sqlstate", None)


__all__ = [
    "PostgresSandbox",
]
