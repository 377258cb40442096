"""Disposable execution sandbox base class.

Manifesto:
    Guide examples are executed against a database that exists only for the
    duration of a run.  Every engine shares the same lifecycle (open,
    execute, recover, close) so the runner never depends on a specific
    database vendor.

Features:
    - Abstract ``open()``, ``close()``, ``recover()``
    - ``execute()`` times each statement and turns engine errors into
      ``ExecutionOutcome`` values instead of exceptions
    - Transaction-state introspection for cascade detection
    - Context-manager protocol; ``close()`` always runs

Tags:
    sqlguide, sandbox, abstract-base, adapter-pattern
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from sqlguide.logging import get_logger
from sqlguide.parser.models import Statement

logger = get_logger(__name__)


@dataclass
class ExecutionOutcome:
    """Result of executing one statement in a sandbox.

    Attributes:
        ok: True when the engine accepted the statement
        message: Engine error message (empty on success)
        sqlstate: SQLSTATE (or engine error name) of the failure
        duration_ms: Wall time spent in the engine
        rowcount: Rows affected or returned, when the engine reports it
    """

    ok: bool
    message: str = ""
    sqlstate: str | None = None
    duration_ms: float = 0.0
    rowcount: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "message": self.message,
            "sqlstate": self.sqlstate,
            "duration_ms": round(self.duration_ms, 3),
            "rowcount": self.rowcount,
        }


class Sandbox(ABC):
    """
    Abstract base class for execution sandboxes.

    Subclasses create their throwaway database in ``open()`` and must remove
    every trace of it in ``close()``.
    """

    engine = ""
    # Engine exceptions that describe a statement failure, not a sandbox failure
    statement_errors: tuple[type[BaseException], ...] = ()

    def __init__(self):
        self._open = False

    @property
    def is_open(self) -> bool:
        """Whether the sandbox database exists and is connected."""
        return self._open

    @abstractmethod
    def open(self) -> None:
        """Create and connect to the throwaway database."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Disconnect and remove the throwaway database."""
        ...

    @abstractmethod
    def recover(self) -> None:
        """Leave any open (possibly aborted) transaction block."""
        ...

    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        """Whether an explicit transaction block is open."""
        ...

    @property
    def in_failed_transaction(self) -> bool:
        """Whether the open transaction block is aborted."""
        return False

    @abstractmethod
    def _run(self, statement: Statement) -> int | None:
        """Run a statement, returning its rowcount. Engine errors propagate."""
        ...

    def _describe(self, error: BaseException) -> tuple[str, str | None]:
        """Message and SQLSTATE of an engine error."""
        return str(error).strip(), None

    def execute(self, statement: Statement) -> ExecutionOutcome:
        """Execute one statement and report the outcome."""
        if not self._open:
            self.open()

        started = time.perf_counter()
        try:
            rowcount = self._run(statement)
        except self.statement_errors as e:
            duration = (time.perf_counter() - started) * 1000
            message, sqlstate = self._describe(e)
            logger.debug("engine_error", statement=statement.ref, sqlstate=sqlstate, error=message)
            return ExecutionOutcome(ok=False, message=message, sqlstate=sqlstate, duration_ms=duration)

        duration = (time.perf_counter() - started) * 1000
        return ExecutionOutcome(ok=True, duration_ms=duration, rowcount=rowcount)

    def __enter__(self) -> Sandbox:
        """Context manager entry."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


__all__ = [
    "ExecutionOutcome",
    "Sandbox",
]
