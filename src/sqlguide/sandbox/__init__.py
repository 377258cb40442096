"""
Disposable execution sandboxes.

Each sandbox owns one connection to a database created for a single run (or
a single section) and removed afterwards.
"""

from sqlguide.config import GuideConfig
from sqlguide.errors import ConfigError

from .base import ExecutionOutcome, Sandbox
from .postgres import PostgresSandbox
from .sqlite import SQLiteSandbox


def create_sandbox(config: GuideConfig) -> Sandbox:
    """Create an (unopened) sandbox for the configured engine.

    Raises:
        ConfigError: The postgres engine is selected without a DSN
    """
    if config.engine == "sqlite":
        return SQLiteSandbox(dialect=config.dialect)
    if not config.dsn:
        raise ConfigError("The postgres engine needs an admin DSN (--dsn or SQLGUIDE_DSN)")
    return PostgresSandbox(config.dsn, statement_timeout_ms=config.statement_timeout_ms)


__all__ = [
    "ExecutionOutcome",
    "PostgresSandbox",
    "SQLiteSandbox",
    "Sandbox",
    "create_sandbox",
]
