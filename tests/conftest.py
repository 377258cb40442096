"""
Shared pytest fixtures and configuration for sqlguide tests.

This module provides:
- Paths to the fixture guides (markdown and banner-sectioned SQL)
- Helpers that parse inline markdown and build sequence plans
- A scripted sandbox that fails chosen statements the way PostgreSQL does

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments:

    def test_sections(mini_guide):
        assert [s.ordinal for s in mini_guide.sections] == [1, 2, 3]
"""

import sys
import textwrap
from pathlib import Path

import pytest

# Ensure sqlguide package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sqlguide.config import GuideConfig
from sqlguide.logging import clear_context
from sqlguide.parser import load_guide, parse_guide
from sqlguide.parser.models import Guide, Statement
from sqlguide.sandbox import Sandbox
from sqlguide.sequencer import DependencySequencer, SequencePlan

FIXTURES = Path(__file__).parent / "fixtures"
REPO_ROOT = Path(__file__).parent.parent


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests that need a PostgreSQL server."""
    for item in items:
        if "postgres_live" in item.name:
            item.add_marker(pytest.mark.postgres)


@pytest.fixture(autouse=True)
def clean_log_context():
    """Drop logging context bound by a previous test."""
    clear_context()
    yield
    clear_context()


# =============================================================================
# Guide Fixtures
# =============================================================================


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def mini_guide_path() -> Path:
    """Three-section markdown guide with a TOC."""
    return FIXTURES / "mini_guide.md"


@pytest.fixture
def mini_script_path() -> Path:
    """Banner-sectioned .sql version of a small guide."""
    return FIXTURES / "mini_guide.sql"


@pytest.fixture
def sqlite_guide_path() -> Path:
    """Guide whose statements all run on SQLite."""
    return FIXTURES / "sqlite_guide.md"


@pytest.fixture
def mini_guide(mini_guide_path) -> Guide:
    return load_guide(mini_guide_path)


@pytest.fixture
def mini_plan(mini_guide) -> SequencePlan:
    return DependencySequencer(mini_guide).build()


@pytest.fixture
def make_guide():
    """Parse dedented markdown into a Guide.

    Example:
        guide = make_guide('''
            ## 1. Tables
            ...
        ''')
    """

    def _make(text: str, config: GuideConfig | None = None) -> Guide:
        return parse_guide(textwrap.dedent(text), "markdown", config)

    return _make


@pytest.fixture
def make_plan(make_guide):
    """Parse dedented markdown and build its SequencePlan."""

    def _make(text: str, config: GuideConfig | None = None) -> SequencePlan:
        guide = make_guide(text, config)
        return DependencySequencer(guide, config=config).build()

    return _make


# =============================================================================
# Scripted Sandbox
# =============================================================================


class EngineError(Exception):
    """Statement error raised by ScriptedSandbox, carrying a SQLSTATE."""

    def __init__(self, message: str, sqlstate: str):
        super().__init__(message)
        self.sqlstate = sqlstate


class ScriptedSandbox(Sandbox):
    """In-memory sandbox with PostgreSQL transaction semantics.

    Statements containing one of ``fail_on`` fail with 42P01. A failure
    inside BEGIN ... COMMIT aborts the block: later statements fail with
    25P02 until the block ends.
    """

    engine = "scripted"
    statement_errors = (EngineError,)

    def __init__(self, fail_on: tuple[str, ...] = ()):
        super().__init__()
        self.fail_on = fail_on
        self.executed: list[str] = []
        self.opened = 0
        self.closed = 0
        self.recovered = 0
        self._in_transaction = False
        self._failed = False

    def open(self) -> None:
        self._open = True
        self.opened += 1

    def close(self) -> None:
        self._open = False
        self.closed += 1

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def in_failed_transaction(self) -> bool:
        return self._failed

    def recover(self) -> None:
        self.recovered += 1
        self._in_transaction = False
        self._failed = False

    def _run(self, statement: Statement) -> int | None:
        self.executed.append(statement.text)
        keyword = statement.text.split(None, 1)[0].upper()
        if keyword in ("BEGIN", "START"):
            self._in_transaction = True
            return None
        if keyword in ("COMMIT", "ROLLBACK", "END"):
            self._in_transaction = False
            self._failed = False
            return None
        if self._failed:
            raise EngineError("current transaction is aborted, commands ignored until end of transaction block", "25P02")
        if any(marker in statement.text for marker in self.fail_on):
            if self._in_transaction:
                self._failed = True
            raise EngineError("relation does not exist", "42P01")
        return 1

    def _describe(self, error: BaseException) -> tuple[str, str | None]:
        return str(error), getattr(error, "sqlstate", None)


@pytest.fixture
def scripted_sandboxes():
    """Factory of ScriptedSandbox instances; every created sandbox is recorded.

    Example:
        factory, created = scripted_sandboxes(fail_on=("missing",))
        SandboxRunner(config, factory).run(guide, plan)
        assert all(s.closed == 1 for s in created)
    """

    def _make(fail_on: tuple[str, ...] = ()):
        created: list[ScriptedSandbox] = []

        def factory() -> ScriptedSandbox:
            sandbox = ScriptedSandbox(fail_on)
            created.append(sandbox)
            return sandbox

        return factory, created

    return _make
