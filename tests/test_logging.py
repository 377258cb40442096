"""
Tests for structured logging.

Tests verify:
- JSON output carries ECS field names and the service name
- Bound context reaches every event and is unbound on exit
- Events below the configured level are dropped

Logging is configured inside each test body: the handler binds to
``sys.stderr`` when configured, and only then is it the captured stream.
"""

import json
import logging

import pytest
import structlog

from sqlguide.logging import LogContext, bind_context, configure_logging, get_logger


def use_json_logging(level: str = "INFO") -> None:
    configure_logging(level=level, json_format=True, service="sqlguide-test")


@pytest.fixture
def stderr_events(capsys):
    """Return a reader of the JSON events written to the captured stderr."""

    def _events():
        err = capsys.readouterr().err
        return [json.loads(line) for line in err.splitlines() if line.startswith("{")]

    yield _events
    logging.getLogger().handlers.clear()
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def test_json_fields(stderr_events):
    use_json_logging()
    get_logger("sqlguide.tests").info("guide_loaded", sections=3)
    [event] = stderr_events()
    assert event["event"] == "guide_loaded"
    assert event["sections"] == 3
    assert event["service.name"] == "sqlguide-test"
    assert event["log.level"] == "info"
    assert event["logger"] == "sqlguide.tests"
    assert "@timestamp" in event


def test_level_filtering(stderr_events):
    use_json_logging()
    logger = get_logger("sqlguide.tests")
    logger.debug("hidden")
    logger.warning("shown")
    assert [e["event"] for e in stderr_events()] == ["shown"]


def test_error_level_hides_warnings(stderr_events):
    use_json_logging(level="ERROR")
    logger = get_logger("sqlguide.tests")
    logger.warning("hidden")
    logger.error("shown")
    assert [e["event"] for e in stderr_events()] == ["shown"]


def test_log_context(stderr_events):
    use_json_logging()
    logger = get_logger("sqlguide.tests")
    with LogContext(section=9, statement="S9.B2.#1"):
        logger.info("statement_failed")
    logger.info("run_completed")

    inside, outside = stderr_events()
    assert inside["section"] == 9
    assert inside["statement"] == "S9.B2.#1"
    assert "section" not in outside


def test_bind_context(stderr_events):
    use_json_logging()
    bind_context(run_id="abc123")
    get_logger("sqlguide.tests").info("run_started")
    assert stderr_events()[0]["run_id"] == "abc123"
