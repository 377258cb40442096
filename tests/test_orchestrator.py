"""
Tests for GuideValidator.

Tests verify:
- validate() combines checks, sequencing and the sandbox run
- The guide and plan are loaded once per validator
- A dependency cycle becomes a finding instead of an exception
"""

import json

import pytest

from sqlguide.checks import Severity
from sqlguide.config import GuideConfig
from sqlguide.errors import ConfigError, SequencingError
from sqlguide.orchestrator import GuideValidator
from sqlguide.sequencer import SequencePlan

SQLITE = GuideConfig(engine="sqlite", reference_scope="guide")


class TestGuideValidator:
    def test_requires_guide(self):
        with pytest.raises(ConfigError):
            GuideValidator(GuideConfig())

    def test_guide_path_from_config(self, mini_guide_path):
        validator = GuideValidator(GuideConfig(guide_path=mini_guide_path))
        assert validator.guide.title == "Mini PostgreSQL Guide"

    def test_guide_and_plan_are_cached(self, mini_guide_path):
        validator = GuideValidator(SQLITE, mini_guide_path)
        assert validator.guide is validator.guide
        assert validator.plan is validator.plan
        assert validator.plan.guide is validator.guide

    def test_check(self, mini_guide_path):
        report = GuideValidator(SQLITE, mini_guide_path).check()
        assert report.ok
        assert report.guide == "Mini PostgreSQL Guide"

    def test_check_selected(self, mini_guide_path):
        report = GuideValidator(SQLITE, mini_guide_path).check(["ordering"])
        assert report.checks == ["ordering"]


class TestValidate:
    def test_validate_sqlite(self, sqlite_guide_path):
        report = GuideValidator(SQLITE, sqlite_guide_path).validate()
        assert report.ok
        assert report.execution_order == [1, 2, 3]
        assert report.is_pedagogically_ordered is True
        assert report.forward_references == []
        assert report.run is not None
        assert report.run.counts()["passed"] == 11

    def test_checks_only(self, sqlite_guide_path):
        report = GuideValidator(SQLITE, sqlite_guide_path).validate(execute=False)
        assert report.run is None
        assert report.ok

    def test_sandbox_factory(self, mini_guide_path, scripted_sandboxes):
        factory, created = scripted_sandboxes(fail_on=("JOIN departments",))
        report = GuideValidator(SQLITE, mini_guide_path).validate(sandbox_factory=factory)
        assert len(created) == 3
        assert not report.ok
        assert report.checks.ok
        assert [r.statement.ref for r in report.run.failed()] == ["S3.B1.#1"]

    def test_sequencing_error_becomes_finding(self, mini_guide_path, monkeypatch):
        def cycle(self):
            raise SequencingError("Section dependencies contain a cycle: 1 -> 3 -> 1")

        monkeypatch.setattr(SequencePlan, "execution_order", cycle)
        report = GuideValidator(SQLITE, mini_guide_path).validate(execute=False)
        assert not report.ok
        assert report.is_pedagogically_ordered is False
        [finding] = report.checks.by_check()["sequence"]
        assert finding.severity == Severity.ERROR
        assert "cycle" in finding.message

    def test_to_dict_is_json(self, sqlite_guide_path):
        data = GuideValidator(SQLITE, sqlite_guide_path).validate().to_dict()
        decoded = json.loads(json.dumps(data, default=str))
        assert decoded["guide"] == "SQLite-Friendly Guide"
        assert decoded["stats"]["sections"] == 3
        assert decoded["run"]["isolation"] == "section"


class TestStats:
    def test_stats(self, mini_guide_path):
        stats = GuideValidator(SQLITE, mini_guide_path).stats()
        assert stats["sections"] == 3
        assert stats["objects"] == {"table": 2}
        assert stats["section_dependencies"] == 2
        assert stats["forward_references"] == 0
        assert stats["statement_kinds"] == {"sql": 7, "meta": 1}

    def test_dependency_graph(self, mini_guide_path):
        graph = GuideValidator(SQLITE, mini_guide_path).dependency_graph()
        assert graph["execution_order"] == [1, 2, 3]
