"""
Documentation-quality checks.

Each check turns one property of a good guide into findings: statements
parse, names are defined before use, links resolve, sections are numbered
in order.
"""

from sqlguide.checks.anchors import AnchorCheck
from sqlguide.checks.base import Check, CheckReport, Finding, Severity
from sqlguide.checks.ordering import OrderingCheck
from sqlguide.checks.references import ReferenceCheck
from sqlguide.checks.syntax import SyntaxCheck
from sqlguide.config import GuideConfig
from sqlguide.errors import InvalidConfigError
from sqlguide.logging import get_logger
from sqlguide.parser.models import Guide
from sqlguide.sequencer import SequencePlan

logger = get_logger(__name__)

CHECKS: dict[str, type[Check]] = {
    "syntax": SyntaxCheck,
    "references": ReferenceCheck,
    "anchors": AnchorCheck,
    "ordering": OrderingCheck,
}


def run_checks(
    guide: Guide,
    plan: SequencePlan,
    config: GuideConfig | None = None,
    names: list[str] | None = None,
) -> CheckReport:
    """Run the selected checks (``config.checks`` by default).

    A check that raises is reported as an error finding; the remaining
    checks still run.
    """
    config = config or GuideConfig()
    names = list(names or config.checks)
    for name in names:
        if name not in CHECKS:
            raise InvalidConfigError("checks", name)

    report = CheckReport(guide=guide.title, checks=names)
    for name in names:
        check = CHECKS[name](config)
        try:
            findings = check.run(guide, plan)
        except Exception as e:
            logger.exception("check_failed", check=name)
            findings = [Finding(check=name, severity=Severity.ERROR, message=f"Check failed: {e}")]
        report.findings.extend(findings)
        logger.debug("check_completed", check=name, findings=len(findings))

    return report


__all__ = [
    "AnchorCheck",
    "CHECKS",
    "Check",
    "CheckReport",
    "Finding",
    "OrderingCheck",
    "ReferenceCheck",
    "Severity",
    "SyntaxCheck",
    "run_checks",
]
