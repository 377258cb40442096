"""
SQL guide validation package.

Parses tutorial-style SQL guides (markdown with fenced SQL, or banner-
sectioned .sql scripts), checks their documentation quality, and runs their
worked examples against throwaway databases.

Example:
    >>> from pathlib import Path
    >>> from sqlguide import GuideConfig, GuideValidator
    >>> validator = GuideValidator(GuideConfig(guide_path=Path("docs/postgresql_guide.md")))
    >>> validator.check().ok
    True
"""

from sqlguide.config import GuideConfig
from sqlguide.orchestrator import GuideValidator, ValidationReport
from sqlguide.parser import load_guide, parse_guide
from sqlguide.runner import SandboxRunner
from sqlguide.sequencer import DependencySequencer

__version__ = "0.1.0"

__all__ = [
    "DependencySequencer",
    "GuideConfig",
    "GuideValidator",
    "SandboxRunner",
    "ValidationReport",
    "load_guide",
    "parse_guide",
    "__version__",
]
