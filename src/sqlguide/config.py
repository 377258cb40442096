"""
Configuration for sqlguide.

Manages settings for parsing, sequencing, checking and sandbox execution.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from sqlguide.errors import ConfigError, InvalidConfigError

ENGINES = ("postgres", "sqlite")
ISOLATION_MODES = ("section", "guide")
REFERENCE_SCOPES = ("section", "guide")
REPORT_FORMATS = ("markdown", "json")
CHECK_NAMES = ("syntax", "references", "anchors", "ordering")


@dataclass
class GuideConfig:
    """Configuration for guide validation.

    Attributes:
        guide_path: Guide document to validate (.md or .sql)
        dialect: sqlglot dialect the guide's SQL is written in
        engine: Sandbox engine (postgres or sqlite)
        dsn: Admin connection string for the postgres engine
        isolation: "section" for a fresh database per section, "guide" for one
        reference_scope: Where a referenced relation must have been defined
        section_heading_level: Markdown heading level of numbered sections
        sql_languages: Fence info strings treated as SQL
        shell_languages: Fence info strings treated as shell
        system_schemas: Schemas whose relations are never checked
        ignored_objects: Relation names never checked or sequenced
        skip_patterns: Regexes; matching statements are not executed
        skip_server_level: Skip statements acting outside the sandbox database
        include_seed_data: Carry earlier INSERTs into section prerequisites
        statement_timeout_ms: Per-statement timeout inside the sandbox
        checks: Checks to run
        report_format: Default format for validation reports
    """

    guide_path: Path | None = None
    dialect: str = "postgres"
    engine: str = "postgres"
    dsn: str | None = None
    isolation: str = "section"
    reference_scope: str = "section"
    section_heading_level: int = 2

    sql_languages: list[str] = field(default_factory=lambda: [
        "sql", "psql", "postgresql", "postgres", "pgsql", "plpgsql",
    ])
    shell_languages: list[str] = field(default_factory=lambda: [
        "sh", "bash", "shell", "console", "zsh",
    ])
    system_schemas: list[str] = field(default_factory=lambda: [
        "information_schema", "pg_catalog", "pg_toast",
    ])
    ignored_objects: list[str] = field(default_factory=list)
    skip_patterns: list[str] = field(default_factory=list)

    skip_server_level: bool = True
    include_seed_data: bool = True
    statement_timeout_ms: int = 5000

    checks: list[str] = field(default_factory=lambda: list(CHECK_NAMES))
    report_format: str = "markdown"

    def __post_init__(self):
        """Convert paths to Path objects and validate choices."""
        if isinstance(self.guide_path, str):
            self.guide_path = Path(self.guide_path)

        self._check_choice("engine", self.engine, ENGINES)
        self._check_choice("isolation", self.isolation, ISOLATION_MODES)
        self._check_choice("reference_scope", self.reference_scope, REFERENCE_SCOPES)
        self._check_choice("report_format", self.report_format, REPORT_FORMATS)
        for name in self.checks:
            self._check_choice("checks", name, CHECK_NAMES)

        if self.section_heading_level not in range(1, 7):
            raise InvalidConfigError("section_heading_level", self.section_heading_level)
        if self.statement_timeout_ms < 0:
            raise InvalidConfigError("statement_timeout_ms", self.statement_timeout_ms)

        self.sql_languages = [lang.lower() for lang in self.sql_languages]
        self.shell_languages = [lang.lower() for lang in self.shell_languages]
        self.ignored_objects = [name.lower() for name in self.ignored_objects]

    @staticmethod
    def _check_choice(key: str, value: Any, choices: tuple[str, ...]) -> None:
        if value not in choices:
            raise InvalidConfigError(
                key, value, f"Invalid configuration for {key}: {value!r} (expected one of {', '.join(choices)})"
            )

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "GuideConfig":
        """Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            GuideConfig instance
        """
        try:
            with open(yaml_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {yaml_path}: {e}", cause=e) from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {yaml_path}: {e}", cause=e) from e

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GuideConfig":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            GuideConfig instance
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    def merged(self, **overrides: Any) -> "GuideConfig":
        """Return a copy with non-None overrides applied."""
        data = self.to_dict()
        data.update({key: value for key, value in overrides.items() if value is not None})
        return self.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Configuration as dictionary
        """
        return {
            "guide_path": str(self.guide_path) if self.guide_path else None,
            "dialect": self.dialect,
            "engine": self.engine,
            "dsn": self.dsn,
            "isolation": self.isolation,
            "reference_scope": self.reference_scope,
            "section_heading_level": self.section_heading_level,
            "sql_languages": list(self.sql_languages),
            "shell_languages": list(self.shell_languages),
            "system_schemas": list(self.system_schemas),
            "ignored_objects": list(self.ignored_objects),
            "skip_patterns": list(self.skip_patterns),
            "skip_server_level": self.skip_server_level,
            "include_seed_data": self.include_seed_data,
            "statement_timeout_ms": self.statement_timeout_ms,
            "checks": list(self.checks),
            "report_format": self.report_format,
        }

    def language_kind(self, language: str) -> str:
        """Classify a fence info string as sql, shell or other."""
        lang = language.lower()
        if lang in self.sql_languages:
            return "sql"
        if lang in self.shell_languages:
            return "shell"
        return "other"


# Default configuration
DEFAULT_CONFIG = GuideConfig()
