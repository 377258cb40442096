"""
Structured error types for sqlguide.

Tool failures (bad configuration, unreadable guide, sandbox that cannot be
created) are raised as SqlGuideError subclasses. Documentation defects are
never raised: they travel as Finding and StatementResult objects so that one
broken example does not hide the next one.

Architecture:
    ::

        SqlGuideError (category, retryable, context, cause)
              │
              ├── ConfigError          (CONFIG)
              │       └── InvalidConfigError
              ├── GuideNotFoundError   (SOURCE)
              ├── GuideParseError      (PARSE)
              ├── SequencingError      (PLAN)
              └── SandboxError         (SANDBOX)
                      └── SandboxConnectionError (retryable)

Examples:
    >>> error = GuideParseError("Unterminated code fence").with_context(line=42)
    >>> error.to_dict()["context"]
    {'line': 42}

Tags:
    error-handling, exception-hierarchy, sqlguide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    CONFIG = "CONFIG"
    SOURCE = "SOURCE"
    PARSE = "PARSE"
    PLAN = "PLAN"
    SANDBOX = "SANDBOX"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        guide: Path of the guide being processed
        section: Section ordinal
        line: Line number in the guide
        statement: Statement reference (e.g. ``S9.B2.#1``)
        metadata: Additional key-value pairs
    """

    guide: str | None = None
    section: int | None = None
    line: int | None = None
    statement: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["guide", "section", "line", "statement"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SqlGuideError(Exception):
    """
    Base exception for all sqlguide errors.

    Every instance carries a category, a retryable flag, an ErrorContext
    and an optional chained cause. Subclasses set ``default_category`` and
    ``default_retryable``.

    Examples:
        >>> error = SqlGuideError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SqlGuideError:
        """
        Add context to this error (fluent API).

        Usage:
            raise GuideParseError("Unterminated fence").with_context(
                guide="docs/postgresql_guide.md",
                line=120,
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(SqlGuideError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# GUIDE SOURCE ERRORS
# =============================================================================


class GuideNotFoundError(SqlGuideError):
    """Guide file does not exist or cannot be read."""

    default_category = ErrorCategory.SOURCE


class GuideParseError(SqlGuideError):
    """The guide document is structurally broken (e.g. unterminated fence)."""

    default_category = ErrorCategory.PARSE


class SequencingError(SqlGuideError):
    """Section dependencies cannot be ordered."""

    default_category = ErrorCategory.PLAN


# =============================================================================
# SANDBOX ERRORS
# =============================================================================


class SandboxError(SqlGuideError):
    """The disposable database could not be created, used or removed."""

    default_category = ErrorCategory.SANDBOX


class SandboxConnectionError(SandboxError):
    """Connecting to the database server failed."""

    default_retryable = True


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "SqlGuideError",
    "ConfigError",
    "InvalidConfigError",
    "GuideNotFoundError",
    "GuideParseError",
    "SequencingError",
    "SandboxError",
    "SandboxConnectionError",
]
