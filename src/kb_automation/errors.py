"""
Structured error types for the knowledge-base toolkit.

Every failure the toolkit raises on purpose is a ``KBError``. Each error
carries a category for routing (exit codes, log fields), an optional
``ErrorContext`` naming the document and line involved, and the original
exception as ``cause``.

Lint findings are not errors: they are returned as data by the linter.
Exceptions are reserved for conditions that stop a command, such as a
broken configuration file or unbalanced update markers.

Architecture:
    ::

        KBError (category, context, cause)
          ├── ConfigError ───────┬── MissingConfigError
          │                      └── InvalidConfigError
          ├── SourceError ───────── DocumentNotFoundError
          ├── ParseError ────────── MarkerError
          ├── RenderError
          └── StorageError

Examples:
    >>> error = MarkerError("UPDATE-END without UPDATE-START")
    >>> error.with_context(path="README.md", line=12).context.line
    12
    >>> error.category
    <ErrorCategory.PARSE: 'PARSE'>

Tags:
    error-handling, exception-hierarchy, error-context
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories."""

    CONFIG = "CONFIG"           # Missing or invalid kb.yaml / settings
    SOURCE = "SOURCE"           # Document missing or unreadable
    PARSE = "PARSE"             # Markers, Markdown structure
    VALIDATION = "VALIDATION"   # Content rejected by a check
    RENDER = "RENDER"           # Jinja2 template failures
    STORAGE = "STORAGE"         # Writing files back to disk
    INTERNAL = "INTERNAL"       # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Metadata attached to an error for logging and CLI output.

    Attributes:
        path: Document the error refers to
        line: 1-based line number inside ``path``
        rule: Lint rule or config key involved
        metadata: Additional key-value pairs
    """

    path: str | None = None
    line: int | None = None
    rule: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["path", "line", "rule"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class KBError(Exception):
    """Base exception for all toolkit errors.

    Subclasses set ``default_category``; callers may override it per
    instance. ``with_context()`` returns the same error so it can be used
    inline in a ``raise`` statement.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> KBError:
        """Add context to this error (fluent API).

        Usage:
            raise MarkerError("unclosed region").with_context(
                path="README.md", line=3
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging and JSON output."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __str__(self) -> str:
        location = ""
        if self.context.path:
            location = self.context.path
            if self.context.line is not None:
                location += f":{self.context.line}"
            location += ": "
        return f"{location}{self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# Configuration
# =============================================================================


class ConfigError(KBError):
    """Configuration could not be loaded or is invalid."""

    default_category = ErrorCategory.CONFIG


class MissingConfigError(ConfigError):
    """An explicitly requested config file or required key is missing."""

    def __init__(self, key: str, message: str | None = None):
        super().__init__(message or f"Missing configuration: {key}")
        self.key = key
        self.context.rule = key


class InvalidConfigError(ConfigError):
    """A configuration value is present but unusable."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        super().__init__(message or f"Invalid value for {key}: {value!r}")
        self.key = key
        self.value = value
        self.context.rule = key


# =============================================================================
# Sources and parsing
# =============================================================================


class SourceError(KBError):
    """A document could not be read."""

    default_category = ErrorCategory.SOURCE


class DocumentNotFoundError(SourceError):
    """The requested document does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Document not found: {path}")
        self.context.path = path


class ParseError(KBError):
    """Document structure could not be interpreted."""

    default_category = ErrorCategory.PARSE


class MarkerError(ParseError):
    """Update-region markers are unbalanced or nested."""


class RenderError(KBError):
    """A Jinja2 template failed to render."""

    default_category = ErrorCategory.RENDER


class StorageError(KBError):
    """A document could not be written back."""

    default_category = ErrorCategory.STORAGE


def categorize_error(error: Exception) -> ErrorCategory:
    """Return the category used for logging and exit-code decisions."""
    if isinstance(error, KBError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    return ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "KBError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "SourceError",
    "DocumentNotFoundError",
    "ParseError",
    "MarkerError",
    "RenderError",
    "StorageError",
    "categorize_error",
]
