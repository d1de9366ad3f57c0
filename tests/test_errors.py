"""Tests for the error hierarchy."""

from kb_automation.errors import (
    ConfigError,
    DocumentNotFoundError,
    ErrorCategory,
    InvalidConfigError,
    KBError,
    MarkerError,
    ParseError,
    StorageError,
    categorize_error,
)


class TestKBError:
    """Tests for KBError behavior."""

    def test_categories(self):
        assert InvalidConfigError("k", 1).category == ErrorCategory.CONFIG
        assert DocumentNotFoundError("a.md").category == ErrorCategory.SOURCE
        assert MarkerError("x").category == ErrorCategory.PARSE
        assert KBError("x").category == ErrorCategory.INTERNAL
        assert KBError("x", category=ErrorCategory.VALIDATION).category == ErrorCategory.VALIDATION

    def test_hierarchy(self):
        assert issubclass(InvalidConfigError, ConfigError)
        assert issubclass(MarkerError, ParseError)
        assert issubclass(StorageError, KBError)

    def test_with_context_is_fluent(self):
        error = MarkerError("unclosed").with_context(path="README.md", line=3, region="top")

        assert isinstance(error, MarkerError)
        assert error.context.path == "README.md"
        assert error.context.line == 3
        assert error.context.metadata == {"region": "top"}
        assert str(error) == "README.md:3: unclosed"

    def test_str_without_context(self):
        assert str(KBError("plain")) == "plain"

    def test_to_dict(self):
        cause = OSError("disk full")
        error = StorageError("Cannot write", cause=cause).with_context(path="README.md")

        data = error.to_dict()

        assert data["error_type"] == "StorageError"
        assert data["category"] == "STORAGE"
        assert data["context"] == {"path": "README.md"}
        assert data["cause"] == "OSError: disk full"
        assert error.__cause__ is cause

    def test_invalid_config_message(self):
        error = InvalidConfigError("max_age_days", -1)
        assert error.message == "Invalid value for max_age_days: -1"
        assert error.context.rule == "max_age_days"

    def test_categorize_error(self):
        assert categorize_error(DocumentNotFoundError("x")) == ErrorCategory.SOURCE
        assert categorize_error(PermissionError("denied")) == ErrorCategory.STORAGE
        assert categorize_error(ValueError("bad")) == ErrorCategory.INTERNAL
