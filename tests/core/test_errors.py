"""
Tests for archive_spine.core.errors module.

Tests the error hierarchy, context chaining and classification helpers.
"""

import pytest

from archive_spine.core.errors import (
    ArchiveSpineError,
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    MissingConfigError,
    StoreError,
    categorize_error,
    is_retryable,
)


class TestErrorContext:
    """Tests for ErrorContext dataclass."""

    def test_empty_context_to_dict(self):
        assert ErrorContext().to_dict() == {}

    def test_context_to_dict_skips_none(self):
        ctx = ErrorContext(site_id=7, period="month 2024-01-01", metadata={"attempt": 2})
        assert ctx.to_dict() == {"site_id": 7, "period": "month 2024-01-01", "attempt": 2}


class TestArchiveSpineError:
    """Tests for the base error."""

    def test_defaults(self):
        error = ArchiveSpineError("boom")
        assert error.message == "boom"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.cause is None

    def test_cause_is_chained(self):
        original = OSError("disk full")
        error = StoreError("write failed", cause=original)
        assert error.cause is original
        assert error.__cause__ is original

    def test_with_context_is_fluent(self):
        error = StoreError("failed").with_context(site_id=1, store="archive_metadata", attempt=3)
        assert isinstance(error, StoreError)
        assert error.context.site_id == 1
        assert error.context.store == "archive_metadata"
        assert error.context.metadata == {"attempt": 3}

    def test_metadata_key_goes_into_metadata(self):
        error = ArchiveSpineError("x").with_context(metadata={"a": 1})
        assert error.context.metadata == {"metadata": {"a": 1}}

    def test_to_dict(self):
        error = StoreError("lost", retry_after=30, cause=TimeoutError("t")).with_context(site_id=4)
        data = error.to_dict()
        assert data["error_type"] == "StoreError"
        assert data["category"] == "STORAGE"
        assert data["retry_after"] == 30
        assert data["context"] == {"site_id": 4}
        assert data["cause"] == "t"

    def test_repr(self):
        assert repr(StoreError("x")) == "StoreError('x', category=STORAGE)"

    def test_explicit_overrides(self):
        error = StoreError("x", category=ErrorCategory.LOCK, retryable=True)
        assert error.category == ErrorCategory.LOCK
        assert error.retryable is True


class TestConfigurationErrors:
    def test_missing_config(self):
        error = MissingConfigError("redis_url")
        assert error.key == "redis_url"
        assert "redis_url" in error.message
        assert isinstance(error, ConfigurationError)
        assert error.category == ErrorCategory.CONFIG

    def test_invalid_config(self):
        error = InvalidConfigError("lock_ttl", -1)
        assert error.key == "lock_ttl"
        assert error.value == -1
        assert error.message == "Invalid configuration for lock_ttl: -1"
        assert error.retryable is False

    def test_invalid_config_is_catchable_as_base(self):
        with pytest.raises(ArchiveSpineError):
            raise InvalidConfigError("log_level", "LOUD")


class TestHelpers:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (StoreError("x"), False),
            (StoreError("x", retryable=True), True),
            (ConnectionError(), True),
            (TimeoutError(), True),
            (ValueError(), False),
        ],
    )
    def test_is_retryable(self, error, expected):
        assert is_retryable(error) is expected

    @pytest.mark.parametrize(
        "error, expected",
        [
            (StoreError("x"), ErrorCategory.STORAGE),
            (OSError(), ErrorCategory.STORAGE),
            (KeyError("k"), ErrorCategory.CONFIG),
            (AttributeError(), ErrorCategory.CONFIG),
            (ValueError(), ErrorCategory.UNKNOWN),
        ],
    )
    def test_categorize_error(self, error, expected):
        assert categorize_error(error) == expected
