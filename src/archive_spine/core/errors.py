"""
Structured error types for archive-spine.

Errors carry a category, retry semantics and structured context so that
the external scheduler driving the archiver can decide what to do with a
failed request without parsing messages.

Manifesto:
    - **Typed Error Hierarchy:** Different error types for different domains
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry site, period and plugin for logging
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────┐
        │                    ArchiveSpineError                       │
        │  (category, retryable, retry_after, context, cause)        │
        ├───────────────────────────────────────────────────────────┤
        │                                                            │
        │  StoreError          ConfigurationError                    │
        │  (STORAGE)           (CONFIG)                              │
        │                          │                                 │
        │                      MissingConfigError                    │
        │                      InvalidConfigError                    │
        └───────────────────────────────────────────────────────────┘

    Lock contention is deliberately absent: failing to acquire an
    archiving lock is a normal ``False`` outcome, not an error.

Examples:
    >>> error = StoreError("archive table unavailable")
    >>> error.with_context(site_id=7, period="month")
    StoreError('archive table unavailable', category=STORAGE)
    >>> error.context.site_id
    7

Guardrails:
    ❌ DON'T: Retry StoreError inside the archiver
    ✅ DO: Let it propagate; the scheduler owns retry policy

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    STORAGE = "STORAGE"
    CONFIG = "CONFIG"
    LOCK = "LOCK"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured context attached to an archiving error.

    Attributes:
        site_id: Site the request was made for
        period: Period label and range, e.g. ``"day 2024-03-10"``
        segment: Segment expression, empty for "all visits"
        plugin: Requested plugin name
        store: Name of the collaborator that failed
        metadata: Additional key-value pairs
    """

    site_id: int | None = None
    period: str | None = None
    segment: str | None = None
    plugin: str | None = None
    store: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["site_id", "period", "segment", "plugin", "store"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ArchiveSpineError(Exception):
    """
    Base exception for all archive-spine errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their domain.

    Examples:
        >>> error = ArchiveSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        >>> try:
        ...     raise OSError("disk full")
        ... except OSError as e:
        ...     error = StoreError("write failed", cause=e)
        >>> error.cause
        OSError('disk full')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ArchiveSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StoreError("Failed").with_context(site_id=1, store="archive_metadata")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
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
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StoreError(ArchiveSpineError):
    """Read or write failure in a metadata, activity, ledger or lock store."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigurationError(ArchiveSpineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, ArchiveSpineError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, ArchiveSpineError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ArchiveSpineError",
    "StoreError",
    "ConfigurationError",
    "MissingConfigError",
    "InvalidConfigError",
    "is_retryable",
    "categorize_error",
]
