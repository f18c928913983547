"""Archive Spine Core -- domain-agnostic primitives for the archiver.

Architecture::

    errors.py          Structured error hierarchy (StoreError, ConfigurationError)
    logging.py         structlog configuration + scoped LogContext
    settings.py        ArchivingSettings (pydantic-settings, ARCHIVE_ prefix)
    cache.py           CacheBackend protocol, InMemoryCache, RedisCache, CacheTiers
    timestamps.py      UTC helpers (stdlib-only)
    protocols.py       Connection protocol for SQL-backed stores
"""

from archive_spine.core.cache import CacheBackend, CacheTiers, InMemoryCache, RedisCache
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
from archive_spine.core.logging import LogContext, configure_logging, get_logger
from archive_spine.core.protocols import Connection

__all__ = [
    "ArchiveSpineError",
    "CacheBackend",
    "CacheTiers",
    "ConfigurationError",
    "Connection",
    "ErrorCategory",
    "ErrorContext",
    "InMemoryCache",
    "InvalidConfigError",
    "LogContext",
    "MissingConfigError",
    "RedisCache",
    "StoreError",
    "categorize_error",
    "configure_logging",
    "get_logger",
    "is_retryable",
]
