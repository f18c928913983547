"""Archiving settings.

All knobs of the archiving decision protocol live in one
``ArchivingSettings`` object, read from ``ARCHIVE_``-prefixed environment
variables or a ``.env`` file and passed explicitly into every component.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    A worker that starts with a negative TTL or an unknown log level must
    fail at startup, not halfway through an archiving run.

Fields
──────
always_archive_data_day     : Debug override, recompute day archives every time
always_archive_data_period  : Debug override for week/month/year
always_archive_data_range   : Debug override for custom date ranges
invalidate_before_archiving : Apply pending invalidations before recomputing
min_visit_time_ttl          : TTL of the cached minimum activity time per site
today_archive_ttl           : Re-archive interval for in-progress periods
range_archive_ttl           : Re-archive interval for in-progress ranges
lock_ttl                    : Expiry applied by lock backends to a held lock
process_all_plugins_for_segments : Segment archives include every plugin
log_level                   : Level passed to configure_logging by ArchivingContext.from_settings
redis_url                   : Lazy cache tier in Redis when set, in memory otherwise

Examples:
    >>> from archive_spine.core.settings import ArchivingSettings
    >>> settings = ArchivingSettings.load(always_archive_data_day=True)
    >>> settings.always_archive_data_day
    True
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from archive_spine.core.errors import InvalidConfigError

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ArchivingSettings(BaseSettings):
    """Settings for the archive-availability orchestrator.

    Invalid values are rejected at construction by pydantic. Use
    :meth:`load` to get the failure as an :class:`InvalidConfigError`.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARCHIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Debug overrides ──────────────────────────────────────────
    always_archive_data_day: bool = False
    always_archive_data_period: bool = False
    always_archive_data_range: bool = False

    # ── Invalidation ─────────────────────────────────────────────
    invalidate_before_archiving: bool = False

    # ── Freshness / caching ──────────────────────────────────────
    min_visit_time_ttl: int = Field(
        default=3600,
        ge=1,
        description="Seconds a cached minimum activity time stays authoritative",
    )
    today_archive_ttl: int = Field(default=900, ge=0)
    range_archive_ttl: int = Field(default=3600, ge=0)

    # ── Locking ──────────────────────────────────────────────────
    lock_ttl: int = Field(default=3600, ge=1)

    # ── Processing rules ─────────────────────────────────────────
    process_all_plugins_for_segments: bool = False

    # ── Infrastructure ───────────────────────────────────────────
    log_level: str = "INFO"
    redis_url: str | None = Field(
        default=None,
        description="Redis URL for the lazy cache tier; in-memory when unset",
    )

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {value!r}")
        return level

    @classmethod
    def load(cls, **overrides: Any) -> ArchivingSettings:
        """Build settings from the environment plus ``overrides``.

        Raises:
            InvalidConfigError: On the first invalid field, with the
                pydantic error chained as cause.
        """
        try:
            return cls(**overrides)
        except ValidationError as exc:
            first = exc.errors()[0]
            key = ".".join(str(part) for part in first["loc"]) or "settings"
            raise InvalidConfigError(
                key, first.get("input"), f"Invalid configuration for {key}: {first['msg']}"
            ) from exc
