"""
Freshness rules: when is an existing archive good enough?

Pure decision logic. Nothing here touches a store; the only inputs are
the request, the settings and "now".

Manifesto:
    A finished period never changes again, so an archive created after the
    period ended is valid forever. A period that is still running gets
    new activity all the time, so its archives are only trusted for a
    configured re-archive interval. Debug overrides can force a recompute
    on every request.

Architecture:
    ::

        is_archiving_forced(period, settings)
            day   → always_archive_data_day
            range → always_archive_data_range
            other → always_archive_data_period

        min_acceptable_timestamp(params, now, policy)
            period.end_utc < now  → period.end_utc          (permanent)
            otherwise             → policy.min_time_processed(params, now)

        ProcessingRules
            plugin_group(params)            → "all" | plugin name
            includes_core_metrics(params)   → bool

Examples:
    >>> from datetime import date, datetime, UTC
    >>> params = Parameters(site_id=1, period=Period.day(date(2024, 3, 10)))
    >>> min_acceptable_timestamp(params, now=datetime(2024, 4, 1, tzinfo=UTC))
    datetime.datetime(2024, 3, 10, 23, 59, 59, tzinfo=datetime.timezone.utc)

Tags:
    freshness, ttl, permanent-period, in-progress, debug-override
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol

from archive_spine.archiving.params import Parameters, Period, PeriodLabel
from archive_spine.core.settings import ArchivingSettings
from archive_spine.core.timestamps import as_utc

CORE_METRICS_PLUGIN = "VisitsSummary"
ALL_PLUGINS = "all"


def is_archiving_forced(period: Period, settings: ArchivingSettings) -> bool:
    """Return True if a debug override demands recomputing ``period``."""
    if period.label is PeriodLabel.DAY:
        return settings.always_archive_data_day
    if period.label is PeriodLabel.RANGE:
        return settings.always_archive_data_range
    return settings.always_archive_data_period


def determine_if_archive_permanent(period: Period, now: datetime) -> datetime | None:
    """Return the period end instant if the period is over, else ``None``."""
    end = period.end_utc
    if end < as_utc(now):
        return end
    return None


class InProgressPolicy(Protocol):
    """Minimum archived-at instant accepted for a period that is not over."""

    def min_time_processed(self, params: Parameters, now: datetime) -> datetime:
        ...


class ReArchiveIntervalPolicy:
    """Trust an in-progress archive for a fixed interval after it was built.

    Ranges use ``range_archive_ttl``; every other granularity uses
    ``today_archive_ttl``.
    """

    def __init__(self, settings: ArchivingSettings):
        self._settings = settings

    def interval(self, period: Period) -> int:
        if period.label is PeriodLabel.RANGE:
            return self._settings.range_archive_ttl
        return self._settings.today_archive_ttl

    def min_time_processed(self, params: Parameters, now: datetime) -> datetime:
        return as_utc(now) - timedelta(seconds=self.interval(params.period))


def min_acceptable_timestamp(
    params: Parameters,
    *,
    now: datetime,
    policy: InProgressPolicy | None = None,
) -> datetime:
    """Oldest archived-at instant that still makes an archive usable.

    Args:
        params: The request.
        now: Current instant.
        policy: Rule for in-progress periods. Defaults to
            :class:`ReArchiveIntervalPolicy` with default settings.
    """
    permanent_end = determine_if_archive_permanent(params.period, now)
    if permanent_end is not None:
        return permanent_end

    if policy is None:
        policy = ReArchiveIntervalPolicy(ArchivingSettings())
    return policy.min_time_processed(params, now)


class ProcessingRules:
    """Which plugins one archiving run produces.

    Archives without a segment always contain every plugin. Segment
    archives are built per plugin unless ``process_all_plugins_for_segments``
    is enabled.
    """

    def __init__(self, settings: ArchivingSettings):
        self._settings = settings

    def should_process_all_plugins(self, params: Parameters) -> bool:
        if not params.segment:
            return True
        return self._settings.process_all_plugins_for_segments

    def plugin_group(self, params: Parameters) -> str:
        if self.should_process_all_plugins(params):
            return ALL_PLUGINS
        return params.requested_plugin or ALL_PLUGINS

    def includes_core_metrics(self, params: Parameters) -> bool:
        """True if the requested archive already computes the visit counts."""
        return (
            self.should_process_all_plugins(params)
            or params.requested_plugin == CORE_METRICS_PLUGIN
        )


__all__ = [
    "ALL_PLUGINS",
    "CORE_METRICS_PLUGIN",
    "InProgressPolicy",
    "ProcessingRules",
    "ReArchiveIntervalPolicy",
    "determine_if_archive_permanent",
    "is_archiving_forced",
    "min_acceptable_timestamp",
]
