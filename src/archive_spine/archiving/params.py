"""
Request parameters for one archiving decision.

A request is identified by (site, period, segment, plugin). ``Parameters``
is an immutable value: selecting the requested plugin returns a copy, so
the same object can be shared between the lookup, the lock and the
aggregation engine without any of them observing a change.

Architecture:
    ::

        Parameters(site_id=7, period=Period.month(2024, 1), segment="")
          ├── .with_plugin("Goals")    → copy with requested_plugin set
          ├── .archive_key()           → "7:month:2024-01-01:2024-01-31:<seg>:Goals"
          └── .period.finer_labels()   → (DAY, WEEK)

        PeriodLabel ordering: DAY < WEEK < MONTH < YEAR < RANGE

Examples:
    >>> from datetime import date
    >>> p = Parameters(site_id=1, period=Period.day(date(2024, 3, 10)))
    >>> p.with_plugin("VisitsSummary").requested_plugin
    'VisitsSummary'
    >>> Period.month(2024, 1).end
    datetime.date(2024, 1, 31)
"""

from __future__ import annotations

import calendar
import hashlib
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import Enum

from archive_spine.core.timestamps import end_of_day, start_of_day


class PeriodLabel(str, Enum):
    """Granularity of a period."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    RANGE = "range"

    @property
    def order(self) -> int:
        return _LABEL_ORDER[self]


_LABEL_ORDER = {
    PeriodLabel.DAY: 1,
    PeriodLabel.WEEK: 2,
    PeriodLabel.MONTH: 3,
    PeriodLabel.YEAR: 4,
    PeriodLabel.RANGE: 5,
}


@dataclass(frozen=True, slots=True)
class Period:
    """A calendar interval ``[start, end]`` (both days inclusive)."""

    label: PeriodLabel
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"period end {self.end} is before period start {self.start}")

    # -- factories -----------------------------------------------------------

    @classmethod
    def day(cls, d: date) -> Period:
        return cls(PeriodLabel.DAY, d, d)

    @classmethod
    def week(cls, d: date) -> Period:
        """The Monday-to-Sunday week containing ``d``."""
        monday = d - timedelta(days=d.weekday())
        return cls(PeriodLabel.WEEK, monday, monday + timedelta(days=6))

    @classmethod
    def month(cls, year: int, month: int) -> Period:
        last = calendar.monthrange(year, month)[1]
        return cls(PeriodLabel.MONTH, date(year, month, 1), date(year, month, last))

    @classmethod
    def year(cls, year: int) -> Period:
        return cls(PeriodLabel.YEAR, date(year, 1, 1), date(year, 12, 31))

    @classmethod
    def range(cls, start: date, end: date) -> Period:
        return cls(PeriodLabel.RANGE, start, end)

    # -- instants ------------------------------------------------------------

    @property
    def start_utc(self) -> datetime:
        """Midnight UTC of the first day."""
        return start_of_day(self.start)

    @property
    def end_utc(self) -> datetime:
        """Last second (23:59:59 UTC) of the last day."""
        return end_of_day(self.end)

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end

    def finer_labels(self) -> tuple[PeriodLabel, ...]:
        """Granularities whose archives may sit inside this period."""
        return tuple(label for label in PeriodLabel if label.order < self.label.order)

    def __str__(self) -> str:
        if self.start == self.end:
            return f"{self.label.value} {self.start.isoformat()}"
        return f"{self.label.value} {self.start.isoformat()},{self.end.isoformat()}"


@dataclass(frozen=True, slots=True)
class Parameters:
    """Identity of one archiving request.

    Attributes:
        site_id: Site the report is requested for.
        period: Period the report covers.
        segment: Segment definition; empty string means "all visits".
        requested_plugin: Plugin whose reports are requested, if any.
    """

    site_id: int
    period: Period
    segment: str = ""
    requested_plugin: str | None = None

    def with_plugin(self, plugin: str | None) -> Parameters:
        return replace(self, requested_plugin=plugin)

    @property
    def segment_hash(self) -> str:
        if not self.segment:
            return ""
        return hashlib.md5(self.segment.encode("utf-8")).hexdigest()

    def archive_key(self, *, plugin_independent: bool = False) -> str:
        """Key identifying this request for locking and caching.

        Args:
            plugin_independent: Leave the plugin out, giving the
                (site, period, segment) identity.
        """
        parts = [
            str(self.site_id),
            self.period.label.value,
            self.period.start.isoformat(),
            self.period.end.isoformat(),
            self.segment_hash,
        ]
        if not plugin_independent:
            parts.append(self.requested_plugin or "")
        return ":".join(parts)

    def __str__(self) -> str:
        segment = self.segment or "All visits"
        return (
            f"[idSite = {self.site_id}, period = {self.period}, "
            f"segment = {segment}, plugin = {self.requested_plugin}]"
        )


__all__ = ["Parameters", "Period", "PeriodLabel"]
