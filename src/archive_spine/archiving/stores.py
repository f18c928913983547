"""
Collaborator contracts consumed by the archiver, with in-memory backends.

The archiver owns no storage. It reads archive metadata, raw activity and
pending invalidations, and takes locks, through the protocols below. The
in-memory implementations back tests and single-process tools; the
SQL-backed ones live in :mod:`archive_spine.archiving.sql`.

Architecture:
    ::

        ArchiveMetadataStore   find_archive / has_any_archive /
                               has_finer_granularity_archives / invalidate /
                               insert_archive
        ActivityStore          min_activity_timestamp / has_activity_between
        InvalidationLedger     pending_invalidations / remember / forget
        LockBackend            try_acquire / release / is_locked
        AggregationEngine      aggregate_core_metrics / aggregate_all_plugins /
                               finalize   (built per request by a factory)

Guardrails:
    ❌ DON'T: Mutate an ArchiveRecord in place
    ✅ DO: Replace it (``dataclasses.replace``) inside the store

    ❌ DON'T: Share an InMemoryLockBackend's table between processes
    ✅ DO: Use SqlLockBackend or RedisLockBackend across workers
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Protocol

from archive_spine.archiving.params import Parameters, Period
from archive_spine.core.timestamps import as_utc, utc_now

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


class ArchiveStatus(str, Enum):
    """Validity of a persisted archive."""

    COMPLETE = "complete"
    PARTIAL = "partial"
    INVALIDATED = "invalidated"


@dataclass(frozen=True, slots=True)
class ArchiveRecord:
    """A persisted archive as seen by the archiver (read-only).

    Attributes:
        archive_id: Opaque id assigned by the store.
        site_id: Site the archive belongs to.
        period: Period the archive covers.
        segment: Segment definition ("" for all visits).
        plugin_group: ``"all"`` or the plugin the archive was built for.
        archived_at: When the archive was finalized (UTC).
        visits: Visit count, ``None`` if the archive holds no core metrics.
        visits_converted: Converted visit count, ``None`` likewise.
        status: Whether the archive can still be served.
    """

    archive_id: int
    site_id: int
    period: Period
    segment: str
    plugin_group: str
    archived_at: datetime
    visits: int | None = None
    visits_converted: int | None = None
    status: ArchiveStatus = ArchiveStatus.COMPLETE


@dataclass(frozen=True, slots=True)
class CoreMetrics:
    """Visit counts produced by the core-metrics aggregation."""

    visits: int
    visits_converted: int


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class ArchiveMetadataStore(Protocol):
    def find_archive(
        self,
        site_id: int,
        period: Period,
        segment: str,
        plugin_group: str,
        *,
        min_archived_at: datetime,
    ) -> ArchiveRecord | None:
        """Newest COMPLETE archive archived at or after ``min_archived_at``."""
        ...

    def has_any_archive(self, site_id: int, period: Period, segment: str, plugin_group: str) -> bool:
        """True if any archive exists for the tuple, whatever its status or age."""
        ...

    def has_finer_granularity_archives(self, site_id: int, period: Period) -> bool:
        """True if an archive of a finer granularity lies inside ``period``."""
        ...

    def invalidate(
        self, site_ids: Iterable[int], dates: Iterable[date], cascade: bool, segment: str | None
    ) -> None:
        """Mark archives covering ``dates`` for ``site_ids`` as invalidated."""
        ...

    def insert_archive(
        self,
        params: Parameters,
        plugin_group: str,
        *,
        visits: int | None,
        visits_converted: int | None,
        archived_at: datetime | None = None,
    ) -> int:
        """Persist a finalized archive and return its id."""
        ...


class ActivityStore(Protocol):
    def min_activity_timestamp(self, site_id: int) -> datetime | None:
        ...

    def has_activity_between(self, site_id: int, start: datetime, end: datetime) -> bool:
        ...


class InvalidationLedger(Protocol):
    def pending_invalidations(self) -> dict[date, set[int]]:
        ...

    def remember(self, day: date, site_ids: Iterable[int]) -> None:
        ...

    def forget(self, day: date, site_ids: Iterable[int]) -> None:
        ...


class LockBackend(Protocol):
    def try_acquire(self, key: str, *, owner: str, ttl_seconds: int) -> bool:
        """Take the lock for ``owner``. Re-acquiring an owned lock extends it."""
        ...

    def release(self, key: str, *, owner: str) -> bool:
        """Drop the lock if ``owner`` holds it."""
        ...

    def is_locked(self, key: str) -> bool:
        ...


class AggregationEngine(Protocol):
    def aggregate_core_metrics(self) -> CoreMetrics:
        ...

    def aggregate_all_plugins(
        self, visits: int, visits_converted: int, force_without_visits: bool
    ) -> None:
        ...

    def finalize(self) -> int:
        ...


AggregationEngineFactory = Callable[[Parameters], AggregationEngine]


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryArchiveStore:
    """Archive metadata kept in a dict, keyed by archive id.

    ``clock`` stamps archives inserted without an explicit ``archived_at``.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._archives: dict[int, ArchiveRecord] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def _matching(self, site_id: int, period: Period, segment: str, plugin_group: str) -> list[ArchiveRecord]:
        return [
            a
            for a in self._archives.values()
            if a.site_id == site_id
            and a.period == period
            and a.segment == segment
            and a.plugin_group == plugin_group
        ]

    def find_archive(
        self,
        site_id: int,
        period: Period,
        segment: str,
        plugin_group: str,
        *,
        min_archived_at: datetime,
    ) -> ArchiveRecord | None:
        usable = [
            a
            for a in self._matching(site_id, period, segment, plugin_group)
            if a.status is ArchiveStatus.COMPLETE and a.archived_at >= as_utc(min_archived_at)
        ]
        if not usable:
            return None
        return max(usable, key=lambda a: (a.archived_at, a.archive_id))

    def has_any_archive(self, site_id: int, period: Period, segment: str, plugin_group: str) -> bool:
        return bool(self._matching(site_id, period, segment, plugin_group))

    def has_finer_granularity_archives(self, site_id: int, period: Period) -> bool:
        finer = period.finer_labels()
        return any(
            a.site_id == site_id
            and a.period.label in finer
            and a.period.start >= period.start
            and a.period.end <= period.end
            for a in self._archives.values()
        )

    def invalidate(
        self, site_ids: Iterable[int], dates: Iterable[date], cascade: bool, segment: str | None
    ) -> None:
        sites = set(site_ids)
        days = list(dates)
        with self._lock:
            for archive_id, archive in list(self._archives.items()):
                if archive.site_id not in sites:
                    continue
                if segment is not None and archive.segment != segment:
                    continue
                if _covers(archive.period, days, cascade):
                    self._archives[archive_id] = replace(archive, status=ArchiveStatus.INVALIDATED)

    def insert_archive(
        self,
        params: Parameters,
        plugin_group: str,
        *,
        visits: int | None,
        visits_converted: int | None,
        archived_at: datetime | None = None,
        status: ArchiveStatus = ArchiveStatus.COMPLETE,
    ) -> int:
        with self._lock:
            archive_id = self._next_id
            self._next_id += 1
            self._archives[archive_id] = ArchiveRecord(
                archive_id=archive_id,
                site_id=params.site_id,
                period=params.period,
                segment=params.segment,
                plugin_group=plugin_group,
                archived_at=as_utc(archived_at or self._clock()),
                visits=visits,
                visits_converted=visits_converted,
                status=status,
            )
        return archive_id

    def get(self, archive_id: int) -> ArchiveRecord | None:
        return self._archives.get(archive_id)

    def __len__(self) -> int:
        return len(self._archives)


def _covers(period: Period, days: list[date], cascade: bool) -> bool:
    """Does invalidating ``days`` reach an archive of ``period``?

    Without cascade, only archives whose period contains one of the days
    are affected. With cascade, archives lying inside a longer period
    that contains the day are affected too, so invalidating a day's week
    also reaches the other days of that week.
    """
    for day in days:
        if period.contains(day):
            return True
        if cascade and _parent_contains(period, day):
            return True
    return False


def _parent_contains(period: Period, day: date) -> bool:
    parents = (Period.week(day), Period.month(day.year, day.month), Period.year(day.year))
    return any(p.start <= period.start and period.end <= p.end for p in parents)


class InMemoryActivityStore:
    """Raw activity timestamps per site."""

    def __init__(self) -> None:
        self._events: dict[int, list[datetime]] = {}
        self.queries = 0

    def record(self, site_id: int, at: datetime) -> None:
        self._events.setdefault(site_id, []).append(as_utc(at))

    def min_activity_timestamp(self, site_id: int) -> datetime | None:
        self.queries += 1
        events = self._events.get(site_id)
        return min(events) if events else None

    def has_activity_between(self, site_id: int, start: datetime, end: datetime) -> bool:
        self.queries += 1
        start, end = as_utc(start), as_utc(end)
        return any(start <= at <= end for at in self._events.get(site_id, []))


class InMemoryInvalidationLedger:
    """Pending invalidations: day → site ids."""

    def __init__(self, pending: dict[date, Iterable[int]] | None = None) -> None:
        self._pending: dict[date, set[int]] = {
            day: set(sites) for day, sites in (pending or {}).items()
        }
        self._lock = threading.Lock()

    def pending_invalidations(self) -> dict[date, set[int]]:
        with self._lock:
            return {day: set(sites) for day, sites in self._pending.items()}

    def remember(self, day: date, site_ids: Iterable[int]) -> None:
        with self._lock:
            self._pending.setdefault(day, set()).update(site_ids)

    def forget(self, day: date, site_ids: Iterable[int]) -> None:
        with self._lock:
            remaining = self._pending.get(day, set()) - set(site_ids)
            if remaining:
                self._pending[day] = remaining
            else:
                self._pending.pop(day, None)


class LockTable:
    """Lock rows shared by every InMemoryLockBackend built on it."""

    def __init__(self) -> None:
        self.rows: dict[str, tuple[str, float]] = {}
        self.mutex = threading.Lock()


class InMemoryLockBackend:
    """Process-local lock table with TTL expiry.

    Several backends may share one :class:`LockTable` to simulate
    independent workers.
    """

    def __init__(
        self,
        table: LockTable | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._table = table if table is not None else LockTable()
        self._clock = clock

    def try_acquire(self, key: str, *, owner: str, ttl_seconds: int) -> bool:
        with self._table.mutex:
            now = self._clock()
            held = self._table.rows.get(key)
            if held is not None and held[1] > now and held[0] != owner:
                return False
            self._table.rows[key] = (owner, now + ttl_seconds)
            return True

    def release(self, key: str, *, owner: str) -> bool:
        with self._table.mutex:
            held = self._table.rows.get(key)
            if held is None or held[0] != owner:
                return False
            del self._table.rows[key]
            return True

    def is_locked(self, key: str) -> bool:
        with self._table.mutex:
            held = self._table.rows.get(key)
            return held is not None and held[1] > self._clock()


__all__ = [
    "ActivityStore",
    "AggregationEngine",
    "AggregationEngineFactory",
    "ArchiveMetadataStore",
    "ArchiveRecord",
    "ArchiveStatus",
    "CoreMetrics",
    "InMemoryActivityStore",
    "InMemoryArchiveStore",
    "InMemoryInvalidationLedger",
    "InMemoryLockBackend",
    "InvalidationLedger",
    "LockBackend",
    "LockTable",
]
