"""SQL-backed collaborators.

Each class takes any DB-API connection matching
:class:`~archive_spine.core.protocols.Connection` (``sqlite3`` in tests)
and wraps driver failures in :class:`~archive_spine.core.errors.StoreError`
with the original exception chained as ``cause``.

Tables::

    archive_metadata              one row per finalized archive
    log_activity                  raw tracked activity (site_id, occurred_at)
    archive_pending_invalidations (day, site_id) pairs awaiting re-archiving
    core_archiving_locks          held archiving locks with expiry

Example::

    conn = sqlite3.connect("archives.db")
    create_tables(conn)
    store = SqlArchiveMetadataStore(conn)
    locks = SqlLockBackend(conn)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime, timedelta

from archive_spine.archiving.params import Parameters, Period, PeriodLabel
from archive_spine.archiving.stores import ArchiveRecord, ArchiveStatus
from archive_spine.core.errors import StoreError
from archive_spine.core.logging import get_logger
from archive_spine.core.protocols import Connection
from archive_spine.core.timestamps import as_utc, from_iso8601, utc_now

logger = get_logger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS archive_metadata (
        archive_id INTEGER PRIMARY KEY AUTOINCREMENT,
        site_id INTEGER NOT NULL,
        period_label TEXT NOT NULL,
        date_start TEXT NOT NULL,
        date_end TEXT NOT NULL,
        segment TEXT NOT NULL DEFAULT '',
        plugin_group TEXT NOT NULL,
        archived_at TEXT NOT NULL,
        visits INTEGER,
        visits_converted INTEGER,
        status TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_archive_metadata_lookup
        ON archive_metadata (site_id, period_label, date_start, date_end, plugin_group)
    """,
    """
    CREATE TABLE IF NOT EXISTS log_activity (
        site_id INTEGER NOT NULL,
        occurred_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_log_activity_site_time
        ON log_activity (site_id, occurred_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS archive_pending_invalidations (
        day TEXT NOT NULL,
        site_id INTEGER NOT NULL,
        PRIMARY KEY (day, site_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS core_archiving_locks (
        lock_key TEXT PRIMARY KEY,
        owner TEXT NOT NULL,
        acquired_at TEXT NOT NULL,
        expires_at TEXT NOT NULL
    )
    """,
)


def create_tables(conn: Connection) -> None:
    """Create every table used by the SQL collaborators (idempotent)."""
    with _store_errors("schema", conn):
        for ddl in SCHEMA:
            conn.execute(ddl)
        conn.commit()


def _ts(dt: datetime) -> str:
    """Fixed-width ISO timestamp so string comparison orders instants."""
    return as_utc(dt).isoformat(timespec="microseconds")


@contextmanager
def _store_errors(store: str, conn: Connection) -> Iterator[None]:
    try:
        yield
    except StoreError:
        raise
    except Exception as exc:
        try:
            conn.rollback()
        except Exception:
            logger.warning("rollback_failed", store=store)
        raise StoreError(f"{store} operation failed: {exc}", cause=exc).with_context(
            store=store
        ) from exc


# ---------------------------------------------------------------------------
# Archive metadata
# ---------------------------------------------------------------------------


class SqlArchiveMetadataStore:
    """Archive metadata in the ``archive_metadata`` table.

    ``clock`` stamps archives inserted without an explicit ``archived_at``.
    """

    _COLUMNS = (
        "archive_id, site_id, period_label, date_start, date_end, segment, "
        "plugin_group, archived_at, visits, visits_converted, status"
    )

    def __init__(self, conn: Connection, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._conn = conn
        self._clock = clock

    def find_archive(
        self,
        site_id: int,
        period: Period,
        segment: str,
        plugin_group: str,
        *,
        min_archived_at: datetime,
    ) -> ArchiveRecord | None:
        with _store_errors("archive_metadata", self._conn):
            row = self._conn.execute(
                f"SELECT {self._COLUMNS} FROM archive_metadata "
                "WHERE site_id = ? AND period_label = ? AND date_start = ? AND date_end = ? "
                "AND segment = ? AND plugin_group = ? AND status = ? AND archived_at >= ? "
                "ORDER BY archived_at DESC, archive_id DESC LIMIT 1",
                (
                    site_id,
                    period.label.value,
                    period.start.isoformat(),
                    period.end.isoformat(),
                    segment,
                    plugin_group,
                    ArchiveStatus.COMPLETE.value,
                    _ts(min_archived_at),
                ),
            ).fetchone()
        return _row_to_record(row) if row else None

    def has_any_archive(self, site_id: int, period: Period, segment: str, plugin_group: str) -> bool:
        with _store_errors("archive_metadata", self._conn):
            row = self._conn.execute(
                "SELECT 1 FROM archive_metadata "
                "WHERE site_id = ? AND period_label = ? AND date_start = ? AND date_end = ? "
                "AND segment = ? AND plugin_group = ? LIMIT 1",
                (
                    site_id,
                    period.label.value,
                    period.start.isoformat(),
                    period.end.isoformat(),
                    segment,
                    plugin_group,
                ),
            ).fetchone()
        return row is not None

    def has_finer_granularity_archives(self, site_id: int, period: Period) -> bool:
        finer = period.finer_labels()
        if not finer:
            return False
        placeholders = ", ".join("?" for _ in finer)
        with _store_errors("archive_metadata", self._conn):
            row = self._conn.execute(
                "SELECT 1 FROM archive_metadata "
                f"WHERE site_id = ? AND period_label IN ({placeholders}) "
                "AND date_start >= ? AND date_end <= ? LIMIT 1",
                (
                    site_id,
                    *(label.value for label in finer),
                    period.start.isoformat(),
                    period.end.isoformat(),
                ),
            ).fetchone()
        return row is not None

    def invalidate(
        self, site_ids: Iterable[int], dates: Iterable[date], cascade: bool, segment: str | None
    ) -> None:
        sites = list(site_ids)
        if not sites:
            return
        site_clause = ", ".join("?" for _ in sites)
        segment_clause = "" if segment is None else " AND segment = ?"
        segment_args: tuple = () if segment is None else (segment,)

        with _store_errors("archive_metadata", self._conn):
            for day in dates:
                self._conn.execute(
                    "UPDATE archive_metadata SET status = ? "
                    f"WHERE site_id IN ({site_clause}) AND date_start <= ? AND date_end >= ?"
                    f"{segment_clause}",
                    (
                        ArchiveStatus.INVALIDATED.value,
                        *sites,
                        day.isoformat(),
                        day.isoformat(),
                        *segment_args,
                    ),
                )
                if cascade:
                    for parent in (Period.week(day), Period.month(day.year, day.month), Period.year(day.year)):
                        self._conn.execute(
                            "UPDATE archive_metadata SET status = ? "
                            f"WHERE site_id IN ({site_clause}) AND date_start >= ? AND date_end <= ?"
                            f"{segment_clause}",
                            (
                                ArchiveStatus.INVALIDATED.value,
                                *sites,
                                parent.start.isoformat(),
                                parent.end.isoformat(),
                                *segment_args,
                            ),
                        )
            self._conn.commit()

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
        with _store_errors("archive_metadata", self._conn):
            cursor = self._conn.execute(
                "INSERT INTO archive_metadata (site_id, period_label, date_start, date_end, "
                "segment, plugin_group, archived_at, visits, visits_converted, status) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    params.site_id,
                    params.period.label.value,
                    params.period.start.isoformat(),
                    params.period.end.isoformat(),
                    params.segment,
                    plugin_group,
                    _ts(archived_at or self._clock()),
                    visits,
                    visits_converted,
                    status.value,
                ),
            )
            self._conn.commit()
        return cursor.lastrowid


def _row_to_record(row) -> ArchiveRecord:
    return ArchiveRecord(
        archive_id=row[0],
        site_id=row[1],
        period=Period(PeriodLabel(row[2]), date.fromisoformat(row[3]), date.fromisoformat(row[4])),
        segment=row[5],
        plugin_group=row[6],
        archived_at=from_iso8601(row[7]),
        visits=row[8],
        visits_converted=row[9],
        status=ArchiveStatus(row[10]),
    )


# ---------------------------------------------------------------------------
# Raw activity
# ---------------------------------------------------------------------------


class SqlActivityStore:
    """Raw tracked activity in the ``log_activity`` table."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def record(self, site_id: int, at: datetime) -> None:
        with _store_errors("log_activity", self._conn):
            self._conn.execute(
                "INSERT INTO log_activity (site_id, occurred_at) VALUES (?, ?)",
                (site_id, _ts(at)),
            )
            self._conn.commit()

    def min_activity_timestamp(self, site_id: int) -> datetime | None:
        with _store_errors("log_activity", self._conn):
            row = self._conn.execute(
                "SELECT MIN(occurred_at) FROM log_activity WHERE site_id = ?",
                (site_id,),
            ).fetchone()
        return from_iso8601(row[0]) if row and row[0] else None

    def has_activity_between(self, site_id: int, start: datetime, end: datetime) -> bool:
        with _store_errors("log_activity", self._conn):
            row = self._conn.execute(
                "SELECT 1 FROM log_activity "
                "WHERE site_id = ? AND occurred_at >= ? AND occurred_at <= ? LIMIT 1",
                (site_id, _ts(start), _ts(end)),
            ).fetchone()
        return row is not None


# ---------------------------------------------------------------------------
# Invalidation ledger
# ---------------------------------------------------------------------------


class SqlInvalidationLedger:
    """Pending invalidations in ``archive_pending_invalidations``."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def pending_invalidations(self) -> dict[date, set[int]]:
        with _store_errors("invalidation_ledger", self._conn):
            rows = self._conn.execute(
                "SELECT day, site_id FROM archive_pending_invalidations"
            ).fetchall()
        pending: dict[date, set[int]] = {}
        for day, site_id in rows:
            pending.setdefault(date.fromisoformat(day), set()).add(site_id)
        return pending

    def remember(self, day: date, site_ids: Iterable[int]) -> None:
        with _store_errors("invalidation_ledger", self._conn):
            for site_id in site_ids:
                self._conn.execute(
                    "INSERT INTO archive_pending_invalidations (day, site_id) VALUES (?, ?) "
                    "ON CONFLICT (day, site_id) DO NOTHING",
                    (day.isoformat(), site_id),
                )
            self._conn.commit()

    def forget(self, day: date, site_ids: Iterable[int]) -> None:
        with _store_errors("invalidation_ledger", self._conn):
            for site_id in site_ids:
                self._conn.execute(
                    "DELETE FROM archive_pending_invalidations WHERE day = ? AND site_id = ?",
                    (day.isoformat(), site_id),
                )
            self._conn.commit()


# ---------------------------------------------------------------------------
# Locks
# ---------------------------------------------------------------------------


class SqlLockBackend:
    """Archiving locks in ``core_archiving_locks`` with automatic expiry.

    If a worker crashes while holding a lock, the row expires after
    ``ttl_seconds`` and the next acquire reaps it.
    """

    def __init__(self, conn: Connection, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._conn = conn
        self._clock = clock

    def try_acquire(self, key: str, *, owner: str, ttl_seconds: int) -> bool:
        now = self._clock()
        expires_at = now + timedelta(seconds=ttl_seconds)

        with _store_errors("archiving_locks", self._conn):
            # Reap an expired lock on this key first
            self._conn.execute(
                "DELETE FROM core_archiving_locks WHERE lock_key = ? AND expires_at <= ?",
                (key, _ts(now)),
            )
            cursor = self._conn.execute(
                "INSERT INTO core_archiving_locks (lock_key, owner, acquired_at, expires_at) "
                "VALUES (?, ?, ?, ?) ON CONFLICT (lock_key) DO NOTHING",
                (key, owner, _ts(now), _ts(expires_at)),
            )
            if cursor.rowcount > 0:
                self._conn.commit()
                return True

            # Already locked; extend if we are the holder
            cursor = self._conn.execute(
                "UPDATE core_archiving_locks SET expires_at = ? WHERE lock_key = ? AND owner = ?",
                (_ts(expires_at), key, owner),
            )
            self._conn.commit()
            return cursor.rowcount > 0

    def release(self, key: str, *, owner: str) -> bool:
        with _store_errors("archiving_locks", self._conn):
            cursor = self._conn.execute(
                "DELETE FROM core_archiving_locks WHERE lock_key = ? AND owner = ?",
                (key, owner),
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def is_locked(self, key: str) -> bool:
        with _store_errors("archiving_locks", self._conn):
            row = self._conn.execute(
                "SELECT expires_at FROM core_archiving_locks WHERE lock_key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return False
        return from_iso8601(row[0]) > self._clock()


__all__ = [
    "SCHEMA",
    "SqlActivityStore",
    "SqlArchiveMetadataStore",
    "SqlInvalidationLedger",
    "SqlLockBackend",
    "create_tables",
]
