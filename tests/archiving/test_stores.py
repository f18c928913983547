"""
Tests for the in-memory collaborators in archive_spine.archiving.stores.
"""

from datetime import UTC, date, datetime, timedelta

from archive_spine.archiving.params import Parameters, Period
from archive_spine.archiving.stores import (
    ArchiveStatus,
    InMemoryInvalidationLedger,
    InMemoryLockBackend,
)

T0 = datetime(2024, 3, 11, 1, 0, tzinfo=UTC)
DAY = Period.day(date(2024, 3, 10))


class TestInMemoryArchiveStore:
    def test_find_newest_complete(self, archives):
        params = Parameters(site_id=1, period=DAY)
        archives.insert_archive(params, "all", visits=1, visits_converted=0, archived_at=T0)
        newer = archives.insert_archive(
            params, "all", visits=2, visits_converted=1, archived_at=T0 + timedelta(hours=1)
        )
        found = archives.find_archive(1, DAY, "", "all", min_archived_at=T0)
        assert found.archive_id == newer
        assert found.visits == 2

    def test_min_archived_at_is_inclusive(self, archives):
        archives.insert_archive(
            Parameters(site_id=1, period=DAY), "all", visits=1, visits_converted=0, archived_at=T0
        )
        assert archives.find_archive(1, DAY, "", "all", min_archived_at=T0) is not None
        assert (
            archives.find_archive(1, DAY, "", "all", min_archived_at=T0 + timedelta(seconds=1))
            is None
        )

    def test_invalidated_not_found_but_exists(self, archives):
        archives.insert_archive(
            Parameters(site_id=1, period=DAY),
            "all",
            visits=1,
            visits_converted=0,
            archived_at=T0,
            status=ArchiveStatus.INVALIDATED,
        )
        assert archives.find_archive(1, DAY, "", "all", min_archived_at=T0) is None
        assert archives.has_any_archive(1, DAY, "", "all")
        assert not archives.has_any_archive(1, DAY, "", "Goals")

    def test_archived_at_defaults_to_clock(self, archives, clock):
        archive_id = archives.insert_archive(Parameters(site_id=1, period=DAY), "all", visits=1, visits_converted=0)
        assert archives.get(archive_id).archived_at == clock()

    def test_finer_granularity(self, archives):
        month = Period.month(2024, 3)
        assert not archives.has_finer_granularity_archives(1, month)
        archives.insert_archive(Parameters(site_id=1, period=DAY), "all", visits=0, visits_converted=0)
        assert archives.has_finer_granularity_archives(1, month)
        assert not archives.has_finer_granularity_archives(2, month)
        assert not archives.has_finer_granularity_archives(1, Period.month(2024, 4))
        assert not archives.has_finer_granularity_archives(1, DAY)

    def test_invalidate_cascade(self, archives):
        sibling = archives.insert_archive(
            Parameters(site_id=1, period=Period.day(date(2024, 3, 8))), "all", visits=1, visits_converted=0
        )
        other_year = archives.insert_archive(
            Parameters(site_id=1, period=Period.day(date(2023, 12, 30))), "all", visits=1, visits_converted=0
        )
        archives.invalidate([1], [date(2024, 3, 10)], False, None)
        assert archives.get(sibling).status is ArchiveStatus.COMPLETE

        archives.invalidate([1], [date(2024, 3, 10)], True, None)
        assert archives.get(sibling).status is ArchiveStatus.INVALIDATED
        assert archives.get(other_year).status is ArchiveStatus.COMPLETE


class TestInMemoryActivityStore:
    def test_min_and_between(self, activity):
        assert activity.min_activity_timestamp(1) is None
        activity.record(1, T0)
        activity.record(1, T0 - timedelta(days=2))
        assert activity.min_activity_timestamp(1) == T0 - timedelta(days=2)
        assert activity.has_activity_between(1, T0, T0)
        assert not activity.has_activity_between(1, T0 + timedelta(seconds=1), T0 + timedelta(days=1))
        assert activity.queries == 4


class TestInMemoryInvalidationLedger:
    def test_remember_and_forget(self):
        ledger = InMemoryInvalidationLedger()
        ledger.remember(date(2024, 1, 5), [7, 9])
        ledger.remember(date(2024, 1, 5), [9, 10])
        assert ledger.pending_invalidations() == {date(2024, 1, 5): {7, 9, 10}}

        ledger.forget(date(2024, 1, 5), [7, 9, 10])
        assert ledger.pending_invalidations() == {}

    def test_pending_is_a_copy(self):
        ledger = InMemoryInvalidationLedger({date(2024, 1, 5): [7]})
        ledger.pending_invalidations()[date(2024, 1, 5)].add(99)
        assert ledger.pending_invalidations() == {date(2024, 1, 5): {7}}


class TestInMemoryLockBackend:
    def test_reacquire_by_owner_extends(self, lock_table, clock):
        backend = InMemoryLockBackend(lock_table, clock=clock.epoch)
        assert backend.try_acquire("k", owner="a", ttl_seconds=60)
        clock.advance(50)
        assert backend.try_acquire("k", owner="a", ttl_seconds=60)
        clock.advance(50)
        assert backend.is_locked("k")
        assert not backend.try_acquire("k", owner="b", ttl_seconds=60)

    def test_shared_table(self, lock_table):
        a = InMemoryLockBackend(lock_table)
        b = InMemoryLockBackend(lock_table)
        assert a.try_acquire("k", owner="a", ttl_seconds=60)
        assert b.is_locked("k")
        assert not b.release("k", owner="b")
        assert a.release("k", owner="a")
        assert not b.is_locked("k")
