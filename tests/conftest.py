"""
Shared pytest fixtures for archive-spine tests.

This module provides:
- A fixed clock so freshness decisions are deterministic
- In-memory collaborators (archives, activity, ledger, locks)
- A recording aggregation engine that writes archives into the store
- ``make_context`` to build an ArchivingContext with overrides per test

Usage:
    def test_something(make_context, archives):
        ctx = make_context(settings=ArchivingSettings(always_archive_data_day=True))
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from archive_spine.archiving.context import ArchivingContext
from archive_spine.archiving.freshness import ProcessingRules
from archive_spine.archiving.params import Parameters
from archive_spine.archiving.stores import (
    CoreMetrics,
    InMemoryActivityStore,
    InMemoryArchiveStore,
    InMemoryInvalidationLedger,
    InMemoryLockBackend,
    LockTable,
)
from archive_spine.core.cache import CacheTiers, InMemoryCache
from archive_spine.core.settings import ArchivingSettings

NOW = datetime(2024, 4, 1, 12, 0, 0, tzinfo=UTC)


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Mutable clock returning both datetimes and epoch seconds."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def epoch(self) -> float:
        return self.now.timestamp()

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Aggregation engine double
# =============================================================================


class RecordingEngine:
    """Aggregation engine that counts activity events as visits.

    Every call is appended to ``calls`` as ``(plugin, method, args)``.
    """

    def __init__(
        self,
        params: Parameters,
        *,
        archives: InMemoryArchiveStore,
        activity: InMemoryActivityStore,
        rules: ProcessingRules,
        clock: FakeClock,
        calls: list[tuple[str | None, str, tuple]],
        fail_with: Exception | None = None,
    ):
        self.params = params
        self._archives = archives
        self._activity = activity
        self._rules = rules
        self._clock = clock
        self._calls = calls
        self._fail_with = fail_with
        self._metrics: CoreMetrics | None = None

    def aggregate_core_metrics(self) -> CoreMetrics:
        self._calls.append((self.params.requested_plugin, "aggregate_core_metrics", ()))
        period = self.params.period
        events = self._activity._events.get(self.params.site_id, [])
        visits = sum(1 for at in events if period.start_utc <= at <= period.end_utc)
        self._metrics = CoreMetrics(visits=visits, visits_converted=visits // 2)
        return self._metrics

    def aggregate_all_plugins(self, visits: int, visits_converted: int, force_without_visits: bool) -> None:
        self._calls.append(
            (
                self.params.requested_plugin,
                "aggregate_all_plugins",
                (visits, visits_converted, force_without_visits),
            )
        )
        if self._fail_with is not None:
            raise self._fail_with
        self._metrics = CoreMetrics(visits=visits, visits_converted=visits_converted)

    def finalize(self) -> int:
        self._calls.append((self.params.requested_plugin, "finalize", ()))
        metrics = self._metrics
        return self._archives.insert_archive(
            self.params,
            self._rules.plugin_group(self.params),
            visits=metrics.visits if metrics else None,
            visits_converted=metrics.visits_converted if metrics else None,
            archived_at=self._clock(),
        )


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def archives(clock) -> InMemoryArchiveStore:
    return InMemoryArchiveStore(clock=clock)


@pytest.fixture
def activity() -> InMemoryActivityStore:
    return InMemoryActivityStore()


@pytest.fixture
def ledger() -> InMemoryInvalidationLedger:
    return InMemoryInvalidationLedger()


@pytest.fixture
def lock_table() -> LockTable:
    return LockTable()


@pytest.fixture
def engine_calls() -> list[tuple[str | None, str, tuple]]:
    return []


@pytest.fixture
def make_context(
    archives, activity, ledger, lock_table, engine_calls, clock
) -> Callable[..., ArchivingContext]:
    """Build an ArchivingContext around the shared in-memory collaborators.

    Keyword arguments override ArchivingContext fields; ``fail_with`` makes
    the engine raise from ``aggregate_all_plugins``.
    """

    def factory(*, fail_with: Exception | None = None, **overrides: Any) -> ArchivingContext:
        settings = overrides.pop("settings", ArchivingSettings())
        rules = ProcessingRules(settings)

        def engine_factory(params: Parameters) -> RecordingEngine:
            return RecordingEngine(
                params,
                archives=archives,
                activity=activity,
                rules=rules,
                clock=clock,
                calls=engine_calls,
                fail_with=fail_with,
            )

        kwargs: dict[str, Any] = {
            "archives": archives,
            "activity": activity,
            "ledger": ledger,
            "locks": InMemoryLockBackend(lock_table, clock=clock.epoch),
            "engine_factory": engine_factory,
            "settings": settings,
            "caches": CacheTiers(
                transient=InMemoryCache(default_ttl_seconds=None, clock=clock.epoch),
                lazy=InMemoryCache(default_ttl_seconds=3600, clock=clock.epoch),
            ),
            "clock": clock,
        }
        kwargs.update(overrides)
        return ArchivingContext(**kwargs)

    return factory
