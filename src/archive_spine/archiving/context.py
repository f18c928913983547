"""
Worker-scoped context for archiving.

An :class:`ArchivingContext` is built once per worker process at startup
and handed to every :class:`~archive_spine.archiving.loader.ArchiveLoader`.
It carries the collaborators, the validated settings, the frozen
registration snapshot, the cache tiers and the clock, and wires the
decision components from them. Nothing in the archiver reads global state.

:meth:`ArchivingContext.from_settings` is the worker startup path: it
configures logging at ``settings.log_level`` and puts the lazy cache tier
in Redis when ``settings.redis_url`` is set.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from archive_spine.archiving.activity import ActivityProbe
from archive_spine.archiving.extensions import ArchivingOverrides
from archive_spine.archiving.freshness import (
    InProgressPolicy,
    ProcessingRules,
    ReArchiveIntervalPolicy,
)
from archive_spine.archiving.invalidation import InvalidationCoordinator
from archive_spine.archiving.lookup import ArchiveSelector
from archive_spine.archiving.status import ArchivingStatus
from archive_spine.archiving.stores import (
    ActivityStore,
    AggregationEngineFactory,
    ArchiveMetadataStore,
    InvalidationLedger,
    LockBackend,
)
from archive_spine.core.cache import CacheBackend, CacheTiers, InMemoryCache
from archive_spine.core.logging import configure_logging, get_logger
from archive_spine.core.settings import ArchivingSettings
from archive_spine.core.timestamps import utc_now

logger = get_logger(__name__)


@dataclass
class ArchivingContext:
    """Collaborators and configuration shared by every archiving request.

    Attributes:
        archives: Archive metadata store.
        activity: Raw activity store.
        ledger: Invalidation ledger.
        locks: Lock backend.
        engine_factory: Builds an aggregation engine for a request.
        settings: Validated archiving settings.
        overrides: Frozen registration snapshot.
        caches: Transient and lazy cache tiers.
        site_cache: Site metadata cache, cleared after invalidations.
        in_progress_policy: Freshness rule for periods that are not over.
        clock: Returns "now" as an aware UTC datetime.
    """

    archives: ArchiveMetadataStore
    activity: ActivityStore
    ledger: InvalidationLedger
    locks: LockBackend
    engine_factory: AggregationEngineFactory
    settings: ArchivingSettings = field(default_factory=ArchivingSettings.load)
    overrides: ArchivingOverrides = field(default_factory=ArchivingOverrides)
    caches: CacheTiers = field(default_factory=CacheTiers)
    site_cache: CacheBackend = field(
        default_factory=lambda: InMemoryCache(default_ttl_seconds=None)
    )
    in_progress_policy: InProgressPolicy | None = None
    clock: Callable[[], datetime] = utc_now

    def __post_init__(self) -> None:
        if self.in_progress_policy is None:
            self.in_progress_policy = ReArchiveIntervalPolicy(self.settings)

        self.rules = ProcessingRules(self.settings)
        self.selector = ArchiveSelector(self.archives, self.rules)
        self.probe = ActivityProbe(
            self.activity,
            self.caches,
            self.overrides,
            min_visit_time_ttl=self.settings.min_visit_time_ttl,
        )
        self.invalidator = InvalidationCoordinator(self.ledger, self.archives, self.site_cache)
        self.status = ArchivingStatus(self.locks, self.rules, ttl_seconds=self.settings.lock_ttl)

    @classmethod
    def from_settings(
        cls,
        settings: ArchivingSettings | None = None,
        *,
        archives: ArchiveMetadataStore,
        activity: ActivityStore,
        ledger: InvalidationLedger,
        locks: LockBackend,
        engine_factory: AggregationEngineFactory,
        **kwargs: Any,
    ) -> ArchivingContext:
        """Build the context for a worker process.

        Loads settings from the environment when none are given, configures
        structlog at ``settings.log_level`` and chooses the cache tiers from
        ``settings.redis_url``. Remaining keyword arguments are passed to the
        constructor (``overrides``, ``site_cache``, ``clock``...).

        Raises:
            InvalidConfigError: If the environment holds an invalid setting.
        """
        if settings is None:
            settings = ArchivingSettings.load()
        configure_logging(level=settings.log_level)

        if settings.redis_url:
            caches = CacheTiers.with_redis(settings.redis_url)
        else:
            caches = CacheTiers()
        logger.info(
            "archiving_context_configured",
            log_level=settings.log_level,
            lazy_cache="redis" if settings.redis_url else "memory",
        )
        return cls(
            archives=archives,
            activity=activity,
            ledger=ledger,
            locks=locks,
            engine_factory=engine_factory,
            settings=settings,
            caches=caches,
            **kwargs,
        )


__all__ = ["ArchivingContext"]
