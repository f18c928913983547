"""
Archive loader: decide whether a report archive must be computed.

Given a request for (site, period, segment, plugin), the loader returns
the id of a usable archive, computing one only when nothing usable
exists, the request cannot be proven empty, and no other worker is
already computing it.

Manifesto:
    Aggregation is the expensive part of the system. Every step before it
    exists to avoid running it: reuse a fresh archive, prove the request
    empty, or let the worker that already holds the lock do the work.
    When aggregation does run, its lock is released on every exit path.

Architecture:
    ::

        prepare_archive(plugin)
          │  LogContext(site_id, period, segment, plugin)
          ▼
        load_existing_archive ──usable──────────────────────▶ archive_id
          │  (forced → NOT_FOUND, skips lookup)
          ▼
        can_skip ──────────────yes──────────────────────────▶ None
          │  tracker used? activity in period? finer archives?
          ▼
        invalidate_before_archiving and any archive exists
          │  → InvalidationCoordinator.apply_pending_invalidations
          ▼
        ArchivingStatus.guard ──not held────────────────────▶ None
          │  core metrics archive (if visits unknown)
          │  all plugins archive → finalize → archive_id
          ▼  (lock released here, even on error)
        visits > 0 or a plugin archives without visits ─────▶ archive_id
        otherwise ──────────────────────────────────────────▶ None

Examples:
    >>> loader = ArchiveLoader(Parameters(site_id=1, period=Period.day(d)), ctx)
    >>> loader.prepare_archive("VisitsSummary")
    42

Guardrails:
    ❌ DON'T: Create a zero-visit archive when the request is provably empty
    ✅ DO: Return None; the period may still receive data later

    ❌ DON'T: Run aggregation after failing to take the lock
    ✅ DO: Return None; the lock holder is producing the archive

    ❌ DON'T: Retry a failed aggregation here
    ✅ DO: Propagate the error; the scheduler owns retry policy

Tags:
    archiving, orchestration, freshness, locking, invalidation, skip
"""

from __future__ import annotations

from datetime import datetime

from archive_spine.archiving.context import ArchivingContext
from archive_spine.archiving.freshness import (
    CORE_METRICS_PLUGIN,
    is_archiving_forced,
    min_acceptable_timestamp,
)
from archive_spine.archiving.lookup import NOT_FOUND, ArchiveLookup
from archive_spine.archiving.params import Parameters
from archive_spine.core.logging import LogContext, get_logger

logger = get_logger(__name__)

SITES_TO_ARCHIVE_WITHOUT_VISITS_KEY = "Archiving.getIdSitesToArchiveWhenNoVisits"


class ArchiveLoader:
    """Runs the archiving decision for one set of request parameters.

    Args:
        params: The request (plugin is set per ``prepare_archive`` call).
        ctx: Worker-scoped collaborators and configuration.
        invalidate_before_archiving: Apply pending invalidations before
            recomputing. Defaults to the setting of the same name.
    """

    def __init__(
        self,
        params: Parameters,
        ctx: ArchivingContext,
        *,
        invalidate_before_archiving: bool | None = None,
    ):
        self.params = params
        self.ctx = ctx
        if invalidate_before_archiving is None:
            invalidate_before_archiving = ctx.settings.invalidate_before_archiving
        self.invalidate_before_archiving = invalidate_before_archiving

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    def prepare_archive(self, plugin_name: str | None) -> int | None:
        """Return a usable archive id for ``plugin_name``, or ``None``."""
        params = self.params.with_plugin(plugin_name)
        with LogContext(
            site_id=params.site_id,
            period=str(params.period),
            segment=params.segment,
            plugin=plugin_name,
        ):
            return self._prepare_archive(params)

    def _prepare_archive(self, params: Parameters) -> int | None:
        lookup = self.load_existing_archive(params)
        if lookup.is_usable:
            logger.debug("archive_found", archive_id=lookup.archive_id)
            return lookup.archive_id

        # Creating a zero-visit archive here would be wrong once the period
        # receives data, so nothing is written.
        if self.can_skip(params):
            logger.info("archive_skipped_no_activity")
            return None

        if self.invalidate_before_archiving and lookup.any_archive_exists:
            self.ctx.invalidator.apply_pending_invalidations(params)

        with self.ctx.status.guard(params) as owner:
            if owner is None:
                logger.info("archive_in_progress")
                return None

            visits, visits_converted = self._prepare_core_metrics_archive(
                params, lookup.visits, lookup.visits_converted
            )
            archive_id, visits = self._prepare_all_plugins_archive(
                params, visits, visits_converted
            )

        logger.info("archive_finalized", archive_id=archive_id, visits=visits)
        if visits > 0 or self.ctx.overrides.any_plugin_archives_without_visits:
            return archive_id
        return None

    # ------------------------------------------------------------------ #
    # Existence lookup
    # ------------------------------------------------------------------ #

    def min_archived_at(self, params: Parameters | None = None) -> datetime:
        """Oldest archived-at instant accepted for the request."""
        params = params or self.params
        return min_acceptable_timestamp(
            params, now=self.ctx.clock(), policy=self.ctx.in_progress_policy
        )

    def load_existing_archive(self, params: Parameters | None = None) -> ArchiveLookup:
        """Look up a usable archive, unless archiving is forced."""
        params = params or self.params
        if is_archiving_forced(params.period, self.ctx.settings):
            # No usable archive and no existing one: invalidation is skipped too
            logger.debug("archiving_forced", period=params.period.label.value)
            return NOT_FOUND

        return self.ctx.selector.find_usable_archive(params, self.min_archived_at(params))

    # ------------------------------------------------------------------ #
    # Skip decision
    # ------------------------------------------------------------------ #

    def can_skip(self, params: Parameters | None = None) -> bool:
        """True only if the request is provably empty.

        Requires a site that uses the tracker, no activity anywhere in the
        period, and no finer-granularity archive inside it. Any doubt
        means "do not skip".
        """
        params = params or self.params
        site_id = params.site_id
        period = params.period

        if not self.ctx.probe.is_using_tracker(site_id):
            return False
        if self.ctx.probe.has_activity_in_range(site_id, period.start_utc, period.end_utc):
            return False
        return not self.ctx.archives.has_finer_granularity_archives(site_id, period)

    # ------------------------------------------------------------------ #
    # Computation (runs under the archiving lock)
    # ------------------------------------------------------------------ #

    def _prepare_core_metrics_archive(
        self, params: Parameters, visits: int | None, visits_converted: int | None
    ) -> tuple[int | None, int | None]:
        if visits is not None or self.ctx.rules.includes_core_metrics(params):
            return visits, visits_converted

        engine = self.ctx.engine_factory(params.with_plugin(CORE_METRICS_PLUGIN))
        metrics = engine.aggregate_core_metrics()
        core_archive_id = engine.finalize()
        logger.debug(
            "core_metrics_archived",
            archive_id=core_archive_id,
            visits=metrics.visits,
        )
        return metrics.visits, metrics.visits_converted

    def _prepare_all_plugins_archive(
        self, params: Parameters, visits: int | None, visits_converted: int | None
    ) -> tuple[int, int]:
        engine = self.ctx.engine_factory(params)

        if visits is None or self.ctx.rules.includes_core_metrics(params):
            metrics = engine.aggregate_core_metrics()
            visits, visits_converted = metrics.visits, metrics.visits_converted

        force_without_visits = visits <= 0 and self._archives_without_visits(params.site_id)
        engine.aggregate_all_plugins(visits, visits_converted or 0, force_without_visits)

        return engine.finalize(), visits

    def _archives_without_visits(self, site_id: int) -> bool:
        transient = self.ctx.caches.transient
        site_ids = transient.get(SITES_TO_ARCHIVE_WITHOUT_VISITS_KEY)
        if site_ids is None:
            site_ids = sorted(self.ctx.overrides.sites_to_archive_without_visits)
            transient.set(SITES_TO_ARCHIVE_WITHOUT_VISITS_KEY, site_ids)
        return site_id in site_ids


__all__ = ["ArchiveLoader", "SITES_TO_ARCHIVE_WITHOUT_VISITS_KEY"]
