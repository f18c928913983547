"""
Invalidation coordinator.

Upstream producers (late tracked activity, manual re-processing) remember
"re-archive day D for sites S" in the invalidation ledger. Before
recomputing an archive, the coordinator applies the entries that concern
the current request and leaves everything else for later consumers.

Architecture:
    ::

        ledger.pending_invalidations()   {2024-01-05: {7, 9}, 2024-02-01: {7}}
              │
              ▼  reports_to_invalidate(site=7, period=2024-01)
        {2024-01-05: {7, 9}}
              │
              ▼  for each day
        store.invalidate([7], [day], cascade=False, segment)
        ledger.forget(day, [7])
              │
              ▼  once, after all days (or before re-raising a failure)
        site_cache.clear()

Guardrails:
    ❌ DON'T: Act on a day outside ``[period.start, period.end]``
    ✅ DO: Leave it pending; it belongs to a different request

    ❌ DON'T: Let a failed invalidation leave stale site metadata behind
    ✅ DO: Clear the site cache before the error propagates
"""

from __future__ import annotations

from datetime import date

from archive_spine.archiving.params import Parameters
from archive_spine.archiving.stores import ArchiveMetadataStore, InvalidationLedger
from archive_spine.core.cache import CacheBackend
from archive_spine.core.logging import get_logger

logger = get_logger(__name__)


class InvalidationCoordinator:
    """Applies pending invalidations relevant to one request."""

    def __init__(
        self,
        ledger: InvalidationLedger,
        store: ArchiveMetadataStore,
        site_cache: CacheBackend,
    ):
        self._ledger = ledger
        self._store = store
        self._site_cache = site_cache

    def reports_to_invalidate(self, params: Parameters) -> dict[date, set[int]]:
        """Pending entries naming this site and falling inside the period."""
        pending = self._ledger.pending_invalidations()
        return {
            day: site_ids
            for day, site_ids in pending.items()
            if site_ids and params.site_id in site_ids and params.period.contains(day)
        }

    def apply_pending_invalidations(self, params: Parameters) -> list[date]:
        """Invalidate archives for every matching day.

        Returns:
            The days that were invalidated, in ascending order.

        Raises:
            StoreError: If the store fails; the site cache is cleared first.
        """
        days = sorted(self.reports_to_invalidate(params))
        if not days:
            return []

        for day in days:
            try:
                self._store.invalidate([params.site_id], [day], False, params.segment)
                self._ledger.forget(day, [params.site_id])
            except Exception:
                logger.warning(
                    "invalidation_failed",
                    site_id=params.site_id,
                    day=day.isoformat(),
                )
                self._site_cache.clear()
                raise

        self._site_cache.clear()
        logger.info(
            "invalidations_applied",
            site_id=params.site_id,
            days=[d.isoformat() for d in days],
        )
        return days


__all__ = ["InvalidationCoordinator"]
