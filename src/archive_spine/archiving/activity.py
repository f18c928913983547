"""
Visit-activity probe: did anything happen on this site in this window?

Asking the raw activity store is the expensive part of the skip
optimization, so the probe first consults the earliest activity ever
recorded for the site, cached in the lazy tier. If the window closed
before that instant, the answer is "no" without a query.

Architecture:
    ::

        has_activity_in_range(site, start, end)
            │
            ├── min_ts = lazy cache "Archiving.minVisitTime.<site>"  (TTL)
            │       miss → ActivityStore.min_activity_timestamp(site)
            │
            ├── min_ts is None                     → False
            ├── start_of_day(end + 1 day) < min_ts → False
            └── ActivityStore.has_activity_between(site, start, end + 1 day)

        is_using_tracker(site)
            transient cache "Archiving.isWebsiteUsingTheTracker" (no TTL)
              miss → ArchivingOverrides.sites_without_tracker

Guardrails:
    ❌ DON'T: Serve the cached minimum after its TTL
    ✅ DO: Recompute it from the activity store (the cache enforces this)

    ❌ DON'T: Skip-optimize a site that imports data instead of tracking
    ✅ DO: Register it through ``register_sites_without_tracker``

Tags:
    activity, skip-optimization, ttl-cache, tracker
"""

from __future__ import annotations

from datetime import datetime, timedelta

from archive_spine.archiving.extensions import ArchivingOverrides
from archive_spine.archiving.stores import ActivityStore
from archive_spine.core.cache import CacheTiers
from archive_spine.core.logging import get_logger
from archive_spine.core.timestamps import as_utc, from_iso8601, start_of_day, to_iso8601

logger = get_logger(__name__)

MIN_VISIT_TIME_TTL = 3600
SITES_NOT_USING_TRACKER_KEY = "Archiving.isWebsiteUsingTheTracker"


def min_visit_time_key(site_id: int) -> str:
    return f"Archiving.minVisitTime.{site_id}"


class ActivityProbe:
    """Decides whether a site may have activity inside a time window."""

    def __init__(
        self,
        activity: ActivityStore,
        caches: CacheTiers,
        overrides: ArchivingOverrides,
        *,
        min_visit_time_ttl: int = MIN_VISIT_TIME_TTL,
    ):
        self._activity = activity
        self._caches = caches
        self._overrides = overrides
        self._ttl = min_visit_time_ttl

    # -- tracker allow-list --------------------------------------------------

    def sites_not_using_tracker(self) -> list[int]:
        """Sites that import data instead of using the tracker.

        Collected from the registration hooks on first use and kept in
        the transient tier until explicitly deleted.
        """
        cached = self._caches.transient.get(SITES_NOT_USING_TRACKER_KEY)
        if cached is None:
            cached = sorted(self._overrides.sites_without_tracker)
            self._caches.transient.set(SITES_NOT_USING_TRACKER_KEY, cached)
        return cached

    def is_using_tracker(self, site_id: int) -> bool:
        return site_id not in self.sites_not_using_tracker()

    # -- minimum activity time -----------------------------------------------

    def min_activity_time(self, site_id: int) -> datetime | None:
        """Earliest tracked activity for the site, ``None`` if there is none."""
        key = min_visit_time_key(site_id)
        cached = self._caches.lazy.get(key)
        if cached is None:
            value = self._activity.min_activity_timestamp(site_id)
            cached = {"min_ts": to_iso8601(as_utc(value)) if value else None}
            self._caches.lazy.set(key, cached, ttl_seconds=self._ttl)
        return from_iso8601(cached["min_ts"])

    def invalidate_min_activity_cache(self, site_id: int) -> None:
        """Forget the cached minimum, e.g. after a site's first tracked visit."""
        self._caches.lazy.delete(min_visit_time_key(site_id))

    # -- probe ---------------------------------------------------------------

    def has_activity_in_range(self, site_id: int, start: datetime, end: datetime) -> bool:
        min_ts = self.min_activity_time(site_id)
        if min_ts is None:
            logger.debug("no_activity_ever", site_id=site_id)
            return False

        window_end = start_of_day(as_utc(end) + timedelta(days=1))
        if window_end < min_ts:
            logger.debug(
                "activity_starts_after_window",
                site_id=site_id,
                window_end=window_end.isoformat(),
                min_activity=min_ts.isoformat(),
            )
            return False

        return self._activity.has_activity_between(site_id, as_utc(start), window_end)


__all__ = [
    "ActivityProbe",
    "MIN_VISIT_TIME_TTL",
    "SITES_NOT_USING_TRACKER_KEY",
    "min_visit_time_key",
]
