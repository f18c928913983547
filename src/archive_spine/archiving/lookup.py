"""Archive existence lookup.

Answers "is there already a usable archive for this request?" and, as a
by-product, "is there any archive at all?" (used to decide whether
invalidation bookkeeping is worth doing).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from archive_spine.archiving.freshness import ProcessingRules
from archive_spine.archiving.params import Parameters
from archive_spine.archiving.stores import ArchiveMetadataStore


@dataclass(frozen=True, slots=True)
class ArchiveLookup:
    """Outcome of an existence lookup.

    ``archive_id`` is set only for a usable archive. ``visits`` and
    ``visits_converted`` are ``None`` when unknown, meaning the core
    metrics still have to be computed.
    """

    archive_id: int | None = None
    visits: int | None = None
    visits_converted: int | None = None
    any_archive_exists: bool = False

    @property
    def is_usable(self) -> bool:
        return self.archive_id is not None


NOT_FOUND = ArchiveLookup()


class ArchiveSelector:
    """Finds a usable archive for (site, period, segment, plugin group)."""

    def __init__(self, store: ArchiveMetadataStore, rules: ProcessingRules):
        self._store = store
        self._rules = rules

    def find_usable_archive(self, params: Parameters, min_timestamp: datetime) -> ArchiveLookup:
        group = self._rules.plugin_group(params)
        record = self._store.find_archive(
            params.site_id,
            params.period,
            params.segment,
            group,
            min_archived_at=min_timestamp,
        )
        if record is not None:
            return ArchiveLookup(
                archive_id=record.archive_id,
                visits=record.visits,
                visits_converted=record.visits_converted,
                any_archive_exists=True,
            )

        any_exists = self._store.has_any_archive(
            params.site_id, params.period, params.segment, group
        )
        return ArchiveLookup(any_archive_exists=any_exists)


__all__ = ["ArchiveLookup", "ArchiveSelector", "NOT_FOUND"]
