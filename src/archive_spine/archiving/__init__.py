"""Archive-availability orchestration.

Architecture::

    params.py          Parameters, Period, PeriodLabel (request identity)
    freshness.py       Forced-archiving overrides, minimum archived-at rules
    extensions.py      Registration hooks → frozen ArchivingOverrides
    stores.py          Collaborator protocols + in-memory backends
    sql.py             DB-API backed stores and lock table
    lookup.py          ArchiveSelector (existence lookup)
    activity.py        ActivityProbe (min-activity TTL cache, tracker allow-list)
    invalidation.py    InvalidationCoordinator
    status.py          ArchivingStatus lock contract, RedisLockBackend
    context.py         ArchivingContext (worker-scoped wiring)
    loader.py          ArchiveLoader.prepare_archive
"""

from archive_spine.archiving.activity import ActivityProbe
from archive_spine.archiving.context import ArchivingContext
from archive_spine.archiving.extensions import ArchivingExtensions, ArchivingOverrides
from archive_spine.archiving.freshness import (
    ProcessingRules,
    ReArchiveIntervalPolicy,
    is_archiving_forced,
    min_acceptable_timestamp,
)
from archive_spine.archiving.invalidation import InvalidationCoordinator
from archive_spine.archiving.loader import ArchiveLoader
from archive_spine.archiving.lookup import ArchiveLookup, ArchiveSelector
from archive_spine.archiving.params import Parameters, Period, PeriodLabel
from archive_spine.archiving.status import ArchivingStatus
from archive_spine.archiving.stores import (
    ArchiveRecord,
    ArchiveStatus,
    CoreMetrics,
    InMemoryActivityStore,
    InMemoryArchiveStore,
    InMemoryInvalidationLedger,
    InMemoryLockBackend,
)

__all__ = [
    "ActivityProbe",
    "ArchiveLoader",
    "ArchiveLookup",
    "ArchiveRecord",
    "ArchiveSelector",
    "ArchiveStatus",
    "ArchivingContext",
    "ArchivingExtensions",
    "ArchivingOverrides",
    "ArchivingStatus",
    "CoreMetrics",
    "InMemoryActivityStore",
    "InMemoryArchiveStore",
    "InMemoryInvalidationLedger",
    "InMemoryLockBackend",
    "InvalidationCoordinator",
    "Parameters",
    "Period",
    "PeriodLabel",
    "ProcessingRules",
    "ReArchiveIntervalPolicy",
    "is_archiving_forced",
    "min_acceptable_timestamp",
]
