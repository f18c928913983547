"""
Archive Spine - decides whether pre-aggregated report archives must be computed.

- archive_spine.core: errors, logging, settings, caches, timestamps
- archive_spine.archiving: the archive-availability orchestrator
"""

__version__ = "0.1.0"

from archive_spine.archiving import ArchiveLoader, ArchivingContext, Parameters, Period  # noqa: E402

__all__ = ["ArchiveLoader", "ArchivingContext", "Parameters", "Period", "__version__"]
