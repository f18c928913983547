"""Registration hooks for sites and plugins that need special archiving.

Plugins that import data from another source instead of the tracker, or
that produce reports even for sites without visits, register here once
at startup. ``snapshot()`` freezes everything into an
:class:`ArchivingOverrides` that is passed into the archiving components.

Example::

    extensions = ArchivingExtensions()
    extensions.register_sites_without_tracker([3, 4])
    extensions.register_sites_to_archive_without_visits(lambda: load_import_sites())
    extensions.register_plugins_archiving_without_visits(["Goals"])
    overrides = extensions.snapshot()
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from archive_spine.core.errors import InvalidConfigError
from archive_spine.core.logging import get_logger

logger = get_logger(__name__)

SiteSource = Iterable[int] | Callable[[], Iterable[int]]


@dataclass(frozen=True)
class ArchivingOverrides:
    """Immutable view of everything registered through the hooks."""

    sites_without_tracker: frozenset[int] = frozenset()
    sites_to_archive_without_visits: frozenset[int] = frozenset()
    plugins_archiving_without_visits: frozenset[str] = frozenset()

    def is_using_tracker(self, site_id: int) -> bool:
        return site_id not in self.sites_without_tracker

    def archives_without_visits(self, site_id: int) -> bool:
        return site_id in self.sites_to_archive_without_visits

    @property
    def any_plugin_archives_without_visits(self) -> bool:
        return bool(self.plugins_archiving_without_visits)


@dataclass
class ArchivingExtensions:
    """Collects registrations until :meth:`snapshot` is called.

    Site sources may be plain iterables or zero-argument callables. Each
    callable is invoked exactly once, the first time a snapshot is taken.
    """

    _without_tracker: list[SiteSource] = field(default_factory=list)
    _without_visits: list[SiteSource] = field(default_factory=list)
    _plugins: set[str] = field(default_factory=set)
    _snapshot: ArchivingOverrides | None = field(default=None, init=False)

    def register_sites_without_tracker(self, sites: SiteSource) -> None:
        self._without_tracker.append(sites)
        self._snapshot = None

    def register_sites_to_archive_without_visits(self, sites: SiteSource) -> None:
        self._without_visits.append(sites)
        self._snapshot = None

    def register_plugins_archiving_without_visits(self, plugins: Iterable[str]) -> None:
        for plugin in plugins:
            if not isinstance(plugin, str) or not plugin:
                raise InvalidConfigError("plugins_archiving_without_visits", plugin)
            self._plugins.add(plugin)
        self._snapshot = None

    def snapshot(self) -> ArchivingOverrides:
        if self._snapshot is None:
            self._without_tracker = [_resolve(s, "sites_without_tracker") for s in self._without_tracker]
            self._without_visits = [
                _resolve(s, "sites_to_archive_without_visits") for s in self._without_visits
            ]
            self._snapshot = ArchivingOverrides(
                sites_without_tracker=frozenset().union(*self._without_tracker),
                sites_to_archive_without_visits=frozenset().union(*self._without_visits),
                plugins_archiving_without_visits=frozenset(self._plugins),
            )
            logger.debug(
                "archiving_overrides_collected",
                sites_without_tracker=sorted(self._snapshot.sites_without_tracker),
                sites_to_archive_without_visits=sorted(
                    self._snapshot.sites_to_archive_without_visits
                ),
                plugins=sorted(self._snapshot.plugins_archiving_without_visits),
            )
        return self._snapshot


def _resolve(source: SiteSource, key: str) -> frozenset[int]:
    sites = source() if callable(source) else source
    resolved = []
    for site_id in sites:
        # bool is an int subclass; True is never a valid site id
        if isinstance(site_id, bool) or not isinstance(site_id, int):
            raise InvalidConfigError(key, site_id, f"{key} must contain integer site ids, got {site_id!r}")
        resolved.append(site_id)
    return frozenset(resolved)


__all__ = ["ArchivingExtensions", "ArchivingOverrides"]
