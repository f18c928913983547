"""Archiving status: one computation per (site, period, segment, plugin group).

WHY
───
Several worker processes may be asked for the same report at the same
time. Only one of them may run the aggregation; the others see the lock
held and return without a result. Locks expire after ``lock_ttl`` so a
crashed worker cannot block a report forever; that expiry is a property
of the lock backend, not of this module.

ARCHITECTURE
────────────
::

    ArchivingStatus(backend, rules, ttl_seconds)
      ├── .acquire(params)         → owner | None   UNLOCKED → LOCKED
      ├── .extend(params, owner)   → bool           LOCKED, expiry pushed back
      ├── .release(params, owner)  → bool           LOCKED → UNLOCKED (owner only)
      ├── .guard(params)           → ctx mgr        yields owner | None, releases on exit
      └── .lock_key(params) → "archiving:<site>:<label>:<start>:<end>:<seg>:<group>"

    Backends: InMemoryLockBackend, SqlLockBackend, RedisLockBackend

Example::

    status = ArchivingStatus(SqlLockBackend(conn), rules)
    with status.guard(params) as owner:
        if owner:
            run_aggregation()
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from archive_spine.archiving.freshness import ProcessingRules
from archive_spine.archiving.params import Parameters
from archive_spine.archiving.stores import LockBackend
from archive_spine.core.logging import get_logger

logger = get_logger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class ArchivingStatus:
    """Acquire/release contract around the archiving computation."""

    def __init__(self, backend: LockBackend, rules: ProcessingRules, *, ttl_seconds: int = 3600):
        self._backend = backend
        self._rules = rules
        self._ttl = ttl_seconds

    def lock_key(self, params: Parameters) -> str:
        group = self._rules.plugin_group(params)
        return f"archiving:{params.with_plugin(group).archive_key()}"

    def acquire(self, params: Parameters) -> str | None:
        """Try to take the lock.

        Returns:
            The owner token of this acquisition, or ``None`` if another
            caller holds the lock. The token is needed to extend or
            release the lock.
        """
        key = self.lock_key(params)
        owner = uuid.uuid4().hex
        if not self._backend.try_acquire(key, owner=owner, ttl_seconds=self._ttl):
            logger.info("archive_lock_busy", lock_key=key)
            return None
        logger.debug("archive_lock_acquired", lock_key=key)
        return owner

    def extend(self, params: Parameters, owner: str) -> bool:
        """Push back the expiry of a lock still held by ``owner``.

        Returns False if the lock expired and was taken by another caller.
        """
        key = self.lock_key(params)
        extended = self._backend.try_acquire(key, owner=owner, ttl_seconds=self._ttl)
        logger.debug("archive_lock_extended", lock_key=key, extended=extended)
        return extended

    def release(self, params: Parameters, owner: str) -> bool:
        """Release the lock if ``owner`` still holds it."""
        key = self.lock_key(params)
        released = self._backend.release(key, owner=owner)
        if not released:
            logger.warning("archive_lock_lost", lock_key=key)
        else:
            logger.debug("archive_lock_released", lock_key=key)
        return released

    def is_locked(self, params: Parameters) -> bool:
        return self._backend.is_locked(self.lock_key(params))

    @contextmanager
    def guard(self, params: Parameters) -> Iterator[str | None]:
        """Hold the lock for the duration of the block, if it can be taken.

        Yields the owner token, or ``None`` when the lock is held
        elsewhere. A held lock is released exactly once on every exit
        path, including exceptions raised in the block, and only by the
        acquisition that took it.
        """
        owner = self.acquire(params)
        try:
            yield owner
        finally:
            if owner is not None:
                self.release(params, owner)


class RedisLockBackend:
    """Locks as Redis keys: ``SET key owner NX EX ttl``.

    Release compares the owner before deleting, in a single Lua script, so
    a worker never drops a lock that expired and was re-taken by another.
    """

    def __init__(self, url: str = "redis://localhost:6379/0", *, key_prefix: str = "archive_spine:"):
        import redis

        self._client = redis.from_url(url, decode_responses=True)
        self._prefix = key_prefix
        self._release = self._client.register_script(_RELEASE_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def try_acquire(self, key: str, *, owner: str, ttl_seconds: int) -> bool:
        if self._client.set(self._key(key), owner, nx=True, ex=ttl_seconds):
            return True
        if self._client.get(self._key(key)) == owner:
            self._client.expire(self._key(key), ttl_seconds)
            return True
        return False

    def release(self, key: str, *, owner: str) -> bool:
        return bool(self._release(keys=[self._key(key)], args=[owner]))

    def is_locked(self, key: str) -> bool:
        return bool(self._client.exists(self._key(key)))


__all__ = ["ArchivingStatus", "RedisLockBackend"]
