"""
Canonical protocol definitions for archive-spine.

SQL-backed collaborators (archive metadata, invalidation ledger, lock
table) accept any object matching :class:`Connection`, so the same code
runs against ``sqlite3`` in tests and a pooled driver in production.

Guardrails:
    ❌ DON'T: Redefine a Connection protocol inside a store module
    ✅ DO: Import from archive_spine.core.protocols
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Cursor(Protocol):
    """Cursor returned by :meth:`Connection.execute`."""

    rowcount: int

    def fetchone(self) -> Any:
        ...

    def fetchall(self) -> list:
        ...


@runtime_checkable
class Connection(Protocol):
    """
    Minimal SYNCHRONOUS DB-API connection.

    ``sqlite3.Connection`` satisfies it natively; ``execute`` returns a
    cursor exposing ``fetchone``/``fetchall``/``rowcount``.
    """

    def execute(self, sql: str, params: tuple = ()) -> Cursor:
        """Execute SQL statement with optional parameters. SYNC."""
        ...

    def commit(self) -> None:
        """Commit current transaction. SYNC."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction. SYNC."""
        ...


__all__ = ["Connection", "Cursor"]
