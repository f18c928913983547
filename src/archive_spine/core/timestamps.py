"""
UTC timestamp helpers (stdlib-only).

Archive freshness is decided by comparing UTC instants, so every
component converts dates and datetimes through these helpers instead of
calling ``datetime.now()`` or mixing naive and aware values.

Features:
    - **utc_now():** Timezone-aware UTC datetime
    - **start_of_day() / end_of_day():** Day boundaries as UTC instants
    - **to_iso8601() / from_iso8601():** Safe serialization round-trip

STDLIB ONLY - NO PYDANTIC.
"""

from datetime import UTC, date, datetime, time, timedelta


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to a naive datetime, convert an aware one."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def start_of_day(d: date | datetime) -> datetime:
    """Midnight UTC of the given day."""
    if isinstance(d, datetime):
        d = as_utc(d).date()
    return datetime.combine(d, time.min, tzinfo=UTC)


def end_of_day(d: date | datetime) -> datetime:
    """Last second of the given day (23:59:59 UTC)."""
    return start_of_day(d) + timedelta(days=1) - timedelta(seconds=1)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return dt.isoformat()


def from_iso8601(s: str | None) -> datetime | None:
    """Parse ISO 8601 string to an aware UTC datetime."""
    if s is None:
        return None
    return as_utc(datetime.fromisoformat(s))
