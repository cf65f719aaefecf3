"""
UTC timestamp utilities (stdlib-only).

Every timestamp cdc-spine persists or compares is timezone-aware UTC.
Naive values coming from hand-edited registry files or drivers are taken
as UTC instead of local time.
"""

from datetime import UTC, datetime, timedelta

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime (naive values are assumed UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def from_iso8601(s: str | None) -> datetime | None:
    """Parse ISO 8601 string to an aware UTC datetime."""
    if s is None:
        return None
    return ensure_utc(datetime.fromisoformat(s))


def seconds_until(target: datetime, now: datetime) -> float:
    """Seconds from ``now`` until ``target`` (negative when already past)."""
    return (ensure_utc(target) - ensure_utc(now)).total_seconds()


def from_epoch_seconds(seconds: float) -> datetime:
    """Convert Unix epoch seconds to an aware UTC datetime."""
    return EPOCH + timedelta(seconds=seconds)


__all__ = [
    "EPOCH",
    "utc_now",
    "ensure_utc",
    "to_iso8601",
    "from_iso8601",
    "seconds_until",
    "from_epoch_seconds",
]
