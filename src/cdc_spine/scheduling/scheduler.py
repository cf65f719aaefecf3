"""Due-set computation over a registry snapshot.

Pure functions: nothing here mutates the registry or keeps state between
calls. The schedule is rebuilt from the registry every cycle, so an
operator edit (interval, enable/disable) takes effect as soon as the
engine's working copy is reloaded.

A target is due iff it is enabled and ``now >= last_checked + interval``,
where ``interval`` is the target's override or its database's default.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from cdc_spine.core.models import Registry, TargetEntry
from cdc_spine.core.timestamps import ensure_utc


@dataclass(frozen=True)
class ScheduleEntry:
    """Derived scheduling view of one enabled target (never persisted)."""

    database: str
    target: str
    entry: TargetEntry
    interval: timedelta
    next_due: datetime

    @property
    def key(self) -> tuple[str, str]:
        return (self.database, self.target)

    def is_due(self, now: datetime) -> bool:
        return ensure_utc(now) >= self.next_due


def build_schedule(registry: Registry) -> list[ScheduleEntry]:
    """Schedule entries for every enabled target, in registry order."""
    schedule = []
    for database, target in registry.iter_targets():
        if not target.enabled:
            continue
        interval = target.effective_interval(database)
        schedule.append(
            ScheduleEntry(
                database=database.name,
                target=target.name,
                entry=target,
                interval=interval,
                next_due=target.last_checked + interval,
            )
        )
    return schedule


def due_targets(registry: Registry, now: datetime) -> list[ScheduleEntry]:
    """Enabled targets whose interval has elapsed, ordered by (database, target)."""
    now = ensure_utc(now)
    due = [entry for entry in build_schedule(registry) if entry.is_due(now)]
    due.sort(key=lambda entry: entry.key)
    return due


def next_wakeup(registry: Registry, now: datetime | None = None) -> datetime | None:
    """Earliest ``next_due`` among enabled targets (``None`` if there are none).

    When ``now`` is given, the result is never earlier than ``now``.
    """
    schedule = build_schedule(registry)
    if not schedule:
        return None
    earliest = min(entry.next_due for entry in schedule)
    if now is not None:
        earliest = max(earliest, ensure_utc(now))
    return earliest


def smallest_interval(registry: Registry) -> timedelta | None:
    """Shortest effective interval among enabled targets."""
    schedule = build_schedule(registry)
    if not schedule:
        return None
    return min(entry.interval for entry in schedule)


__all__ = [
    "ScheduleEntry",
    "build_schedule",
    "due_targets",
    "next_wakeup",
    "smallest_interval",
]
