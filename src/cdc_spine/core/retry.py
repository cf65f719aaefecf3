"""Reconnect backoff with exponential delay and jitter.

A database that refused a connection is not retried on every tick. Instead
its key is parked in a :class:`BackoffTracker` until a growing delay has
passed; its targets are skipped (not failed) in the meantime.

Example:
    >>> strategy = ExponentialBackoff(base_delay=1.0, max_delay=60.0, jitter=False)
    >>> [strategy.next_delay(n) for n in range(4)]
    [1.0, 2.0, 4.0, 8.0]
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from cdc_spine.core.timestamps import utc_now


@dataclass
class ExponentialBackoff:
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) +/- jitter

    Attributes:
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness so many databases don't reconnect in lockstep
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    base_delay: float = 1.0
    max_delay: float = 300.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25

    def next_delay(self, attempt: int) -> float:
        """Calculate the delay after ``attempt`` consecutive failures (0-based)."""
        delay = min(
            self.base_delay * (self.multiplier ** attempt),
            self.max_delay,
        )
        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0.0, delay)
        return delay


@dataclass
class BackoffState:
    """Failure bookkeeping for one key."""

    failures: int = 0
    retry_at: datetime | None = None
    last_error: str | None = None


@dataclass
class BackoffTracker:
    """Per-key backoff windows (a source database or a ``database.target``)."""

    strategy: ExponentialBackoff = field(default_factory=ExponentialBackoff)
    _states: dict[str, BackoffState] = field(default_factory=dict, init=False)

    def record_failure(
        self, key: str, error: Exception | None = None, now: datetime | None = None
    ) -> datetime:
        """Register a failure and return when the key may be retried."""
        now = now or utc_now()
        state = self._states.setdefault(key, BackoffState())
        delay = self.strategy.next_delay(state.failures)
        state.failures += 1
        state.retry_at = now + timedelta(seconds=delay)
        state.last_error = str(error) if error is not None else None
        return state.retry_at

    def record_success(self, key: str) -> None:
        """Clear the backoff for ``key``."""
        self._states.pop(key, None)

    def is_blocked(self, key: str, now: datetime | None = None) -> bool:
        """True while ``key`` is inside its backoff window."""
        state = self._states.get(key)
        if state is None or state.retry_at is None:
            return False
        return (now or utc_now()) < state.retry_at

    def state(self, key: str) -> BackoffState | None:
        return self._states.get(key)

    def forget(self, key: str) -> None:
        self._states.pop(key, None)

    def clear(self) -> None:
        self._states.clear()

    def blocked_keys(self, now: datetime | None = None) -> list[str]:
        now = now or utc_now()
        return sorted(k for k in self._states if self.is_blocked(k, now))


__all__ = ["ExponentialBackoff", "BackoffState", "BackoffTracker"]
