"""Poll engine - main orchestrator.

Manifesto:
    The PollEngine turns a registry into captured rows. Each cycle asks the
    scheduler which targets are due, fetches their deltas through the
    database's connector, hands non-empty batches to the sink, and only
    then advances the cursor through the store. A failing target never
    blocks its siblings; a failing database never blocks other databases.

    - **Cursor after delivery:** rows reach the sink before the cursor moves
    - **Forward-only:** the store rejects any cursor lower than the stored one
    - **Isolation:** per-target errors are contained and reported
    - **Reload by state change:** a pending reload swaps the working copy
      between cycles instead of restarting the process

Tags:
    poll-engine, cdc, orchestrator, asyncio, cursor, reload


┌──────────────────────────────────────────────────────────────────────────────┐
│  POLL ENGINE                                                                  │
│                                                                               │
│   run_cycle(now)                                                              │
│   ├── 1. store.consume_reload_flag()                                          │
│   │       └── set? ──► RELOAD_PENDING ──► store.load() ──► RUNNING (end)      │
│   ├── 2. due_targets(working_registry, now)                                   │
│   ├── 3. group by database ──► asyncio.gather (≤ max_concurrent_databases)    │
│   │       └── per database, serially per target:                              │
│   │             ├── database or target backoff? ──► SKIPPED                    │
│   │             ├── to_thread(fetch_rows_since) within fetch_timeout          │
│   │             │     └── timeout ──► connector.interrupt(), FAILED           │
│   │             ├── rows? ──► to_thread(sink.emit, RowBatch)                  │
│   │             └── store.advance_target(cursor, checked_at, updated_at)      │
│   └── 4. CycleReport                                                          │
│                                                                               │
│   run_forever():  run_cycle ─► sleep(until next due, clamped) ─► ...          │
│                   wake() cuts the sleep short; request_stop() ends the loop   │
│                                                                               │
│   States:  STOPPED ──start()──► RUNNING ◄──► RELOAD_PENDING                   │
│                                   └──request_stop()──► STOPPED                │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any

from cdc_spine.connectors.protocol import FetchResult, SourceConnector
from cdc_spine.connectors.registry import create_connector
from cdc_spine.core.errors import (
    CdcError,
    FetchTimeoutError,
    SinkError,
    SourceConnectionError,
    StaleCursorError,
    categorize_error,
    is_retryable,
)
from cdc_spine.core.logging import LogContext, get_logger
from cdc_spine.core.models import ConnectionCoordinates, Registry
from cdc_spine.core.retry import BackoffTracker, ExponentialBackoff
from cdc_spine.core.settings import CdcSettings, get_settings
from cdc_spine.core.store import ConfigStore
from cdc_spine.core.timestamps import ensure_utc, seconds_until, utc_now
from cdc_spine.sinks.protocol import RowBatch, Sink

from .scheduler import ScheduleEntry, due_targets, next_wakeup, smallest_interval

logger = get_logger(__name__)

ConnectorFactory = Callable[[ConnectionCoordinates], SourceConnector]


class EngineState(str, Enum):
    RUNNING = "running"
    RELOAD_PENDING = "reload_pending"
    STOPPED = "stopped"


class TargetOutcome(str, Enum):
    """What happened to one due target in one cycle."""

    POLLED = "polled"
    FAILED = "failed"
    SKIPPED = "skipped"
    PERSIST_FAILED = "persist_failed"
    STALE_CURSOR = "stale_cursor"


@dataclass
class TargetResult:
    database: str
    target: str
    outcome: TargetOutcome
    rows: int = 0
    cursor_from: int = 0
    cursor_to: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "database": self.database,
            "target": self.target,
            "outcome": self.outcome.value,
            "rows": self.rows,
            "cursor_from": self.cursor_from,
            "cursor_to": self.cursor_to,
            "error": self.error,
        }


@dataclass
class CycleReport:
    """Result of one :meth:`PollEngine.run_cycle`."""

    started_at: datetime
    reloaded: bool = False
    results: list[TargetResult] = field(default_factory=list)
    error: str | None = None

    @property
    def rows_emitted(self) -> int:
        return sum(r.rows for r in self.results if r.outcome == TargetOutcome.POLLED)

    def with_outcome(self, outcome: TargetOutcome) -> list[TargetResult]:
        return [r for r in self.results if r.outcome == outcome]

    def result_for(self, database: str, target: str) -> TargetResult | None:
        for result in self.results:
            if result.database == database and result.target == target:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "reloaded": self.reloaded,
            "rows_emitted": self.rows_emitted,
            "error": self.error,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class PollStats:
    """Counters across the engine's lifetime."""

    cycles: int = 0
    targets_polled: int = 0
    rows_emitted: int = 0
    fetch_failures: int = 0
    persist_failures: int = 0
    stale_cursor_rejections: int = 0
    skipped_backoff: int = 0
    reloads: int = 0
    last_cycle_at: datetime | None = None
    last_error: str | None = None


@dataclass
class EngineHealth:
    """Health status for the poll engine."""

    healthy: bool
    state: EngineState
    databases: int = 0
    targets_enabled: int = 0
    connectors_open: int = 0
    backoff: list[str] = field(default_factory=list)
    targets_backoff: list[str] = field(default_factory=list)
    last_cycle_at: datetime | None = None
    stats: PollStats = field(default_factory=PollStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "state": self.state.value,
            "databases": self.databases,
            "targets_enabled": self.targets_enabled,
            "connectors_open": self.connectors_open,
            "backoff": self.backoff,
            "targets_backoff": self.targets_backoff,
            "last_cycle_at": self.last_cycle_at.isoformat() if self.last_cycle_at else None,
            "stats": {
                "cycles": self.stats.cycles,
                "targets_polled": self.stats.targets_polled,
                "rows_emitted": self.stats.rows_emitted,
                "fetch_failures": self.stats.fetch_failures,
                "persist_failures": self.stats.persist_failures,
                "stale_cursor_rejections": self.stats.stale_cursor_rejections,
                "skipped_backoff": self.stats.skipped_backoff,
                "reloads": self.stats.reloads,
                "last_error": self.stats.last_error,
            },
        }


class PollEngine:
    """Scheduled CDC poller over a :class:`ConfigStore`.

    Example:
        >>> store = ConfigStore("/var/lib/cdc-spine")
        >>> engine = PollEngine(store, JsonLinesSink("/var/lib/cdc-spine/captures"))
        >>> engine.start()
        >>> asyncio.run(engine.run_forever())   # until request_stop()
    """

    def __init__(
        self,
        store: ConfigStore,
        sink: Sink,
        *,
        settings: CdcSettings | None = None,
        connector_factory: ConnectorFactory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Durable registry (source of truth for cursors)
            sink: Receives every non-empty batch before its cursor is persisted
            settings: Timeouts, tick bounds, concurrency, backoff
            connector_factory: Builds a connector from coordinates
                (default: :func:`create_connector`)
            clock: Source of "now" (default: :func:`utc_now`)
        """
        self.store = store
        self.sink = sink
        self.settings = settings or get_settings()
        self._connector_factory = connector_factory or partial(
            create_connector,
            batch_size=self.settings.fetch_batch_size,
            connect_timeout=self.settings.connect_timeout_seconds,
        )
        self._clock = clock or utc_now

        self._registry: Registry | None = None
        self._connectors: dict[str, SourceConnector] = {}
        self._coordinates: dict[str, ConnectionCoordinates] = {}
        strategy = ExponentialBackoff(
            base_delay=self.settings.backoff_base_seconds,
            max_delay=self.settings.backoff_max_seconds,
        )
        self._backoff = BackoffTracker(strategy)
        self._target_backoff = BackoffTracker(strategy)
        self._stats = PollStats()
        self._state = EngineState.STOPPED
        self._stop_requested = threading.Event()
        self._wake_event = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._looping = False

    # === Lifecycle ===

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def registry(self) -> Registry | None:
        """The in-memory working copy (``None`` before :meth:`start`)."""
        return self._registry

    @property
    def stats(self) -> PollStats:
        return self._stats

    def start(self) -> None:
        """Load the working registry.

        Raises:
            ConfigNotFoundError: No registry exists (run ``init`` first).
            ConfigCorruptError: The registry cannot be parsed.
        """
        self._registry = self.store.load()
        self._stop_requested.clear()
        self._state = EngineState.RUNNING
        logger.info(
            "engine_started",
            path=str(self.store.path),
            databases=len(self._registry.databases),
        )

    def request_stop(self) -> None:
        """Stop after in-flight fetches finish; no new targets are pulled.

        Inside :meth:`run_forever` the loop exits and closes connectors;
        otherwise connectors are closed immediately.
        """
        logger.info("engine_stop_requested")
        self._stop_requested.set()
        self.wake()
        if not self._looping:
            self._close_connectors()
            self._state = EngineState.STOPPED

    def wake(self) -> None:
        """Cut the current inter-cycle sleep short (thread-safe)."""
        loop = self._loop
        if loop is not None and loop.is_running():
            loop.call_soon_threadsafe(self._wake_event.set)
        else:
            self._wake_event.set()

    # === Cycle ===

    async def run_cycle(self, now: datetime | None = None) -> CycleReport:
        """Run one polling cycle (see module diagram)."""
        if self._registry is None:
            self.start()
        now = ensure_utc(now or self._clock())
        report = CycleReport(started_at=now)
        self._stats.cycles += 1
        self._stats.last_cycle_at = now

        try:
            reload_requested = await asyncio.to_thread(self.store.consume_reload_flag)
        except CdcError as e:
            report.error = str(e)
            self._stats.last_error = str(e)
            logger.error("registry_unreadable", error=str(e), error_type=type(e).__name__)
            return report

        if reload_requested:
            await self._reload()
            report.reloaded = True
            return report

        assert self._registry is not None
        due = due_targets(self._registry, now)
        if not due:
            logger.debug("no_targets_due")
            return report

        groups: dict[str, list[ScheduleEntry]] = {}
        for entry in due:
            groups.setdefault(entry.database, []).append(entry)

        logger.info("cycle_started", due=len(due), databases=len(groups))
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_databases)
        group_results = await asyncio.gather(
            *(self._poll_database(name, entries, now, semaphore) for name, entries in groups.items())
        )
        for results in group_results:
            report.results.extend(results)

        logger.info(
            "cycle_finished",
            polled=len(report.with_outcome(TargetOutcome.POLLED)),
            failed=len(report.with_outcome(TargetOutcome.FAILED)),
            skipped=len(report.with_outcome(TargetOutcome.SKIPPED)),
            rows=report.rows_emitted,
        )
        return report

    async def _reload(self) -> None:
        self._state = EngineState.RELOAD_PENDING
        logger.info("reload_started")
        try:
            fresh = await asyncio.to_thread(self.store.load)
        except CdcError as e:
            # Flag already consumed; keep polling on the old snapshot
            self._stats.last_error = str(e)
            logger.error("reload_failed", error=str(e))
        else:
            self._registry = fresh
            self._prune_connectors(fresh)
            self._target_backoff.clear()
            self._stats.reloads += 1
            logger.info("reload_finished", databases=len(fresh.databases))
        if not self._stop_requested.is_set():
            self._state = EngineState.RUNNING

    async def _poll_database(
        self,
        db_name: str,
        entries: list[ScheduleEntry],
        now: datetime,
        semaphore: asyncio.Semaphore,
    ) -> list[TargetResult]:
        results: list[TargetResult] = []
        async with semaphore:
            with LogContext(database=db_name):
                for entry in entries:
                    if self._stop_requested.is_set():
                        break
                    if self._backoff.is_blocked(db_name, now):
                        self._stats.skipped_backoff += 1
                        results.append(
                            TargetResult(
                                db_name,
                                entry.target,
                                TargetOutcome.SKIPPED,
                                cursor_from=entry.entry.cursor,
                                cursor_to=entry.entry.cursor,
                                error="database in backoff",
                            )
                        )
                        continue
                    if self._target_backoff.is_blocked(_target_key(entry), now):
                        self._stats.skipped_backoff += 1
                        results.append(
                            TargetResult(
                                db_name,
                                entry.target,
                                TargetOutcome.SKIPPED,
                                cursor_from=entry.entry.cursor,
                                cursor_to=entry.entry.cursor,
                                error="target in backoff",
                            )
                        )
                        continue
                    results.append(await self._poll_target(entry, now))
        return results

    async def _poll_target(self, entry: ScheduleEntry, now: datetime) -> TargetResult:
        db_name, name = entry.database, entry.target
        cursor = entry.entry.cursor

        try:
            connector = self._connector_for(db_name)
            fetched = await self._fetch(connector, db_name, name, cursor)
        except SourceConnectionError as e:
            retry_at = self._backoff.record_failure(db_name, e, now=now)
            logger.warning(
                "database_backoff",
                target=name,
                error=str(e),
                retry_at=retry_at.isoformat(),
            )
            return self._failed(entry, e)
        except Exception as e:  # noqa: BLE001 - contained to this target
            return self._failed(entry, e, now=now)

        self._backoff.record_success(db_name)

        if fetched.rows:
            batch = RowBatch(
                database=db_name,
                target=name,
                rows=fetched.rows,
                cursor_from=cursor,
                cursor_to=fetched.new_cursor,
                captured_at=now,
            )
            try:
                await asyncio.to_thread(self.sink.emit, batch)
            except Exception as e:  # noqa: BLE001 - contained to this target
                error = e if isinstance(e, SinkError) else SinkError(str(e), cause=e)
                return self._failed(entry, error, now=now)

        self._target_backoff.record_success(_target_key(entry))
        return await self._persist(entry, fetched, now)

    async def _fetch(
        self, connector: SourceConnector, db_name: str, table: str, cursor: int
    ) -> FetchResult:
        timeout = self.settings.fetch_timeout_seconds
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(connector.fetch_rows_since, table, cursor),
                timeout=timeout,
            )
        except TimeoutError:
            connector.interrupt()
            raise FetchTimeoutError(
                f"Fetch of {db_name}.{table} exceeded {timeout}s", timeout=timeout
            ).with_context(database=db_name, target=table, cursor=cursor) from None

    async def _persist(
        self, entry: ScheduleEntry, fetched: FetchResult, now: datetime
    ) -> TargetResult:
        db_name, name = entry.database, entry.target
        cursor = entry.entry.cursor
        row_count = fetched.row_count
        try:
            stored = await asyncio.to_thread(
                self.store.advance_target,
                db_name,
                name,
                cursor=fetched.new_cursor,
                checked_at=now,
                updated_at=now if row_count else None,
            )
        except StaleCursorError as e:
            self._stats.stale_cursor_rejections += 1
            self._stats.last_error = str(e)
            logger.error(
                "stale_cursor_rejected",
                target=name,
                stored=e.stored,
                attempted=e.attempted,
            )
            self._refresh_target(db_name, name)
            return TargetResult(
                db_name, name, TargetOutcome.STALE_CURSOR,
                cursor_from=cursor, cursor_to=fetched.new_cursor, error=str(e),
            )
        except CdcError as e:
            self._stats.persist_failures += 1
            self._stats.last_error = str(e)
            logger.error(
                "cursor_persist_failed",
                target=name,
                cursor=fetched.new_cursor,
                rows=row_count,
                error=str(e),
            )
            return TargetResult(
                db_name, name, TargetOutcome.PERSIST_FAILED,
                rows=row_count, cursor_from=cursor, cursor_to=fetched.new_cursor, error=str(e),
            )

        assert self._registry is not None
        database = self._registry.databases[db_name]
        database.targets[name] = stored
        if row_count:
            database.last_updated = max(database.last_updated, now)

        self._stats.targets_polled += 1
        self._stats.rows_emitted += row_count
        logger.info(
            "target_polled",
            target=name,
            rows=row_count,
            cursor_from=cursor,
            cursor_to=stored.cursor,
        )
        return TargetResult(
            db_name, name, TargetOutcome.POLLED,
            rows=row_count, cursor_from=cursor, cursor_to=stored.cursor,
        )

    def _failed(
        self, entry: ScheduleEntry, error: BaseException, now: datetime | None = None
    ) -> TargetResult:
        """Report a contained target failure.

        With ``now`` the target itself is parked in backoff so a query that
        keeps failing is not retried on every tick.
        """
        self._stats.fetch_failures += 1
        self._stats.last_error = str(error)
        retry_at = None
        if now is not None:
            retry_at = self._target_backoff.record_failure(_target_key(entry), error, now=now)
        logger.warning(
            "target_failed",
            target=entry.target,
            cursor=entry.entry.cursor,
            error=str(error),
            error_type=type(error).__name__,
            error_category=categorize_error(error).value,
            retryable=is_retryable(error),
            retry_at=retry_at.isoformat() if retry_at else None,
        )
        return TargetResult(
            entry.database,
            entry.target,
            TargetOutcome.FAILED,
            cursor_from=entry.entry.cursor,
            cursor_to=entry.entry.cursor,
            error=str(error),
        )

    def _refresh_target(self, db_name: str, name: str) -> None:
        """Replace the working copy of a target with the stored one."""
        try:
            stored = self.store.get_target(db_name, name)
        except CdcError as e:
            logger.warning("target_refresh_failed", target=name, error=str(e))
            return
        assert self._registry is not None
        self._registry.databases[db_name].targets[name] = stored

    # === Connectors ===

    def _connector_for(self, db_name: str) -> SourceConnector:
        connector = self._connectors.get(db_name)
        if connector is not None:
            return connector
        assert self._registry is not None
        database = self._registry.databases[db_name]
        connector = self._connector_factory(database.coordinates)
        self._connectors[db_name] = connector
        self._coordinates[db_name] = database.coordinates
        return connector

    def _prune_connectors(self, registry: Registry) -> None:
        """Drop connectors whose database vanished or whose coordinates changed."""
        for name in list(self._connectors):
            database = registry.get_database(name)
            if database is not None and database.coordinates == self._coordinates.get(name):
                continue
            connector = self._connectors.pop(name)
            self._coordinates.pop(name, None)
            self._backoff.forget(name)
            self._close_connector(name, connector)

    def _close_connector(self, name: str, connector: SourceConnector) -> None:
        try:
            connector.close()
        except Exception as e:  # noqa: BLE001 - closing is best-effort
            logger.warning("connector_close_failed", database=name, error=str(e))

    def _close_connectors(self) -> None:
        for name, connector in list(self._connectors.items()):
            self._close_connector(name, connector)
        self._connectors.clear()
        self._coordinates.clear()

    # === Loop ===

    def compute_sleep(self, now: datetime | None = None) -> float:
        """Seconds to sleep before the next cycle.

        Until the next due target, clamped to at most half the smallest
        interval and to ``[min_tick_seconds, tick_seconds]``.
        """
        now = ensure_utc(now or self._clock())
        tick = self.settings.tick_seconds
        if self._registry is None:
            return tick
        wakeup = next_wakeup(self._registry, now)
        delay = tick if wakeup is None else seconds_until(wakeup, now)
        smallest = smallest_interval(self._registry)
        if smallest is not None:
            delay = min(delay, smallest.total_seconds() / 2)
        return max(self.settings.min_tick_seconds, min(delay, tick))

    async def run_forever(self) -> None:
        """Cycle until :meth:`request_stop`, then close connectors."""
        self._loop = asyncio.get_running_loop()
        if self._registry is None:
            self.start()
        self._looping = True
        try:
            while not self._stop_requested.is_set():
                report = await self.run_cycle()
                if self._stop_requested.is_set():
                    break
                if report.reloaded:
                    continue
                await self._sleep(self.compute_sleep())
        finally:
            self._looping = False
            self._close_connectors()
            self._state = EngineState.STOPPED
            self._loop = None
            logger.info("engine_stopped", cycles=self._stats.cycles)

    async def _sleep(self, seconds: float) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._wake_event.wait(), timeout=seconds)
        self._wake_event.clear()

    # === Health ===

    def health(self) -> EngineHealth:
        registry = self._registry
        databases = len(registry.databases) if registry else 0
        enabled = sum(1 for _, t in registry.iter_targets() if t.enabled) if registry else 0
        now = self._clock()
        return EngineHealth(
            healthy=self._state != EngineState.STOPPED and registry is not None,
            state=self._state,
            databases=databases,
            targets_enabled=enabled,
            connectors_open=sum(1 for c in self._connectors.values() if c.is_connected),
            backoff=self._backoff.blocked_keys(now),
            targets_backoff=self._target_backoff.blocked_keys(now),
            last_cycle_at=self._stats.last_cycle_at,
            stats=self._stats,
        )


def _target_key(entry: ScheduleEntry) -> str:
    return f"{entry.database}.{entry.target}"


__all__ = [
    "EngineState",
    "TargetOutcome",
    "TargetResult",
    "CycleReport",
    "PollStats",
    "EngineHealth",
    "PollEngine",
]
