"""
Target operations.

Discovery of a database's tables plus enable/disable and interval
overrides. None of these touch cursors: discovery only adds new targets
(cursor 0, due immediately) and refreshes the column snapshot of known
ones.
"""

from __future__ import annotations

from cdc_spine.core.errors import CdcError
from cdc_spine.core.logging import get_logger
from cdc_spine.core.models import TargetEntry
from cdc_spine.ops.context import OperationContext
from cdc_spine.ops.requests import DiscoverTargetsRequest, TargetIntervalRequest
from cdc_spine.ops.responses import DiscoveryResult
from cdc_spine.ops.result import OperationResult, start_timer

logger = get_logger(__name__)


def discover_targets(
    ctx: OperationContext,
    request: DiscoverTargetsRequest,
) -> OperationResult[DiscoveryResult]:
    """Connect to a database, list and describe its tables, register them."""
    timer = start_timer()
    warnings: list[str] = []

    try:
        database = ctx.store.get_database(request.database)
        connector = ctx.connector_factory(database.coordinates)
        with connector:
            tables = sorted(connector.list_tables())
            if request.tables is not None:
                missing = sorted(set(request.tables) - set(tables))
                warnings.extend(f"Table not found: {name}" for name in missing)
                tables = [name for name in tables if name in request.tables]
            discovered = [
                TargetEntry(name=name, enabled=request.enable).with_columns(
                    connector.describe_table(name)
                )
                for name in tables
            ]
    except CdcError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    for target in discovered:
        if connector.id_column not in target.columns:
            warnings.append(
                f"{target.name}: no {connector.id_column!r} column; polling will fail"
            )

    if ctx.dry_run:
        known = set(database.targets)
        return OperationResult.ok(
            DiscoveryResult(
                database=request.database,
                tables=tables,
                added=[t.name for t in discovered if t.name not in known],
                refreshed=[t.name for t in discovered if t.name in known],
            ),
            warnings=warnings,
            metadata={"dry_run": True},
            elapsed_ms=timer.elapsed_ms,
        )

    try:
        added = ctx.store.merge_targets(request.database, discovered)
    except CdcError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    logger.info(
        "targets_discovered",
        database=request.database,
        tables=len(tables),
        added=len(added),
    )
    return OperationResult.ok(
        DiscoveryResult(
            database=request.database,
            tables=tables,
            added=added,
            refreshed=[t.name for t in discovered if t.name not in added],
        ),
        warnings=warnings,
        elapsed_ms=timer.elapsed_ms,
    )


def set_target_enabled(
    ctx: OperationContext,
    database: str,
    target: str,
    enabled: bool,
) -> OperationResult[dict]:
    """Enable or disable polling of one target."""
    timer = start_timer()
    try:
        stored = ctx.store.set_target_enabled(database, target, enabled)
    except CdcError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    return OperationResult.ok(
        {"database": database, "target": stored.name, "enabled": stored.enabled},
        elapsed_ms=timer.elapsed_ms,
    )


def set_target_interval(
    ctx: OperationContext,
    request: TargetIntervalRequest,
) -> OperationResult[dict]:
    """Override a target's poll interval, or clear the override."""
    timer = start_timer()
    try:
        stored = ctx.store.set_target_interval(
            request.database, request.target, request.seconds
        )
    except CdcError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    return OperationResult.ok(
        {
            "database": request.database,
            "target": stored.name,
            "poll_interval_seconds": stored.poll_interval_seconds,
        },
        elapsed_ms=timer.elapsed_ms,
    )
