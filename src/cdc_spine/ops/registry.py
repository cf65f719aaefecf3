"""
Registry operations.

Initialization, status reporting, and reload requests. Wires
:class:`~cdc_spine.core.store.ConfigStore` and the scheduler's due-set
view to the CLI.
"""

from __future__ import annotations

from datetime import datetime

from cdc_spine.core.errors import CdcError
from cdc_spine.core.logging import get_logger
from cdc_spine.core.timestamps import ensure_utc, to_iso8601, utc_now
from cdc_spine.ops.context import OperationContext
from cdc_spine.ops.responses import DatabaseStatus, InitResult, RegistryStatus, TargetStatus
from cdc_spine.ops.result import OperationResult, start_timer
from cdc_spine.scheduling.supervisor import ConfigReloadSupervisor

logger = get_logger(__name__)


def initialize_registry(ctx: OperationContext) -> OperationResult[InitResult]:
    """Create the registry if missing (``new``) or validate it (``existing``)."""
    timer = start_timer()
    path = str(ctx.store.path)

    if ctx.dry_run:
        status = "existing" if ctx.store.exists() else "new"
        return OperationResult.ok(
            InitResult(status=status, path=path),
            metadata={"dry_run": True},
            elapsed_ms=timer.elapsed_ms,
        )

    try:
        status = ctx.store.ensure_initialized()
    except CdcError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    return OperationResult.ok(
        InitResult(status=status.value, path=path), elapsed_ms=timer.elapsed_ms
    )


def get_status(
    ctx: OperationContext, now: datetime | None = None
) -> OperationResult[RegistryStatus]:
    """Databases and targets with cursor, schedule and due state."""
    timer = start_timer()
    now = ensure_utc(now or utc_now())

    try:
        registry = ctx.store.load()
    except CdcError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    databases = []
    for database in registry.databases.values():
        coordinates = database.coordinates
        if coordinates.engine.value == "sqlite":
            location = coordinates.database
        else:
            location = f"{coordinates.host}:{coordinates.port}/{coordinates.database}"
        targets = []
        for target in database.targets.values():
            interval = target.effective_interval(database)
            next_due = target.next_due(database)
            targets.append(
                TargetStatus(
                    database=database.name,
                    target=target.name,
                    enabled=target.enabled,
                    cursor=target.cursor,
                    interval_seconds=int(interval.total_seconds()),
                    last_checked=to_iso8601(target.last_checked) or "",
                    last_updated=to_iso8601(target.last_updated) or "",
                    next_due=to_iso8601(next_due) or "",
                    due=target.enabled and now >= next_due,
                )
            )
        databases.append(
            DatabaseStatus(
                name=database.name,
                engine=coordinates.engine.value,
                location=location,
                poll_interval_seconds=database.poll_interval_seconds,
                last_updated=to_iso8601(database.last_updated) or "",
                targets=targets,
            )
        )

    return OperationResult.ok(
        RegistryStatus(
            path=str(ctx.store.path),
            pending_reload=registry.pending_reload,
            databases=databases,
        ),
        elapsed_ms=timer.elapsed_ms,
    )


def request_reload(ctx: OperationContext) -> OperationResult[dict]:
    """Ask a running poller to reload its working registry."""
    timer = start_timer()

    if ctx.dry_run:
        return OperationResult.ok({"dry_run": True}, elapsed_ms=timer.elapsed_ms)

    try:
        ConfigReloadSupervisor(ctx.store).request_reload()
    except CdcError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    logger.info("reload_flag_set", caller=ctx.caller, request_id=ctx.request_id)
    return OperationResult.ok({"pending_reload": True}, elapsed_ms=timer.elapsed_ms)
