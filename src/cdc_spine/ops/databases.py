"""
Database operations.

Register or update a source database. Existing targets and their cursors
survive an update of coordinates or interval.
"""

from __future__ import annotations

from pydantic import ValidationError

from cdc_spine.core.errors import CdcError
from cdc_spine.core.logging import get_logger
from cdc_spine.core.models import ConnectionCoordinates, DatabaseEntry
from cdc_spine.ops.context import OperationContext
from cdc_spine.ops.requests import AddDatabaseRequest
from cdc_spine.ops.result import OperationResult, start_timer

logger = get_logger(__name__)


def add_database(
    ctx: OperationContext,
    request: AddDatabaseRequest,
) -> OperationResult[dict]:
    """Register a new database or update an existing one."""
    timer = start_timer()

    try:
        entry = DatabaseEntry(
            name=request.name,
            coordinates=ConnectionCoordinates(
                engine=request.engine,
                host=request.host,
                port=request.port,
                user=request.user,
                password=request.password,
                database=request.database,
            ),
            poll_interval_seconds=request.poll_interval_seconds,
        )
    except ValidationError as exc:
        return OperationResult.fail(
            "VALIDATION_FAILED",
            f"Invalid database definition: {exc.errors()[0]['msg']}",
            details={"errors": exc.error_count()},
            elapsed_ms=timer.elapsed_ms,
        )

    if ctx.dry_run:
        return OperationResult.ok(
            {"dry_run": True, "would_upsert": entry.name},
            elapsed_ms=timer.elapsed_ms,
        )

    try:
        existed = ctx.store.load().get_database(entry.name) is not None
        stored = ctx.store.upsert_database(entry)
    except CdcError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)

    return OperationResult.ok(
        {
            "name": stored.name,
            "created": not existed,
            "coordinates": stored.coordinates.masked(),
            "poll_interval_seconds": stored.poll_interval_seconds,
            "targets": len(stored.targets),
        },
        elapsed_ms=timer.elapsed_ms,
    )
