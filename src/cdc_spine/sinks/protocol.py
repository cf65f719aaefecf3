"""
Sink protocol -- where captured rows go.

A sink receives one :class:`RowBatch` per successful non-empty fetch,
*before* the target's cursor is persisted. A sink that raises keeps the
cursor where it was, so the same rows are offered again next cycle.

Tags:
    sink, protocol, delivery, at-least-once
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from cdc_spine.core.logging import get_logger
from cdc_spine.core.timestamps import utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class RowBatch:
    """Rows captured from one target in one poll."""

    database: str
    target: str
    rows: list[dict[str, Any]]
    cursor_from: int
    cursor_to: int
    captured_at: datetime = field(default_factory=utc_now)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def key(self) -> str:
        return f"{self.database}.{self.target}"


@runtime_checkable
class Sink(Protocol):
    """Consumer of captured rows.

    ``emit`` runs in a worker thread, possibly for several databases at
    once, so implementations must be thread-safe. A failed delivery must
    raise ``SinkError`` (or any exception) rather than drop a batch silently.
    """

    def emit(self, batch: RowBatch) -> None: ...

    def close(self) -> None: ...


class MemorySink:
    """Keeps every batch in memory (tests and embedding)."""

    def __init__(self) -> None:
        self.batches: list[RowBatch] = []
        self.closed = False

    def emit(self, batch: RowBatch) -> None:
        self.batches.append(batch)

    def close(self) -> None:
        self.closed = True

    def rows_for(self, database: str, target: str) -> list[dict[str, Any]]:
        """All rows captured for one target, in delivery order."""
        return [
            row
            for batch in self.batches
            if batch.database == database and batch.target == target
            for row in batch.rows
        ]


class LoggingSink:
    """Logs a ``rows_captured`` event per batch instead of storing rows."""

    def __init__(self, include_rows: bool = False) -> None:
        self.include_rows = include_rows

    def emit(self, batch: RowBatch) -> None:
        extra: dict[str, Any] = {"rows": batch.rows} if self.include_rows else {}
        logger.info(
            "rows_captured",
            database=batch.database,
            target=batch.target,
            row_count=len(batch),
            cursor_from=batch.cursor_from,
            cursor_to=batch.cursor_to,
            **extra,
        )

    def close(self) -> None:
        pass


__all__ = ["RowBatch", "Sink", "MemorySink", "LoggingSink"]
