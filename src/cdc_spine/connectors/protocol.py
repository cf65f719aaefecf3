"""
Source connector protocol -- the database side of every poll.

Manifesto:
    The poll engine must not know which wire protocol or SQL dialect sits
    behind a database name. A connector offers exactly four capabilities:
    hold a session, list tables, describe a table, and fetch rows past a
    cursor. Everything else (scheduling, retries, persistence) lives above.

    - **One session per connector:** calls are serialized on it
    - **Cursor-bounded fetch:** rows with ``id > cursor``, ascending
    - **Interruptible:** ``interrupt()`` cancels a query stuck past its
      deadline without waiting for the lock held by that query
    - **Typed failures:** ``SourceConnectionError`` for the session,
      ``QueryError`` for everything a statement can do wrong

Architecture:
    ::

        SourceConnector (ABC)
          │  public, locked                 subclass hooks
          ├── connect()               ──►   _open()
          ├── close()                 ──►   _close()
          ├── list_tables()           ──►   _list_tables()
          ├── describe_table(name)    ──►   _describe_table(name)
          ├── fetch_rows_since(t, c)  ──►   _fetch_rows(t, c, limit)
          └── interrupt()  (no lock)  ──►   _interrupt()

        PostgreSQLConnector  (psycopg2)
        SQLiteConnector      (sqlite3)

Examples:
    >>> connector = create_connector(ConnectionCoordinates(engine="sqlite", database="app.db"))
    >>> connector.connect()
    >>> result = connector.fetch_rows_since("orders", 10)
    >>> result.new_cursor
    12

Tags:
    connector, source, protocol, cdc, cursor
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from cdc_spine.core.errors import QueryError, SourceConnectionError
from cdc_spine.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ID_COLUMN = "id"


class ColumnInfo(NamedTuple):
    """One column of a described table, in ordinal order."""

    name: str
    data_type: str


@dataclass
class FetchResult:
    """Rows past a cursor plus the cursor to persist once they are delivered."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    new_cursor: int = 0

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def __bool__(self) -> bool:
        return bool(self.rows)


class SourceConnector(ABC):
    """Abstract capability over one source database.

    Subclasses implement the underscore hooks; the public methods add
    locking, lazy connection, table-name checks and cursor computation.

    Precondition: every polled table has a monotonically increasing integer
    identifier column (``id_column``). Tables without one cannot be polled.
    """

    engine: str = ""

    def __init__(self, *, id_column: str = DEFAULT_ID_COLUMN, batch_size: int | None = None):
        if batch_size is not None and batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.id_column = id_column
        self.batch_size = batch_size
        self._lock = threading.Lock()
        self._known_tables: set[str] | None = None

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _open(self) -> None:
        """Establish the session. Raise ``SourceConnectionError`` on failure."""

    @abstractmethod
    def _close(self) -> None: ...

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    def _list_tables(self) -> set[str]: ...

    @abstractmethod
    def _describe_table(self, table: str) -> list[ColumnInfo]: ...

    @abstractmethod
    def _fetch_rows(self, table: str, cursor: int, limit: int | None) -> list[dict[str, Any]]:
        """Rows with ``id_column > cursor`` ordered ascending, at most ``limit``."""

    def _interrupt(self) -> None:
        """Cancel the running statement, if the driver supports it."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def connect(self) -> None:
        with self._lock:
            self._ensure_connected()

    def close(self) -> None:
        with self._lock:
            self._known_tables = None
            if self.is_connected:
                self._close()
                logger.debug("connector_closed", engine=self.engine)

    def list_tables(self) -> set[str]:
        with self._lock:
            self._ensure_connected()
            tables = self._list_tables()
            self._known_tables = set(tables)
            return tables

    def describe_table(self, table: str) -> list[ColumnInfo]:
        with self._lock:
            self._ensure_connected()
            self._require_table(table)
            return self._describe_table(table)

    def fetch_rows_since(self, table: str, cursor: int) -> FetchResult:
        """Fetch every row whose identifier exceeds ``cursor``.

        ``new_cursor`` is the largest identifier returned, or ``cursor`` when
        no row matched. With ``batch_size`` set, at most that many rows come
        back and the rest are picked up by the next fetch.

        Raises:
            SourceConnectionError: The session could not be (re)established.
            QueryError: Unknown table, failed statement, or a non-integer id.
        """
        with self._lock:
            self._ensure_connected()
            self._require_table(table)
            rows = self._fetch_rows(table, cursor, self.batch_size)
        return FetchResult(rows=rows, new_cursor=self._max_identifier(table, rows, cursor))

    def interrupt(self) -> None:
        """Best-effort cancellation of an in-flight query (lock-free)."""
        if not self.is_connected:
            return
        try:
            self._interrupt()
        except Exception as exc:  # noqa: BLE001 - cancellation is advisory
            logger.warning("connector_interrupt_failed", engine=self.engine, error=str(exc))

    def __enter__(self) -> SourceConnector:
        self.connect()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> None:
        if not self.is_connected:
            self._open()
            logger.debug("connector_opened", engine=self.engine)

    def _require_table(self, table: str) -> None:
        if self._known_tables is None or table not in self._known_tables:
            self._known_tables = set(self._list_tables())
        if table not in self._known_tables:
            raise QueryError(f"Unknown table: {table}").with_context(target=table)

    def _max_identifier(self, table: str, rows: list[dict[str, Any]], cursor: int) -> int:
        new_cursor = cursor
        for row in rows:
            value = row.get(self.id_column)
            if isinstance(value, bool) or not isinstance(value, int):
                raise QueryError(
                    f"Column {self.id_column!r} of {table} is not an integer identifier "
                    f"(got {value!r})"
                ).with_context(target=table)
            new_cursor = max(new_cursor, value)
        return new_cursor

    def _lost_session(self, message: str, exc: Exception) -> SourceConnectionError:
        """Drop the session and build the error to raise."""
        try:
            self._close()
        except Exception as close_exc:  # noqa: BLE001 - session is already gone
            logger.debug("connector_close_after_loss_failed", error=str(close_exc))
        self._known_tables = None
        return SourceConnectionError(message, cause=exc)


__all__ = [
    "DEFAULT_ID_COLUMN",
    "ColumnInfo",
    "FetchResult",
    "SourceConnector",
]
