"""SQLite source connector.

Uses the built-in sqlite3 module. The database file is opened read-only
(``PRAGMA query_only``) with ``check_same_thread=False`` because fetches
run in worker threads.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from cdc_spine.core.errors import QueryError, SourceConnectionError

from .protocol import ColumnInfo, SourceConnector


def quote_identifier(name: str) -> str:
    """Quote a table or column name for SQLite."""
    return '"' + name.replace('"', '""') + '"'


class SQLiteConnector(SourceConnector):
    """Polls tables of a local SQLite database file."""

    engine = "sqlite"

    def __init__(
        self,
        path: str,
        *,
        timeout: float = 5.0,
        id_column: str = "id",
        batch_size: int | None = None,
    ):
        super().__init__(id_column=id_column, batch_size=batch_size)
        self.path = path
        self._timeout = timeout
        self._conn: sqlite3.Connection | None = None

    def __repr__(self) -> str:
        return f"SQLiteConnector(path={self.path!r})"

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def _open(self) -> None:
        uri = self.path.startswith("file:")
        if not uri and self.path != ":memory:" and not Path(self.path).exists():
            raise SourceConnectionError(f"SQLite database not found: {self.path}")
        try:
            conn = sqlite3.connect(
                self.path,
                timeout=self._timeout,
                check_same_thread=False,
                uri=uri,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA query_only = ON")
        except sqlite3.Error as e:
            raise SourceConnectionError(
                f"Failed to open SQLite database {self.path}: {e}",
                cause=e,
            ) from e
        self._conn = conn

    def _close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    def _interrupt(self) -> None:
        if self._conn is not None:
            self._conn.interrupt()

    def _execute(self, statement: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        assert self._conn is not None
        try:
            return self._conn.execute(statement, params).fetchall()
        except sqlite3.ProgrammingError as e:
            # closed connection
            raise self._lost_session(f"SQLite session lost: {e}", e) from e
        except sqlite3.Error as e:
            raise QueryError(f"SQLite query failed: {e}", cause=e) from e

    def _list_tables(self) -> set[str]:
        rows = self._execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
        )
        return {row["name"] for row in rows}

    def _describe_table(self, table: str) -> list[ColumnInfo]:
        rows = self._execute(f"PRAGMA table_info({quote_identifier(table)})")
        return [ColumnInfo(row["name"], row["type"] or "") for row in rows]

    def _fetch_rows(self, table: str, cursor: int, limit: int | None) -> list[dict[str, Any]]:
        id_col = quote_identifier(self.id_column)
        statement = (
            f"SELECT * FROM {quote_identifier(table)} WHERE {id_col} > ? ORDER BY {id_col}"
        )
        params: tuple[Any, ...] = (cursor,)
        if limit is not None:
            statement += " LIMIT ?"
            params = (cursor, limit)
        return [dict(row) for row in self._execute(statement, params)]


__all__ = ["SQLiteConnector", "quote_identifier"]
