"""PostgreSQL source connector.

Uses psycopg2 with one long-lived autocommit, read-only session per
database. Rows are fetched as ``row_to_json`` objects so every column type
arrives as a JSON-compatible value.
"""

from __future__ import annotations

from typing import Any

from cdc_spine.core.errors import ConfigError, QueryError, SourceConnectionError

from .protocol import ColumnInfo, SourceConnector

APPLICATION_NAME = "cdc-spine"


def _psycopg2() -> Any:
    try:
        import psycopg2
        import psycopg2.sql
    except ImportError:
        raise ConfigError(
            "psycopg2 is required for PostgreSQL. Install with: pip install psycopg2-binary"
        ) from None
    return psycopg2


class PostgreSQLConnector(SourceConnector):
    """
    PostgreSQL source connector.

    Discovery is limited to base tables of ``schema`` (default ``public``).
    The session runs in autocommit mode so each fetch is its own snapshot
    and no transaction stays open between polls.
    """

    engine = "postgresql"

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "",
        user: str | None = None,
        password: str | None = None,
        *,
        schema: str = "public",
        connect_timeout: int = 10,
        id_column: str = "id",
        batch_size: int | None = None,
    ):
        super().__init__(id_column=id_column, batch_size=batch_size)
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self._password = password
        self.schema = schema
        self.connect_timeout = connect_timeout
        self._conn: Any = None

    def __repr__(self) -> str:
        return (
            f"PostgreSQLConnector(host={self.host!r}, port={self.port}, "
            f"database={self.database!r})"
        )

    @property
    def is_connected(self) -> bool:
        return self._conn is not None and not self._conn.closed

    def _open(self) -> None:
        psycopg2 = _psycopg2()
        try:
            conn = psycopg2.connect(
                host=self.host,
                port=self.port,
                dbname=self.database,
                user=self.user,
                password=self._password,
                connect_timeout=self.connect_timeout,
                application_name=APPLICATION_NAME,
            )
            conn.set_session(readonly=True, autocommit=True)
        except psycopg2.Error as e:
            raise SourceConnectionError(
                f"Failed to connect to PostgreSQL {self.host}:{self.port}/{self.database}: {e}",
                cause=e,
            ) from e
        self._conn = conn

    def _close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None and not conn.closed:
            conn.close()

    def _interrupt(self) -> None:
        if self._conn is not None:
            self._conn.cancel()

    def _execute(self, statement: Any, params: tuple[Any, ...] = ()) -> list[tuple[Any, ...]]:
        psycopg2 = _psycopg2()
        try:
            with self._conn.cursor() as cur:
                cur.execute(statement, params)
                return cur.fetchall()
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
            if self._conn is None or self._conn.closed:
                raise self._lost_session(f"PostgreSQL session lost: {e}", e) from e
            raise QueryError(f"PostgreSQL query failed: {e}", cause=e) from e
        except psycopg2.Error as e:
            raise QueryError(f"PostgreSQL query failed: {e}", cause=e) from e

    def _list_tables(self) -> set[str]:
        rows = self._execute(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = %s AND table_type = 'BASE TABLE'",
            (self.schema,),
        )
        return {row[0] for row in rows}

    def _describe_table(self, table: str) -> list[ColumnInfo]:
        rows = self._execute(
            "SELECT column_name, data_type FROM information_schema.columns "
            "WHERE table_schema = %s AND table_name = %s ORDER BY ordinal_position",
            (self.schema, table),
        )
        return [ColumnInfo(name, data_type) for name, data_type in rows]

    def _fetch_rows(self, table: str, cursor: int, limit: int | None) -> list[dict[str, Any]]:
        sql = _psycopg2().sql
        statement = sql.SQL(
            "SELECT row_to_json(t) FROM {table} AS t WHERE {id} > %s ORDER BY {id}"
        ).format(
            table=sql.Identifier(self.schema, table),
            id=sql.Identifier(self.id_column),
        )
        params: tuple[Any, ...] = (cursor,)
        if limit is not None:
            statement = statement + sql.SQL(" LIMIT %s")
            params = (cursor, limit)
        return [row[0] for row in self._execute(statement, params)]


__all__ = ["PostgreSQLConnector", "APPLICATION_NAME"]
