"""Tests for the SQLite source connector against a real database file."""

import sqlite3

import pytest

from cdc_spine.connectors import ColumnInfo, SQLiteConnector
from cdc_spine.core.errors import QueryError, SourceConnectionError

pytestmark = pytest.mark.integration


@pytest.fixture
def connector(sqlite_source):
    connector = SQLiteConnector(str(sqlite_source))
    yield connector
    connector.close()


class TestSQLiteConnectorSession:
    def test_connect_and_close(self, connector):
        assert connector.is_connected is False
        connector.connect()
        assert connector.is_connected is True
        connector.close()
        assert connector.is_connected is False

    def test_missing_file_is_connection_error(self, tmp_path):
        connector = SQLiteConnector(str(tmp_path / "missing.db"))
        with pytest.raises(SourceConnectionError, match="not found"):
            connector.connect()
        assert not (tmp_path / "missing.db").exists()

    def test_lazy_connect_on_first_use(self, connector):
        assert connector.list_tables() == {"orders", "customers"}
        assert connector.is_connected is True

    def test_session_is_read_only(self, connector):
        connector.connect()
        with pytest.raises(sqlite3.OperationalError):
            connector._conn.execute("INSERT INTO customers (id, name) VALUES (1, 'x')")


class TestSQLiteConnectorIntrospection:
    def test_describe_table(self, connector):
        assert connector.describe_table("orders") == [
            ColumnInfo("id", "INTEGER"),
            ColumnInfo("customer", "TEXT"),
            ColumnInfo("total", "REAL"),
        ]

    def test_describe_unknown_table(self, connector):
        with pytest.raises(QueryError, match="Unknown table"):
            connector.describe_table("nope")


class TestSQLiteConnectorFetch:
    def test_fetch_from_zero(self, connector):
        result = connector.fetch_rows_since("orders", 0)
        assert [row["id"] for row in result.rows] == [1, 2, 3]
        assert result.rows[0] == {"id": 1, "customer": "ada", "total": 10.5}
        assert result.new_cursor == 3

    def test_fetch_past_cursor(self, connector):
        result = connector.fetch_rows_since("orders", 2)
        assert [row["id"] for row in result.rows] == [3]
        assert result.new_cursor == 3

    def test_no_new_rows_keeps_cursor(self, connector):
        result = connector.fetch_rows_since("orders", 3)
        assert result.rows == []
        assert result.new_cursor == 3
        assert not result

    def test_empty_table(self, connector):
        result = connector.fetch_rows_since("customers", 0)
        assert result.row_count == 0
        assert result.new_cursor == 0

    def test_batch_size_limits_and_advances_partially(self, sqlite_source):
        connector = SQLiteConnector(str(sqlite_source), batch_size=2)
        first = connector.fetch_rows_since("orders", 0)
        second = connector.fetch_rows_since("orders", first.new_cursor)
        connector.close()
        assert [row["id"] for row in first.rows] == [1, 2]
        assert first.new_cursor == 2
        assert [row["id"] for row in second.rows] == [3]

    def test_sees_rows_inserted_after_connect(self, connector, sqlite_source):
        connector.fetch_rows_since("orders", 0)
        writer = sqlite3.connect(sqlite_source)
        writer.execute("INSERT INTO orders (id, customer, total) VALUES (4, 'di', 1.0)")
        writer.commit()
        writer.close()
        result = connector.fetch_rows_since("orders", 3)
        assert [row["id"] for row in result.rows] == [4]

    def test_unknown_table_rejected(self, connector):
        with pytest.raises(QueryError, match="Unknown table"):
            connector.fetch_rows_since('orders"; DROP TABLE orders; --', 0)

    def test_table_without_integer_id(self, tmp_path):
        path = tmp_path / "odd.db"
        conn = sqlite3.connect(path)
        conn.executescript("CREATE TABLE tags (id TEXT); INSERT INTO tags VALUES ('a');")
        conn.commit()
        conn.close()
        connector = SQLiteConnector(str(path))
        with pytest.raises(QueryError, match="not an integer identifier"):
            connector.fetch_rows_since("tags", 0)
        connector.close()

    def test_custom_id_column(self, tmp_path):
        path = tmp_path / "events.db"
        conn = sqlite3.connect(path)
        conn.executescript(
            "CREATE TABLE events (seq INTEGER PRIMARY KEY, kind TEXT);"
            "INSERT INTO events VALUES (5, 'a'), (9, 'b');"
        )
        conn.commit()
        conn.close()
        connector = SQLiteConnector(str(path), id_column="seq")
        result = connector.fetch_rows_since("events", 5)
        connector.close()
        assert result.rows == [{"seq": 9, "kind": "b"}]
        assert result.new_cursor == 9
