"""Tests for database operations."""

from cdc_spine.core.store import ConfigStore
from cdc_spine.ops.context import OperationContext
from cdc_spine.ops.databases import add_database
from cdc_spine.ops.requests import AddDatabaseRequest


class TestAddDatabase:
    def test_creates_database(self, ctx):
        result = add_database(
            ctx,
            AddDatabaseRequest(
                name="sales",
                host="db.internal",
                user="cdc",
                password="s3cret",
                database="sales",
                poll_interval_seconds=30,
            ),
        )

        assert result.success
        assert result.data["created"] is True
        assert result.data["coordinates"]["password"] == "****"
        assert result.data["coordinates"]["engine"] == "postgresql"
        stored = ctx.store.get_database("sales")
        assert stored.coordinates.password == "s3cret"
        assert stored.poll_interval_seconds == 30

    def test_update_keeps_targets_and_cursors(self, ctx, register_db):
        register_db(ctx.store, "sales", {"orders": {"cursor": 40}})

        result = add_database(
            ctx,
            AddDatabaseRequest(name="sales", engine="sqlite", database="/srv/sales.db"),
        )

        assert result.success
        assert result.data["created"] is False
        assert result.data["targets"] == 1
        assert ctx.store.get_target("sales", "orders").cursor == 40
        assert ctx.store.get_database("sales").coordinates.database == "/srv/sales.db"

    def test_postgres_alias(self, ctx):
        result = add_database(ctx, AddDatabaseRequest(name="dw", engine="Postgres", database="dw"))
        assert result.success
        assert ctx.store.get_database("dw").coordinates.engine.value == "postgresql"

    def test_invalid_engine(self, ctx):
        result = add_database(ctx, AddDatabaseRequest(name="dw", engine="oracle"))
        assert not result.success
        assert result.error.code == "VALIDATION_FAILED"
        assert ctx.store.load().databases == {}

    def test_invalid_interval(self, ctx):
        result = add_database(ctx, AddDatabaseRequest(name="dw", poll_interval_seconds=0))
        assert result.error.code == "VALIDATION_FAILED"

    def test_dry_run(self, dry_ctx):
        result = add_database(dry_ctx, AddDatabaseRequest(name="sales", database="sales"))
        assert result.data == {"dry_run": True, "would_upsert": "sales"}
        assert dry_ctx.store.load().databases == {}

    def test_not_initialized(self, tmp_path):
        ctx = OperationContext(store=ConfigStore(tmp_path / "missing"))
        result = add_database(ctx, AddDatabaseRequest(name="sales"))
        assert result.error.code == "NOT_INITIALIZED"
