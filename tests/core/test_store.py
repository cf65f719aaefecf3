"""Tests for ConfigStore: persistence, atomic save, cursor rules, reload flag."""

import json
import os
from datetime import UTC, datetime, timedelta

import pytest

from cdc_spine.core.errors import (
    ConfigCorruptError,
    ConfigError,
    ConfigNotFoundError,
    DatabaseNotFoundError,
    RegistryPersistenceError,
    StaleCursorError,
    TargetNotFoundError,
)
from cdc_spine.core.models import ConnectionCoordinates, DatabaseEntry, Registry, TargetEntry
from cdc_spine.core.store import ConfigStatus, ConfigStore
from cdc_spine.core.timestamps import EPOCH

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


class TestLifecycle:
    def test_load_missing_raises_not_found(self, tmp_path):
        store = ConfigStore(tmp_path / "empty")
        with pytest.raises(ConfigNotFoundError):
            store.load()

    def test_initialize_creates_empty_registry(self, tmp_path):
        store = ConfigStore(tmp_path / "data")
        registry = store.initialize()
        assert registry.databases == {}
        assert registry.base_path == str(tmp_path / "data")
        assert store.load() == registry

    def test_initialize_refuses_to_overwrite(self, store):
        with pytest.raises(ConfigError, match="already exists"):
            store.initialize()

    def test_ensure_initialized(self, tmp_path):
        store = ConfigStore(tmp_path / "data")
        assert store.ensure_initialized() == ConfigStatus.NEW
        assert store.ensure_initialized() == ConfigStatus.EXISTING

    def test_corrupt_file(self, store):
        store.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigCorruptError) as exc_info:
            store.load()
        assert exc_info.value.context.path == str(store.path)

    def test_invalid_registry_is_corrupt(self, store):
        store.path.write_text('{"databases": [{"name": "a"}, {"name": "a"}]}', encoding="utf-8")
        with pytest.raises(ConfigCorruptError):
            store.load()

    def test_ensure_initialized_with_corrupt_file(self, store):
        store.path.write_text("garbage", encoding="utf-8")
        with pytest.raises(ConfigCorruptError):
            store.ensure_initialized()

    def test_non_utf8_bytes_are_corrupt(self, store):
        store.path.write_bytes(b'{"databases": {"\xff\xfe": {}}}')
        with pytest.raises(ConfigCorruptError) as exc_info:
            store.load()
        assert exc_info.value.context.path == str(store.path)

    @pytest.mark.parametrize(
        "last_checked",
        [
            {"secs_since_epoch": "x"},
            {"secs_since_epoch": 1, "nanos_since_epoch": "y"},
            1e20,
            -1e20,
        ],
    )
    def test_unusable_epoch_timestamp_is_corrupt(self, store, last_checked):
        document = {"databases": {"a": {"targets": {"t": {"last_checked": last_checked}}}}}
        store.path.write_text(json.dumps(document), encoding="utf-8")
        with pytest.raises(ConfigCorruptError):
            store.load()

    def test_consume_reload_flag_on_non_utf8_file(self, store):
        store.path.write_bytes(b"\xff\xfe\x00")
        with pytest.raises(ConfigCorruptError):
            store.consume_reload_flag()


class TestAtomicSave:
    def test_save_leaves_no_temp_files(self, store):
        store.save(Registry(base_path="x"))
        assert sorted(p.name for p in store.base_path.iterdir()) == ["config.json"]

    def test_failed_replace_keeps_old_file(self, store, monkeypatch, register_db):
        register_db(store, "sales", {"orders": {"cursor": 5}})
        before = store.path.read_text(encoding="utf-8")

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)
        with pytest.raises(RegistryPersistenceError, match="disk full"):
            store.advance_target("sales", "orders", cursor=9, checked_at=T0)

        monkeypatch.undo()
        assert store.path.read_text(encoding="utf-8") == before
        assert sorted(p.name for p in store.base_path.iterdir()) == ["config.json"]
        assert store.get_target("sales", "orders").cursor == 5

    def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = ConfigStore(blocker / "sub")
        with pytest.raises(RegistryPersistenceError):
            store.save(Registry())


class TestReplaceTarget:
    def test_insert_and_advance(self, store, register_db):
        register_db(store, "sales")
        store.replace_target("sales", TargetEntry(name="orders", cursor=3))
        store.replace_target("sales", TargetEntry(name="orders", cursor=7))
        assert store.get_target("sales", "orders").cursor == 7

    def test_lower_cursor_rejected_and_not_written(self, store, register_db):
        register_db(store, "sales", {"orders": {"cursor": 12}})
        with pytest.raises(StaleCursorError) as exc_info:
            store.replace_target("sales", TargetEntry(name="orders", cursor=10))
        assert exc_info.value.stored == 12
        assert store.get_target("sales", "orders").cursor == 12

    def test_equal_cursor_accepted(self, store, register_db):
        register_db(store, "sales", {"orders": {"cursor": 12}})
        stored = store.replace_target("sales", TargetEntry(name="orders", cursor=12, enabled=False))
        assert stored.enabled is False

    def test_older_timestamps_are_clamped(self, store, register_db):
        register_db(store, "sales", {"orders": {"cursor": 1, "last_checked": T0, "last_updated": T0}})
        stored = store.replace_target(
            "sales",
            TargetEntry(
                name="orders",
                cursor=2,
                last_checked=T0 - timedelta(minutes=5),
                last_updated=T0 - timedelta(minutes=5),
            ),
        )
        assert stored.last_checked == T0
        assert stored.last_updated == T0
        assert store.get_target("sales", "orders").cursor == 2

    def test_unknown_database(self, store):
        with pytest.raises(DatabaseNotFoundError):
            store.replace_target("nope", TargetEntry(name="orders"))


class TestAdvanceTarget:
    def test_only_cursor_and_timestamps_change(self, store, register_db):
        register_db(store, "sales", {"orders": {"cursor": 10, "poll_interval_seconds": 15}})
        store.set_target_enabled("sales", "orders", False)

        stored = store.advance_target("sales", "orders", cursor=12, checked_at=T0, updated_at=T0)

        assert stored.cursor == 12
        assert stored.last_checked == T0
        assert stored.last_updated == T0
        assert stored.enabled is False
        assert stored.poll_interval_seconds == 15
        assert store.get_database("sales").last_updated == T0

    def test_without_rows_keeps_last_updated(self, store, register_db):
        register_db(store, "sales", {"orders": {"cursor": 10}})
        stored = store.advance_target("sales", "orders", cursor=10, checked_at=T0)
        assert stored.last_checked == T0
        assert stored.last_updated == EPOCH
        assert store.get_database("sales").last_updated == EPOCH

    def test_stale_cursor(self, store, register_db):
        register_db(store, "sales", {"orders": {"cursor": 10}})
        with pytest.raises(StaleCursorError):
            store.advance_target("sales", "orders", cursor=9, checked_at=T0)

    def test_checked_at_never_regresses(self, store, register_db):
        register_db(store, "sales", {"orders": {"last_checked": T0}})
        stored = store.advance_target(
            "sales", "orders", cursor=0, checked_at=T0 - timedelta(seconds=1)
        )
        assert stored.last_checked == T0

    def test_unknown_target(self, store, register_db):
        register_db(store, "sales")
        with pytest.raises(TargetNotFoundError):
            store.advance_target("sales", "missing", cursor=1, checked_at=T0)


class TestConfigurationEdits:
    def test_upsert_keeps_existing_targets_and_cursors(self, store, register_db):
        register_db(store, "sales", {"orders": {"cursor": 40}})
        store.upsert_database(
            DatabaseEntry(
                name="sales",
                coordinates=ConnectionCoordinates(engine="sqlite", database="moved.db"),
                poll_interval_seconds=90,
            )
        )
        database = store.get_database("sales")
        assert database.coordinates.database == "moved.db"
        assert database.poll_interval_seconds == 90
        assert database.targets["orders"].cursor == 40

    def test_merge_targets_adds_new_and_refreshes_columns(self, store, register_db):
        register_db(store, "sales", {"orders": {"cursor": 8, "columns": {"id": "integer"}}})
        added = store.merge_targets(
            "sales",
            [
                TargetEntry(name="orders", columns={"id": "integer", "total": "real"}),
                TargetEntry(name="customers", enabled=False),
            ],
        )
        assert added == ["customers"]
        orders = store.get_target("sales", "orders")
        assert orders.cursor == 8
        assert orders.columns == {"id": "integer", "total": "real"}
        assert store.get_target("sales", "customers").enabled is False

    def test_set_target_interval(self, store, register_db):
        register_db(store, "sales", {"orders": {}})
        assert store.set_target_interval("sales", "orders", 5).poll_interval_seconds == 5
        assert store.set_target_interval("sales", "orders", None).poll_interval_seconds is None
        with pytest.raises(ConfigError):
            store.set_target_interval("sales", "orders", 0)

    def test_get_database_missing(self, store):
        with pytest.raises(DatabaseNotFoundError):
            store.get_database("nope")


class TestReloadFlag:
    def test_consume_without_request(self, store):
        assert store.consume_reload_flag() is False

    def test_mark_then_consume_once(self, store):
        store.mark_reload_pending()
        assert store.load().pending_reload is True
        assert store.consume_reload_flag() is True
        assert store.consume_reload_flag() is False
        assert store.load().pending_reload is False

    def test_flag_survives_a_new_store_instance(self, store):
        store.mark_reload_pending()
        assert ConfigStore(store.base_path).consume_reload_flag() is True
