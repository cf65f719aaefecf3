"""Tests for the registry data model."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from cdc_spine.core.models import (
    ConnectionCoordinates,
    DatabaseEntry,
    Engine,
    Registry,
    TargetEntry,
)
from cdc_spine.core.timestamps import EPOCH


def _registry() -> Registry:
    return Registry(
        base_path="/data",
        databases={
            "sales": DatabaseEntry(
                name="sales",
                coordinates=ConnectionCoordinates(
                    host="db", user="reader", password="s3cret", database="sales"
                ),
                poll_interval_seconds=30,
                last_updated=datetime(2026, 1, 1, tzinfo=UTC),
                targets={
                    "orders": TargetEntry(
                        name="orders",
                        columns={"id": "integer", "total": "numeric"},
                        cursor=12,
                        last_checked=datetime(2026, 1, 1, 0, 0, 40, tzinfo=UTC),
                        last_updated=datetime(2026, 1, 1, 0, 0, 40, tzinfo=UTC),
                    ),
                    "refunds": TargetEntry(name="refunds", enabled=False, poll_interval_seconds=5),
                },
            ),
        },
    )


class TestRoundTrip:
    def test_json_round_trip_is_identical(self):
        registry = _registry()
        restored = Registry.model_validate_json(registry.model_dump_json(indent=2))
        assert restored == registry
        assert list(restored.databases["sales"].targets) == ["orders", "refunds"]

    def test_timestamps_serialize_as_utc(self):
        data = json.loads(_registry().model_dump_json())
        assert data["databases"]["sales"]["targets"]["orders"]["last_checked"].startswith(
            "2026-01-01T00:00:40"
        )


class TestDefaults:
    def test_new_target_is_due_immediately(self):
        target = TargetEntry(name="orders")
        assert target.cursor == 0
        assert target.last_checked == EPOCH
        assert target.last_updated == EPOCH
        assert target.enabled is True

    def test_effective_interval_override_and_inherit(self):
        registry = _registry()
        database = registry.databases["sales"]
        assert database.targets["orders"].effective_interval(database) == timedelta(seconds=30)
        assert database.targets["refunds"].effective_interval(database) == timedelta(seconds=5)

    def test_next_due(self):
        database = _registry().databases["sales"]
        orders = database.targets["orders"]
        assert orders.next_due(database) == orders.last_checked + timedelta(seconds=30)

    def test_with_columns(self):
        target = TargetEntry(name="orders", cursor=3).with_columns([("id", "integer")])
        assert target.columns == {"id": "integer"}
        assert target.cursor == 3


class TestValidation:
    def test_negative_cursor_rejected(self):
        with pytest.raises(ValidationError):
            TargetEntry(name="orders", cursor=-1)

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError):
            DatabaseEntry(name="sales", poll_interval_seconds=0)
        with pytest.raises(ValidationError):
            TargetEntry(name="orders", poll_interval_seconds=0)

    def test_list_input_is_keyed_by_name(self):
        registry = Registry.model_validate(
            {"databases": [{"name": "a", "targets": [{"name": "t1"}, {"name": "t2"}]}]}
        )
        assert list(registry.databases) == ["a"]
        assert list(registry.databases["a"].targets) == ["t1", "t2"]

    def test_duplicate_names_in_list_rejected(self):
        with pytest.raises(ValidationError, match="duplicate database name"):
            Registry.model_validate({"databases": [{"name": "a"}, {"name": "a"}]})
        with pytest.raises(ValidationError, match="duplicate target name"):
            DatabaseEntry.model_validate({"name": "a", "targets": [{"name": "t"}, {"name": "t"}]})

    def test_key_name_mismatch_rejected(self):
        with pytest.raises(ValidationError, match="does not match"):
            Registry.model_validate({"databases": {"a": {"name": "b"}}})

    def test_mapping_entry_without_name_inherits_key(self):
        registry = Registry.model_validate({"databases": {"a": {"targets": {"t": {}}}}})
        assert registry.databases["a"].targets["t"].name == "t"

    def test_newer_version_rejected(self):
        with pytest.raises(ValidationError, match="newer than supported"):
            Registry(version=99)


class TestTimestamps:
    def test_naive_datetime_taken_as_utc(self):
        target = TargetEntry(name="t", last_checked=datetime(2026, 1, 1, 12, 0))
        assert target.last_checked == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def test_epoch_seconds_accepted(self):
        target = TargetEntry(name="t", last_checked=60)
        assert target.last_checked == EPOCH + timedelta(seconds=60)

    def test_secs_since_epoch_object_accepted(self):
        target = TargetEntry.model_validate(
            {"name": "t", "last_updated": {"secs_since_epoch": 10, "nanos_since_epoch": 500_000_000}}
        )
        assert target.last_updated == EPOCH + timedelta(seconds=10.5)

    @pytest.mark.parametrize(
        "value",
        [
            {"secs_since_epoch": "x"},
            {"secs_since_epoch": [1]},
            1e20,
            float("nan"),
        ],
    )
    def test_unusable_epoch_value_is_a_validation_error(self, value):
        with pytest.raises(ValidationError, match="invalid epoch timestamp"):
            TargetEntry.model_validate({"name": "t", "last_checked": value})


class TestCoordinates:
    def test_password_not_in_repr(self):
        coords = ConnectionCoordinates(password="s3cret")
        assert "s3cret" not in repr(coords)
        assert coords.masked()["password"] == "****"

    def test_postgres_alias(self):
        assert ConnectionCoordinates(engine="postgres").engine == Engine.POSTGRESQL
        assert ConnectionCoordinates(engine="SQLite").engine == Engine.SQLITE

    def test_unknown_engine_rejected(self):
        with pytest.raises(ValidationError):
            ConnectionCoordinates(engine="oracle")


class TestRegistryHelpers:
    def test_iter_targets_in_registry_order(self):
        pairs = [(d.name, t.name) for d, t in _registry().iter_targets()]
        assert pairs == [("sales", "orders"), ("sales", "refunds")]

    def test_get_database(self):
        registry = _registry()
        assert registry.get_database("sales") is registry.databases["sales"]
        assert registry.get_database("missing") is None
