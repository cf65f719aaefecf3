"""Tests for UTC timestamp helpers."""

from datetime import UTC, datetime, timedelta, timezone

from cdc_spine.core.timestamps import (
    EPOCH,
    ensure_utc,
    from_epoch_seconds,
    from_iso8601,
    seconds_until,
    to_iso8601,
    utc_now,
)


class TestEnsureUtc:
    def test_naive_is_taken_as_utc(self):
        assert ensure_utc(datetime(2026, 1, 1, 12)) == datetime(2026, 1, 1, 12, tzinfo=UTC)

    def test_offset_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        converted = ensure_utc(datetime(2026, 1, 1, 14, tzinfo=plus_two))
        assert converted.tzinfo is UTC
        assert converted.hour == 12


class TestIso8601:
    def test_round_trip_keeps_instant(self):
        value = datetime(2026, 1, 1, 12, 30, tzinfo=UTC)
        assert from_iso8601(to_iso8601(value)) == value

    def test_none_passthrough(self):
        assert to_iso8601(None) is None
        assert from_iso8601(None) is None

    def test_naive_string_is_utc(self):
        assert from_iso8601("2026-01-01T12:00:00").tzinfo is UTC


class TestHelpers:
    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is UTC

    def test_seconds_until(self):
        now = datetime(2026, 1, 1, tzinfo=UTC)
        assert seconds_until(now + timedelta(seconds=30), now) == 30.0
        assert seconds_until(now - timedelta(seconds=5), now) == -5.0

    def test_from_epoch_seconds(self):
        assert from_epoch_seconds(0) == EPOCH
        assert from_epoch_seconds(90.5) == EPOCH + timedelta(seconds=90.5)
