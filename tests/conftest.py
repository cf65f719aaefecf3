"""
Shared pytest fixtures and configuration for cdc-spine tests.

This module provides:
- A fixed clock (``T0``) for deterministic scheduling
- A temporary, initialized ``ConfigStore``
- Engine settings with short timeouts
- A SQLite source database with an ``orders`` table
- Helpers to register databases and targets
"""

import os
import sqlite3
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Ensure cdc_spine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cdc_spine.core.models import ConnectionCoordinates, DatabaseEntry, TargetEntry
from cdc_spine.core.settings import CdcSettings, clear_settings_cache
from cdc_spine.core.store import ConfigStore

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Keep CDC_* variables from the host out of the tests."""
    for key in list(os.environ):
        if key.startswith("CDC_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CDC_DATA_DIR", str(tmp_path / "data"))
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def now() -> datetime:
    return T0


@pytest.fixture
def store(tmp_path) -> ConfigStore:
    """An initialized, empty registry under ``tmp_path/data``."""
    store = ConfigStore(tmp_path / "data")
    store.initialize()
    return store


@pytest.fixture
def settings(tmp_path) -> CdcSettings:
    return CdcSettings(
        data_dir=tmp_path / "data",
        tick_seconds=5.0,
        min_tick_seconds=0.05,
        fetch_timeout_seconds=0.3,
        max_concurrent_databases=4,
        backoff_base_seconds=10.0,
        backoff_max_seconds=60.0,
    )


def register(
    store: ConfigStore,
    name: str,
    targets: dict[str, dict] | None = None,
    *,
    interval: int = 30,
) -> DatabaseEntry:
    """Register database ``name`` with targets given as TargetEntry kwargs."""
    entry = DatabaseEntry(
        name=name,
        coordinates=ConnectionCoordinates(engine="sqlite", database=name),
        poll_interval_seconds=interval,
        targets={
            target: TargetEntry(name=target, **fields)
            for target, fields in (targets or {}).items()
        },
    )
    return store.upsert_database(entry)


@pytest.fixture
def register_db():
    return register


@pytest.fixture
def sqlite_source(tmp_path) -> Path:
    """A SQLite file with ``orders`` (ids 1-3) and an empty ``customers`` table."""
    path = tmp_path / "source.db"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE orders (id INTEGER PRIMARY KEY, customer TEXT, total REAL);
        CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT NOT NULL);
        INSERT INTO orders (id, customer, total) VALUES
            (1, 'ada', 10.5),
            (2, 'bob', 20.0),
            (3, 'cy', 7.25);
        """
    )
    conn.commit()
    conn.close()
    return path
