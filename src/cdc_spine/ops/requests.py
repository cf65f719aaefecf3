"""
Typed request objects for operations.

Each dataclass represents the *input* contract for a single operation
function. Requests carry only validated, transport-agnostic data -- no
Typer params.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AddDatabaseRequest:
    """Request for :func:`cdc_spine.ops.databases.add_database`.

    Attributes:
        name: Registry key of the database.
        engine: ``"postgresql"`` (alias ``"postgres"``) or ``"sqlite"``.
        database: Database name, or the file path for SQLite.
        poll_interval_seconds: Default interval for the database's targets.
    """

    name: str
    engine: str = "postgresql"
    host: str = "localhost"
    port: int = 5432
    user: str = ""
    password: str = ""
    database: str = ""
    poll_interval_seconds: int = 60


@dataclass(frozen=True, slots=True)
class DiscoverTargetsRequest:
    """Request for :func:`cdc_spine.ops.targets.discover_targets`."""

    database: str
    enable: bool = True
    tables: list[str] | None = None  # ``None`` -> every table found


@dataclass(frozen=True, slots=True)
class TargetIntervalRequest:
    """Request for :func:`cdc_spine.ops.targets.set_target_interval`."""

    database: str
    target: str
    seconds: int | None = None  # ``None`` -> inherit the database default
