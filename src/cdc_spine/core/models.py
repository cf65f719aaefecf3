"""
Registry data model (persisted).

The registry is the single document cdc-spine keeps on disk: which source
databases exist, which tables ("targets") of each are polled, and every
target's cursor and schedule state.

Manifesto:
    The registry must be human-inspectable, round-trip exactly, and refuse
    to load when it is inconsistent. Pydantic gives all three: JSON in and
    out via ``model_dump_json`` / ``model_validate_json``, plus validation
    of names, cursors and intervals at load time.

    - **Name-keyed mappings:** O(1) lookup of databases and targets; dict
      insertion order is the output order
    - **Unique names:** A list with duplicate names is rejected, not merged
    - **UTC everywhere:** Naive or epoch timestamps are normalized to UTC

Architecture:
    ::

        Registry
        ├── version, base_path, pending_reload
        └── databases: {name → DatabaseEntry}
                ├── coordinates: ConnectionCoordinates
                ├── poll_interval_seconds, last_updated
                └── targets: {name → TargetEntry}
                        ├── columns {column → type}
                        ├── cursor (non-decreasing, 0 = nothing seen)
                        ├── last_checked, last_updated
                        └── enabled, poll_interval_seconds (override)

Examples:
    >>> reg = Registry(base_path="/data")
    >>> reg.databases["sales"] = DatabaseEntry(
    ...     name="sales", coordinates=ConnectionCoordinates(database="sales"),
    ... )
    >>> Registry.model_validate_json(reg.model_dump_json()) == reg
    True

Tags:
    models, pydantic, registry, cursor, persistence
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    Field,
    field_validator,
    model_validator,
)

from cdc_spine.core.timestamps import EPOCH, ensure_utc, from_epoch_seconds

REGISTRY_VERSION = 1


def _coerce_timestamp(value: Any) -> Any:
    """Accept epoch seconds and ``{"secs_since_epoch", "nanos_since_epoch"}``
    objects in addition to ISO strings."""
    if isinstance(value, bool):
        return value
    try:
        if isinstance(value, (int, float)):
            return from_epoch_seconds(value)
        if isinstance(value, dict) and "secs_since_epoch" in value:
            seconds = value["secs_since_epoch"] + value.get("nanos_since_epoch", 0) / 1e9
            return from_epoch_seconds(seconds)
    except (TypeError, OverflowError, ValueError) as exc:
        # pydantic only reports ValueError as a validation failure
        raise ValueError(f"invalid epoch timestamp {value!r}: {exc}") from exc
    return value


UtcDatetime = Annotated[
    datetime,
    BeforeValidator(_coerce_timestamp),
    AfterValidator(ensure_utc),
]


def _keyed_by_name(value: Any, kind: str) -> Any:
    """Turn a list of entries into a name-keyed dict, rejecting duplicates.

    Dict input is passed through; entries missing ``name`` inherit the key.
    """
    if isinstance(value, list):
        keyed: dict[str, Any] = {}
        for item in value:
            name = item.get("name") if isinstance(item, dict) else getattr(item, "name", None)
            if not name:
                raise ValueError(f"{kind} entry without a name")
            if name in keyed:
                raise ValueError(f"duplicate {kind} name: {name}")
            keyed[name] = item
        return keyed
    if isinstance(value, dict):
        return {
            key: ({**item, "name": key} if isinstance(item, dict) and "name" not in item else item)
            for key, item in value.items()
        }
    return value


def _check_keys(mapping: dict[str, Any], kind: str) -> None:
    for key, entry in mapping.items():
        if key != entry.name:
            raise ValueError(f"{kind} key {key!r} does not match entry name {entry.name!r}")


class Engine(str, Enum):
    """Source database engines with a connector implementation."""

    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class ConnectionCoordinates(BaseModel):
    """Where and how to connect to a source database.

    For SQLite, ``database`` is the database file path and the network
    fields are ignored.
    """

    engine: Engine = Engine.POSTGRESQL
    host: str = "localhost"
    port: int = Field(default=5432, ge=0, le=65535)
    user: str = ""
    password: str = Field(default="", repr=False)
    database: str = ""

    @field_validator("engine", mode="before")
    @classmethod
    def _engine_alias(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.lower()
            return "postgresql" if value == "postgres" else value
        return value

    def masked(self) -> dict[str, Any]:
        """Coordinates as a dict with the password hidden (for display)."""
        data = self.model_dump(mode="json")
        if data.get("password"):
            data["password"] = "****"
        return data


class TargetEntry(BaseModel):
    """One pollable table within a database."""

    name: str = Field(min_length=1)
    columns: dict[str, str] = Field(default_factory=dict)
    cursor: int = Field(default=0, ge=0)
    last_checked: UtcDatetime = EPOCH
    last_updated: UtcDatetime = EPOCH
    enabled: bool = True
    poll_interval_seconds: int | None = Field(default=None, gt=0)

    def effective_interval(self, database: DatabaseEntry) -> timedelta:
        """The target's own interval, or the database default."""
        seconds = self.poll_interval_seconds or database.poll_interval_seconds
        return timedelta(seconds=seconds)

    def next_due(self, database: DatabaseEntry) -> datetime:
        return self.last_checked + self.effective_interval(database)

    def with_columns(self, columns: Iterable[tuple[str, str]]) -> TargetEntry:
        """Copy of this target with its schema snapshot replaced."""
        return self.model_copy(update={"columns": {name: dtype for name, dtype in columns}})


class DatabaseEntry(BaseModel):
    """One source database and its targets."""

    name: str = Field(min_length=1)
    coordinates: ConnectionCoordinates = Field(default_factory=ConnectionCoordinates)
    poll_interval_seconds: int = Field(default=60, gt=0)
    last_updated: UtcDatetime = EPOCH
    targets: dict[str, TargetEntry] = Field(default_factory=dict)

    @field_validator("targets", mode="before")
    @classmethod
    def _targets_by_name(cls, value: Any) -> Any:
        return _keyed_by_name(value, "target")

    @model_validator(mode="after")
    def _target_keys_match(self) -> DatabaseEntry:
        _check_keys(self.targets, "target")
        return self

    def get_target(self, name: str) -> TargetEntry | None:
        return self.targets.get(name)


class Registry(BaseModel):
    """Root persisted object."""

    version: int = REGISTRY_VERSION
    base_path: str = ""
    pending_reload: bool = False
    databases: dict[str, DatabaseEntry] = Field(default_factory=dict)

    @field_validator("databases", mode="before")
    @classmethod
    def _databases_by_name(cls, value: Any) -> Any:
        return _keyed_by_name(value, "database")

    @model_validator(mode="after")
    def _database_keys_match(self) -> Registry:
        _check_keys(self.databases, "database")
        if self.version > REGISTRY_VERSION:
            raise ValueError(
                f"registry version {self.version} is newer than supported ({REGISTRY_VERSION})"
            )
        return self

    @classmethod
    def empty(cls, base_path: str = "") -> Registry:
        return cls(base_path=base_path)

    def get_database(self, name: str) -> DatabaseEntry | None:
        return self.databases.get(name)

    def iter_targets(self) -> Iterator[tuple[DatabaseEntry, TargetEntry]]:
        """Yield every (database, target) pair in registry order."""
        for database in self.databases.values():
            for target in database.targets.values():
                yield database, target


__all__ = [
    "REGISTRY_VERSION",
    "UtcDatetime",
    "Engine",
    "ConnectionCoordinates",
    "TargetEntry",
    "DatabaseEntry",
    "Registry",
]
