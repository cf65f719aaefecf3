"""
Typed response objects for operations.

Plain dataclasses returned inside ``OperationResult.data``; ``to_dict``
renders them for ``--json`` output.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class InitResult:
    status: str
    path: str


@dataclass(frozen=True, slots=True)
class TargetStatus:
    """One target row of ``cdc-spine status``."""

    database: str
    target: str
    enabled: bool
    cursor: int
    interval_seconds: int
    last_checked: str
    last_updated: str
    next_due: str
    due: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class DatabaseStatus:
    name: str
    engine: str
    location: str
    poll_interval_seconds: int
    last_updated: str
    targets: list[TargetStatus] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class RegistryStatus:
    path: str
    pending_reload: bool
    databases: list[DatabaseStatus] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class DiscoveryResult:
    database: str
    tables: list[str]
    added: list[str]
    refreshed: list[str]
