"""
Request-scoped context for operations.

Every operation function receives an :class:`OperationContext` as its first
argument. The context carries the registry store, the connector factory
used for discovery, caller identity, dry-run flag, and arbitrary metadata.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from cdc_spine.connectors.protocol import SourceConnector
from cdc_spine.connectors.registry import create_connector
from cdc_spine.core.models import ConnectionCoordinates
from cdc_spine.core.store import ConfigStore


@dataclass
class OperationContext:
    """Context passed to every operation function.

    Attributes:
        store: Registry store the operation reads and writes.
        connector_factory: Builds a connector from coordinates (discovery).
        request_id: Unique ID for this operation invocation (auto-generated).
        caller: Origin of the request -- ``"cli"`` or ``"sdk"``.
        dry_run: When ``True``, operations return a preview without side effects.
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    store: ConfigStore
    connector_factory: Callable[[ConnectionCoordinates], SourceConnector] = create_connector
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    caller: str = "sdk"
    dry_run: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
