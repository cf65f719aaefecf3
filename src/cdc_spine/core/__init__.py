"""cdc-spine core -- registry model, durable store, and ambient primitives.

Architecture::

    errors.py       Structured error hierarchy (CdcError, TransientError)
    logging.py      structlog configuration and context binding
    settings.py     CdcSettings (pydantic-settings, CDC_* env vars)
    timestamps.py   UTC helpers (stdlib-only)
    retry.py        ExponentialBackoff + per-database BackoffTracker
    models.py       Registry / DatabaseEntry / TargetEntry (pydantic)
    store.py        ConfigStore: locked, atomic registry persistence
"""

from cdc_spine.core.errors import (
    CdcError,
    ConfigCorruptError,
    ConfigError,
    ConfigNotFoundError,
    DatabaseNotFoundError,
    ErrorCategory,
    FetchTimeoutError,
    QueryError,
    RegistryPersistenceError,
    SinkError,
    SourceConnectionError,
    StaleCursorError,
    TargetNotFoundError,
)
from cdc_spine.core.models import (
    ConnectionCoordinates,
    DatabaseEntry,
    Engine,
    Registry,
    TargetEntry,
)
from cdc_spine.core.store import ConfigStatus, ConfigStore

__all__ = [
    "CdcError",
    "ConfigCorruptError",
    "ConfigError",
    "ConfigNotFoundError",
    "DatabaseNotFoundError",
    "ErrorCategory",
    "FetchTimeoutError",
    "QueryError",
    "RegistryPersistenceError",
    "SinkError",
    "SourceConnectionError",
    "StaleCursorError",
    "TargetNotFoundError",
    "ConnectionCoordinates",
    "DatabaseEntry",
    "Engine",
    "Registry",
    "TargetEntry",
    "ConfigStatus",
    "ConfigStore",
]
