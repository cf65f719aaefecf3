"""
Structured error types for cdc-spine.

Every failure the poller can hit is expressed as a typed ``CdcError`` with
a category, a retry flag and structured context, so the engine can decide
whether a failure is contained to one target, one database, or is fatal.

Manifesto:
    A CDC poller lives or dies by how it classifies failures. A timed-out
    query on one table must never look like a corrupt registry, and a
    registry that cannot be parsed must never be silently "repaired".

    - **Typed hierarchy:** One class per failure mode in the poll path
    - **Explicit retry semantics:** Each error knows if it's retryable
    - **Rich context:** database, target, cursor and path travel with the error
    - **Error chaining:** The driver exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                          CdcError                                │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError            TransientError        SourceError        │
        │  (CONFIG)               (retryable=True)      (SOURCE)           │
        │    │                      │                     │                │
        │  ConfigNotFoundError    SourceConnectionError QueryError         │
        │  ConfigCorruptError     FetchTimeoutError                        │
        │  DatabaseNotFoundError                                           │
        │  TargetNotFoundError                                             │
        │                                                                  │
        │  StorageError           InvariantError        SinkError          │
        │  (STORAGE)              (INTERNAL)            (SINK)             │
        │    │                      │                                      │
        │  RegistryPersistenceError StaleCursorError                       │
        └─────────────────────────────────────────────────────────────────┘

Propagation policy:
    - Per-target errors (FetchTimeoutError, QueryError, SinkError) are
      contained to that target, which backs off before its next attempt.
    - Per-database errors (SourceConnectionError) put the database into
      backoff; its targets are skipped, not failed.
    - StaleCursorError is an invariant violation: rejected, logged loudly.
    - ConfigCorruptError / ConfigNotFoundError are fatal at startup.

Examples:
    >>> err = FetchTimeoutError("fetch exceeded 30s")
    >>> err.retryable
    True
    >>> err.with_context(database="sales", target="orders").context.target
    'orders'

Tags:
    error-handling, exception-hierarchy, retry-logic, cdc, cursor
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    NETWORK = "NETWORK"           # Connect failures, timeouts
    DATABASE = "DATABASE"         # Query failures on a source
    STORAGE = "STORAGE"           # Registry file I/O

    # Data path
    SOURCE = "SOURCE"             # Upstream database misbehaving
    SINK = "SINK"                 # Downstream delivery failures

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"             # Missing / corrupt / unknown config

    # Internal errors
    INTERNAL = "INTERNAL"         # Invariant violations, bugs
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Only the fields relevant to a failure are set; ``to_dict()`` drops the
    rest so log lines stay short.
    """

    database: str | None = None
    target: str | None = None
    cursor: int | None = None
    path: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ("database", "target", "cursor", "path"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CdcError(Exception):
    """Base exception for all cdc-spine errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override either per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CdcError:
        """Add context to this error (fluent API).

        Usage:
            raise QueryError("bad column").with_context(database="sales", target="orders")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS (never retryable)
# =============================================================================


class ConfigError(CdcError):
    """Configuration is missing, unreadable, or refers to unknown entities."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class ConfigNotFoundError(ConfigError):
    """No persisted registry exists yet; the caller must initialize one."""


class ConfigCorruptError(ConfigError):
    """The persisted registry cannot be parsed or fails validation.

    Fatal at startup. There is no implicit auto-repair: an operator has to
    fix or restore the file.
    """


class DatabaseNotFoundError(ConfigError):
    """A database name is not present in the registry."""

    def __init__(self, name: str, message: str | None = None):
        super().__init__(message or f"Database not found: {name}")
        self.context.database = name


class TargetNotFoundError(ConfigError):
    """A target name is not present in the named database."""

    def __init__(self, database: str, target: str, message: str | None = None):
        super().__init__(message or f"Target not found: {database}.{target}")
        self.context.database = database
        self.context.target = target


# =============================================================================
# TRANSIENT ERRORS (usually retryable)
# =============================================================================


class TransientError(CdcError):
    """Temporary failure that will likely succeed on a later cycle."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class SourceConnectionError(TransientError):
    """Cannot establish or keep a session with a source database.

    Puts the database into backoff; all of its targets are skipped until
    connectivity returns.
    """


class FetchTimeoutError(TransientError):
    """A single ``fetch_rows_since`` call exceeded its deadline."""

    def __init__(self, message: str, *, timeout: float | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.timeout = timeout


# =============================================================================
# SOURCE / SINK ERRORS
# =============================================================================


class SourceError(CdcError):
    """Errors raised by a source database while serving a request."""

    default_category = ErrorCategory.SOURCE
    default_retryable = False


class QueryError(SourceError):
    """A discovery, introspection or fetch query failed.

    Isolated to the target it was issued for, which backs off before retrying.
    """

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class SinkError(CdcError):
    """The sink refused or failed to accept a batch of rows."""

    default_category = ErrorCategory.SINK
    default_retryable = True


# =============================================================================
# STORAGE / INVARIANT ERRORS
# =============================================================================


class StorageError(CdcError):
    """Local storage (registry file, capture output) failed."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class RegistryPersistenceError(StorageError):
    """Writing the registry failed (permissions, disk full, ...).

    Retried next cycle; rows already handed to the sink for the affected
    target may be delivered again (at-least-once).
    """

    default_retryable = True


class InvariantError(CdcError):
    """An internal invariant was about to be violated."""

    default_category = ErrorCategory.INTERNAL
    default_retryable = False


class StaleCursorError(InvariantError):
    """Attempt to persist a cursor lower than the stored one.

    Indicates a scheduling bug or a source whose identifiers are not
    monotonic. Never applied.
    """

    def __init__(
        self,
        database: str,
        target: str,
        *,
        stored: int,
        attempted: int,
    ):
        super().__init__(
            f"Refusing to move cursor of {database}.{target} backwards "
            f"({stored} -> {attempted})"
        )
        self.stored = stored
        self.attempted = attempted
        self.context.database = database
        self.context.target = target
        self.context.cursor = attempted


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, CdcError):
        return error.retryable
    retryable_types = (
        ConnectionError,
        TimeoutError,
        OSError,
    )
    return isinstance(error, retryable_types)


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, CdcError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CdcError",
    # Config
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigCorruptError",
    "DatabaseNotFoundError",
    "TargetNotFoundError",
    # Transient
    "TransientError",
    "SourceConnectionError",
    "FetchTimeoutError",
    # Source / sink
    "SourceError",
    "QueryError",
    "SinkError",
    # Storage / invariants
    "StorageError",
    "RegistryPersistenceError",
    "InvariantError",
    "StaleCursorError",
    # Utilities
    "is_retryable",
    "categorize_error",
]
