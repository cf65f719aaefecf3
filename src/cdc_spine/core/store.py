"""
Durable registry store.

``ConfigStore`` owns the one JSON document that describes every source
database, its targets, and each target's cursor. The file on disk is the
source of truth: every mutation re-reads it, applies the change, and
writes it back atomically, all under one re-entrant lock.

Manifesto:
    The poller, the CLI and the reload supervisor all write to the same
    file. If each kept its own copy and saved it whole, an operator
    disabling a target could be silently reverted by the next cursor
    advance. Read-modify-write of the durable document makes every writer
    apply only its own change.

    - **Atomic:** temp file in the same directory, fsync, ``os.replace``
    - **Forward-only cursors:** a lower cursor raises ``StaleCursorError``
    - **Forward-only timestamps:** older values are clamped, not applied
    - **Durable reload flag:** set and consumed inside the same document

Architecture:
    ::

        ConfigStore(base_path)
          │
          ├── load() / save(registry)        whole document
          ├── initialize() / ensure_initialized()
          │
          ├── replace_target(db, target)     operator/ops upsert
          ├── advance_target(db, name, ...)  engine: cursor + timestamps only
          ├── upsert_database / merge_targets / set_target_* (config edits)
          │
          └── mark_reload_pending() / consume_reload_flag()

        every mutation:  lock → load → mutate → save(atomic) → unlock

Examples:
    >>> store = ConfigStore("/var/lib/cdc-spine")
    >>> store.ensure_initialized()
    <ConfigStatus.NEW: 'new'>
    >>> store.advance_target("sales", "orders", cursor=12, checked_at=utc_now())

Tags:
    registry, persistence, atomic-write, cursor, reload
"""

from __future__ import annotations

import contextlib
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import ValidationError

from cdc_spine.core.errors import (
    ConfigCorruptError,
    ConfigError,
    ConfigNotFoundError,
    DatabaseNotFoundError,
    RegistryPersistenceError,
    StaleCursorError,
    StorageError,
    TargetNotFoundError,
)
from cdc_spine.core.logging import get_logger
from cdc_spine.core.models import DatabaseEntry, Registry, TargetEntry
from cdc_spine.core.timestamps import ensure_utc

logger = get_logger(__name__)

DEFAULT_FILENAME = "config.json"


class ConfigStatus(str, Enum):
    """Outcome of :meth:`ConfigStore.ensure_initialized`."""

    NEW = "new"
    EXISTING = "existing"


class ConfigStore:
    """Locked, atomic access to the persisted :class:`Registry`."""

    def __init__(self, base_path: str | Path, filename: str = DEFAULT_FILENAME):
        self.base_path = Path(base_path)
        self.path = self.base_path / filename
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"ConfigStore(path={str(self.path)!r})"

    # ------------------------------------------------------------------
    # Whole-document access
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.exists()

    def load(self, path: str | Path | None = None) -> Registry:
        """Read and validate the registry.

        Raises:
            ConfigNotFoundError: No registry has been created yet.
            ConfigCorruptError: The file is not valid registry JSON.
            StorageError: The file exists but cannot be read.
        """
        path = Path(path) if path is not None else self.path
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ConfigNotFoundError(
                f"No registry at {path}", cause=exc
            ).with_context(path=str(path)) from exc
        except UnicodeDecodeError as exc:
            raise ConfigCorruptError(
                f"Registry {path} is not UTF-8 text: {exc.reason}", cause=exc
            ).with_context(path=str(path)) from exc
        except OSError as exc:
            raise StorageError(
                f"Cannot read registry {path}: {exc}", cause=exc
            ).with_context(path=str(path)) from exc

        try:
            return Registry.model_validate_json(text)
        except ValidationError as exc:
            raise ConfigCorruptError(
                f"Registry {path} is corrupt: {exc.error_count()} validation error(s)",
                cause=exc,
            ).with_context(path=str(path)) from exc

    def save(self, registry: Registry, path: str | Path | None = None) -> None:
        """Persist the whole registry atomically.

        A crash at any point leaves either the previous file or the new
        one, never a partial write.

        Raises:
            RegistryPersistenceError: The directory is not writable, the disk
                is full, or the final rename failed.
        """
        path = Path(path) if path is not None else self.path
        payload = registry.model_dump_json(indent=2) + "\n"

        with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as fh:
                        fh.write(payload)
                        fh.flush()
                        os.fsync(fh.fileno())
                    os.replace(tmp_name, path)
                except BaseException:
                    with contextlib.suppress(FileNotFoundError):
                        os.unlink(tmp_name)
                    raise
            except OSError as exc:
                raise RegistryPersistenceError(
                    f"Cannot write registry {path}: {exc}", cause=exc
                ).with_context(path=str(path)) from exc

        logger.debug("registry_saved", path=str(path), databases=len(registry.databases))

    def initialize(self) -> Registry:
        """Create and persist an empty registry for ``base_path``.

        Raises:
            ConfigError: A registry already exists at this path.
        """
        with self._lock:
            if self.exists():
                raise ConfigError(
                    f"Registry already exists at {self.path}"
                ).with_context(path=str(self.path))
            registry = Registry.empty(base_path=str(self.base_path))
            self.save(registry)
        logger.info("registry_initialized", path=str(self.path))
        return registry

    def ensure_initialized(self) -> ConfigStatus:
        """Create the registry if missing, otherwise check that it loads."""
        with self._lock:
            if not self.exists():
                self.initialize()
                return ConfigStatus.NEW
            self.load()
            return ConfigStatus.EXISTING

    @contextlib.contextmanager
    def _editing(self) -> Iterator[Registry]:
        """Locked read-modify-write; nothing is saved if the body raises."""
        with self._lock:
            registry = self.load()
            yield registry
            self.save(registry)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _require_database(registry: Registry, name: str) -> DatabaseEntry:
        database = registry.get_database(name)
        if database is None:
            raise DatabaseNotFoundError(name)
        return database

    @staticmethod
    def _require_target(database: DatabaseEntry, name: str) -> TargetEntry:
        target = database.get_target(name)
        if target is None:
            raise TargetNotFoundError(database.name, name)
        return target

    def get_database(self, name: str) -> DatabaseEntry:
        return self._require_database(self.load(), name)

    def get_target(self, db_name: str, target_name: str) -> TargetEntry:
        database = self._require_database(self.load(), db_name)
        return self._require_target(database, target_name)

    # ------------------------------------------------------------------
    # Cursor updates
    # ------------------------------------------------------------------

    @staticmethod
    def _not_before(
        field: str, stored: datetime, proposed: datetime, db_name: str, target_name: str
    ) -> datetime:
        proposed = ensure_utc(proposed)
        if proposed < stored:
            logger.warning(
                "timestamp_clamped",
                database=db_name,
                target=target_name,
                field=field,
                stored=stored.isoformat(),
                proposed=proposed.isoformat(),
            )
            return stored
        return proposed

    def replace_target(self, db_name: str, target: TargetEntry) -> TargetEntry:
        """Insert or replace a target by name.

        Raises:
            DatabaseNotFoundError: ``db_name`` is not registered.
            StaleCursorError: ``target.cursor`` is lower than the stored one.
        """
        with self._editing() as registry:
            database = self._require_database(registry, db_name)
            stored = database.get_target(target.name)
            if stored is not None:
                if target.cursor < stored.cursor:
                    raise StaleCursorError(
                        db_name, target.name, stored=stored.cursor, attempted=target.cursor
                    )
                target = target.model_copy(
                    update={
                        "last_checked": self._not_before(
                            "last_checked", stored.last_checked, target.last_checked,
                            db_name, target.name,
                        ),
                        "last_updated": self._not_before(
                            "last_updated", stored.last_updated, target.last_updated,
                            db_name, target.name,
                        ),
                    }
                )
            database.targets[target.name] = target
        return target

    def advance_target(
        self,
        db_name: str,
        target_name: str,
        *,
        cursor: int,
        checked_at: datetime,
        updated_at: datetime | None = None,
    ) -> TargetEntry:
        """Move a target's cursor and timestamps forward.

        Only ``cursor``, ``last_checked`` and (when given) ``last_updated``
        change; every other field keeps its stored value. ``updated_at``
        also bumps the database's ``last_updated``.

        Raises:
            DatabaseNotFoundError / TargetNotFoundError: Unknown names.
            StaleCursorError: ``cursor`` is lower than the stored one.
        """
        with self._editing() as registry:
            database = self._require_database(registry, db_name)
            stored = self._require_target(database, target_name)
            if cursor < stored.cursor:
                raise StaleCursorError(
                    db_name, target_name, stored=stored.cursor, attempted=cursor
                )

            update: dict[str, object] = {
                "cursor": cursor,
                "last_checked": self._not_before(
                    "last_checked", stored.last_checked, checked_at, db_name, target_name
                ),
            }
            if updated_at is not None:
                update["last_updated"] = self._not_before(
                    "last_updated", stored.last_updated, updated_at, db_name, target_name
                )
                database.last_updated = max(database.last_updated, ensure_utc(updated_at))

            advanced = TargetEntry.model_validate({**stored.model_dump(), **update})
            database.targets[target_name] = advanced
        return advanced

    # ------------------------------------------------------------------
    # Configuration edits
    # ------------------------------------------------------------------

    def upsert_database(self, entry: DatabaseEntry) -> DatabaseEntry:
        """Register a database or update its coordinates and interval.

        Targets already stored are kept (with their cursors); targets in
        ``entry`` are added only when their name is new.
        """
        with self._editing() as registry:
            existing = registry.get_database(entry.name)
            if existing is not None:
                targets = dict(existing.targets)
                for name, target in entry.targets.items():
                    targets.setdefault(name, target)
                entry = entry.model_copy(
                    update={
                        "targets": targets,
                        "last_updated": max(existing.last_updated, entry.last_updated),
                    }
                )
            registry.databases[entry.name] = entry
        logger.info(
            "database_upserted",
            database=entry.name,
            engine=entry.coordinates.engine.value,
            created=existing is None,
        )
        return entry

    def merge_targets(self, db_name: str, targets: Iterable[TargetEntry]) -> list[str]:
        """Add newly discovered targets; refresh the columns of known ones.

        Cursors, timestamps, ``enabled`` and intervals of known targets are
        untouched. Returns the names that were added.
        """
        added: list[str] = []
        with self._editing() as registry:
            database = self._require_database(registry, db_name)
            for target in targets:
                stored = database.get_target(target.name)
                if stored is None:
                    database.targets[target.name] = target
                    added.append(target.name)
                else:
                    database.targets[target.name] = stored.model_copy(
                        update={"columns": dict(target.columns)}
                    )
        return added

    def set_target_enabled(self, db_name: str, target_name: str, enabled: bool) -> TargetEntry:
        with self._editing() as registry:
            database = self._require_database(registry, db_name)
            target = self._require_target(database, target_name).model_copy(
                update={"enabled": enabled}
            )
            database.targets[target_name] = target
        return target

    def set_target_interval(
        self, db_name: str, target_name: str, seconds: int | None
    ) -> TargetEntry:
        """Set a per-target interval override (``None`` inherits the database's)."""
        if seconds is not None and seconds <= 0:
            raise ConfigError(f"Poll interval must be positive, got {seconds}")
        with self._editing() as registry:
            database = self._require_database(registry, db_name)
            target = self._require_target(database, target_name).model_copy(
                update={"poll_interval_seconds": seconds}
            )
            database.targets[target_name] = target
        return target

    # ------------------------------------------------------------------
    # Reload flag
    # ------------------------------------------------------------------

    def mark_reload_pending(self) -> None:
        with self._editing() as registry:
            registry.pending_reload = True
        logger.info("reload_requested", path=str(self.path))

    def consume_reload_flag(self) -> bool:
        """Return True, and clear the flag, if a reload was requested."""
        with self._lock:
            registry = self.load()
            if not registry.pending_reload:
                return False
            registry.pending_reload = False
            self.save(registry)
        return True


__all__ = ["ConfigStatus", "ConfigStore", "DEFAULT_FILENAME"]
