"""
Centralized settings for cdc-spine.

One validated, cached settings object holds every knob of the poller: the
storage mount path, tick bounds, fetch timeout, concurrency and backoff.
Values come from ``CDC_*`` environment variables or a ``.env`` file; CLI
options override them.

Examples:
    >>> from cdc_spine.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.registry_path
    PosixPath('/home/me/.cdc-spine/config.json')

Tags:
    settings, configuration, pydantic, environment, caching
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CdcSettings(BaseSettings):
    """cdc-spine configuration.

    All fields can be set via ``CDC_*`` environment variables (e.g.
    ``CDC_DATA_DIR=/mnt/backup``) or through a ``.env`` file.

    Fields
    ──────
    data_dir                 : Storage/mount path (registry + capture output)
    registry_file            : Registry document name inside ``data_dir``
    tick_seconds             : Upper bound on the sleep between cycles
    min_tick_seconds         : Lower bound on the sleep between cycles
    fetch_timeout_seconds    : Deadline for one ``fetch_rows_since`` call
    connect_timeout_seconds  : Driver-level connect timeout
    max_concurrent_databases : Databases polled in parallel per cycle
    fetch_batch_size         : Optional row limit per fetch (None = unbounded)
    backoff_*                : Reconnect backoff after a connection failure
    sink                     : Where captured rows go (``jsonl`` or ``log``)
    log_level / log_json     : Structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="CDC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".cdc-spine",
        description="Storage/mount path for the registry and captured rows",
    )
    registry_file: str = Field(default="config.json")

    # ── Scheduling ───────────────────────────────────────────────
    tick_seconds: float = Field(default=10.0, gt=0)
    min_tick_seconds: float = Field(default=0.5, gt=0)
    fetch_timeout_seconds: float = Field(default=30.0, gt=0)
    connect_timeout_seconds: int = Field(default=10, gt=0)
    max_concurrent_databases: int = Field(default=8, ge=1)
    fetch_batch_size: int | None = Field(default=None, ge=1)

    # ── Reconnect backoff ────────────────────────────────────────
    backoff_base_seconds: float = Field(default=1.0, gt=0)
    backoff_max_seconds: float = Field(default=300.0, gt=0)

    # ── Output ───────────────────────────────────────────────────
    sink: Literal["jsonl", "log"] = "jsonl"

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @model_validator(mode="after")
    def _check_bounds(self) -> CdcSettings:
        if self.min_tick_seconds > self.tick_seconds:
            raise ValueError("min_tick_seconds must not exceed tick_seconds")
        if self.backoff_base_seconds > self.backoff_max_seconds:
            raise ValueError("backoff_base_seconds must not exceed backoff_max_seconds")
        return self

    def with_overrides(self, **update: Any) -> CdcSettings:
        """Validated copy with ``update`` applied.

        A lower ``tick_seconds`` pulls ``min_tick_seconds`` down with it
        unless that is overridden too.
        """
        if "tick_seconds" in update and "min_tick_seconds" not in update:
            update["min_tick_seconds"] = min(self.min_tick_seconds, update["tick_seconds"])
        return type(self).model_validate({**self.model_dump(), **update})

    @property
    def registry_path(self) -> Path:
        return self.data_dir / self.registry_file

    @property
    def capture_dir(self) -> Path:
        return self.data_dir / "captures"


_settings_cache: dict[str, CdcSettings] = {}


def get_settings(*, _force_reload: bool = False) -> CdcSettings:
    """Load, validate, and cache a :class:`CdcSettings` instance.

    Args:
        _force_reload: Bypass the cache and re-read the environment.
    """
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = CdcSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (tests)."""
    _settings_cache.clear()


__all__ = ["CdcSettings", "get_settings", "clear_settings_cache"]
