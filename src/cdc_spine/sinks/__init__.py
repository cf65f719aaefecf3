"""Sinks for captured rows."""

from __future__ import annotations

from pathlib import Path

from cdc_spine.core.errors import ConfigError
from cdc_spine.sinks.jsonl import ENVELOPE_KEY, JsonLinesSink
from cdc_spine.sinks.protocol import LoggingSink, MemorySink, RowBatch, Sink


def create_sink(kind: str, capture_dir: str | Path) -> Sink:
    """Build the sink named by ``CdcSettings.sink``."""
    if kind == "jsonl":
        return JsonLinesSink(capture_dir)
    if kind == "log":
        return LoggingSink()
    raise ConfigError(f"Unknown sink: {kind}")


__all__ = [
    "ENVELOPE_KEY",
    "JsonLinesSink",
    "LoggingSink",
    "MemorySink",
    "RowBatch",
    "Sink",
    "create_sink",
]
