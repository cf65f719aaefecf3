"""JSON-lines file sink.

Appends each captured row to ``<root>/<database>/<target>.jsonl`` as one
JSON object, merged with a ``_cdc`` envelope::

    {"id": 11, "total": 9.5, "_cdc": {"database": "sales", "target": "orders",
                                     "captured_at": "2026-01-01T00:00:40+00:00"}}

Each batch is flushed and fsynced before ``emit`` returns, so a cursor is
never persisted ahead of the rows it covers.
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Any

from cdc_spine.core.errors import SinkError
from cdc_spine.core.logging import get_logger
from cdc_spine.core.timestamps import to_iso8601

from .protocol import RowBatch

logger = get_logger(__name__)

ENVELOPE_KEY = "_cdc"


def _path_component(name: str) -> str:
    """Make a database/target name safe to use as a single path segment."""
    cleaned = name.replace(os.sep, "_").replace("/", "_")
    if cleaned in ("", ".", ".."):
        cleaned = f"_{cleaned}_"
    return cleaned


class JsonLinesSink:
    """Append-only JSONL files under a capture directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"JsonLinesSink(root={str(self.root)!r})"

    def path_for(self, database: str, target: str) -> Path:
        return self.root / _path_component(database) / f"{_path_component(target)}.jsonl"

    def emit(self, batch: RowBatch) -> None:
        if not batch.rows:
            return
        envelope = {
            "database": batch.database,
            "target": batch.target,
            "captured_at": to_iso8601(batch.captured_at),
        }
        try:
            lines = [
                json.dumps({**row, ENVELOPE_KEY: envelope}, default=_json_default) + "\n"
                for row in batch.rows
            ]
        except (TypeError, ValueError) as e:
            raise SinkError(f"Rows of {batch.key} are not serializable: {e}", cause=e) from e

        path = self.path_for(batch.database, batch.target)
        with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as fh:
                    fh.writelines(lines)
                    fh.flush()
                    os.fsync(fh.fileno())
            except OSError as e:
                raise SinkError(
                    f"Cannot append to {path}: {e}", cause=e
                ).with_context(database=batch.database, target=batch.target, path=str(path)) from e

        logger.debug("batch_written", path=str(path), rows=len(batch))

    def close(self) -> None:
        pass


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).hex()
    return str(value)


__all__ = ["JsonLinesSink", "ENVELOPE_KEY"]
