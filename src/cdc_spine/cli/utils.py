"""
CLI utility helpers -- settings, store wiring and output formatting.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from cdc_spine.core.settings import CdcSettings, get_settings
from cdc_spine.core.store import ConfigStore
from cdc_spine.ops.context import OperationContext
from cdc_spine.ops.result import OperationResult

console = Console()
err_console = Console(stderr=True)

# Registry missing or unreadable: the operator has to intervene
STARTUP_ERROR_CODES = {"NOT_INITIALIZED", "CORRUPT"}
EXIT_STARTUP_ERROR = 2


# ── Settings / store helpers ─────────────────────────────────────────────


def load_settings(data_dir: str | None = None, **overrides: Any) -> CdcSettings:
    """Cached settings with CLI overrides applied (``None`` values ignored).

    Raises:
        pydantic.ValidationError: An override is out of range.
    """
    settings = get_settings()
    update = {k: v for k, v in overrides.items() if v is not None}
    if data_dir is not None:
        update["data_dir"] = Path(data_dir).expanduser()
    return settings.with_overrides(**update) if update else settings


def describe_validation_error(exc: ValidationError) -> str:
    """One line per invalid setting, e.g. ``tick_seconds: Input should be greater than 0``."""
    lines = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"])
        lines.append(f"{field}: {error['msg']}" if field else error["msg"])
    return "\n".join(lines)


def make_store(data_dir: str | None = None) -> ConfigStore:
    settings = load_settings(data_dir)
    return ConfigStore(settings.data_dir, settings.registry_file)


def make_context(
    data_dir: str | None = None,
    *,
    dry_run: bool = False,
) -> OperationContext:
    """Create an ``OperationContext`` for CLI commands."""
    return OperationContext(store=make_store(data_dir), caller="cli", dry_run=dry_run)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def fail(result: OperationResult) -> None:
    """Print a failed result and exit (2 for registry startup errors, else 1)."""
    err = result.error
    msg = err.message if err else "Unknown error"
    code = err.code if err else "ERROR"
    err_console.print(f"[bold red]Error[/bold red] ({code}): {msg}")
    raise typer.Exit(code=EXIT_STARTUP_ERROR if code in STARTUP_ERROR_CODES else 1)


def output_result(
    result: OperationResult,
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render an ``OperationResult`` to the terminal."""
    if not result.success:
        fail(result)

    data = result.data

    if as_json:
        payload = _to_dict(data) if not isinstance(data, list | tuple) else [_to_dict(d) for d in data]
        typer.echo(json.dumps(payload, default=str, indent=2))
        return

    for warning in result.warnings:
        err_console.print(f"[yellow]Warning[/yellow]: {warning}")

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


def print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
