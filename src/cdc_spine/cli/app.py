"""
Root Typer application for the cdc-spine CLI.

Registry management commands live in sub-apps (``database``, ``target``);
the poller itself is ``cdc-spine run``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import signal

import typer
from typer import Typer

from cdc_spine.cli.utils import (
    EXIT_STARTUP_ERROR,
    console,
    describe_validation_error,
    err_console,
    load_settings,
    make_context,
    output_result,
    print_table,
)

app = Typer(
    name="cdc-spine",
    help="cdc-spine: scheduled change-data-capture poller.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from cdc_spine import __version__

        try:
            v = pkg_version("cdc-spine")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"cdc-spine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """cdc-spine CLI: manage the registry and run the poller."""


# ── Registry commands ────────────────────────────────────────────────────


@app.command("init")
def init(
    data_dir: str | None = typer.Option(None, "--data-dir", "-D", help="Storage path"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create the registry if it does not exist yet."""
    from cdc_spine.ops.registry import initialize_registry

    result = initialize_registry(make_context(data_dir))
    output_result(result, as_json=json_out, title="Registry")


@app.command("status")
def status(
    data_dir: str | None = typer.Option(None, "--data-dir", "-D"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show databases and targets with cursor and schedule state."""
    from cdc_spine.cli.utils import fail
    from cdc_spine.ops.registry import get_status

    result = get_status(make_context(data_dir))
    if not result.success:
        fail(result)
    registry = result.data

    if json_out:
        typer.echo(json.dumps(registry.to_dict(), indent=2))
        return

    console.print(f"[bold]Registry[/bold] {registry.path}")
    if registry.pending_reload:
        console.print("[yellow]Reload pending[/yellow]")
    if not registry.databases:
        console.print("[dim]No databases registered.[/dim]")
        return
    for database in registry.databases:
        title = f"{database.name} ({database.engine} {database.location})"
        if database.targets:
            rows = [
                {
                    "target": t.target,
                    "enabled": t.enabled,
                    "cursor": t.cursor,
                    "interval": f"{t.interval_seconds}s",
                    "last_checked": t.last_checked,
                    "next_due": "now" if t.due else t.next_due,
                }
                for t in database.targets
            ]
            print_table(rows, title=title)
        else:
            console.print(f"[bold]{title}[/bold] [dim]no targets[/dim]")


@app.command("reload")
def reload(
    data_dir: str | None = typer.Option(None, "--data-dir", "-D"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Ask a running poller to reload the registry."""
    from cdc_spine.ops.registry import request_reload

    result = request_reload(make_context(data_dir))
    output_result(result, as_json=json_out, title="Reload Requested")


# ── Poller ───────────────────────────────────────────────────────────────


async def _serve(engine, supervisor) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, engine.request_stop)
    sighup = getattr(signal, "SIGHUP", None)
    if sighup is not None:
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sighup, supervisor.request_reload)
    await engine.run_forever()


@app.command("run")
def run(
    data_dir: str | None = typer.Option(None, "--data-dir", "-D", help="Storage path"),
    once: bool = typer.Option(False, "--once", help="Run a single cycle and exit"),
    sink: str | None = typer.Option(None, "--sink", help="jsonl | log"),
    tick: float | None = typer.Option(None, "--tick", help="Max seconds between cycles"),
    fetch_timeout: float | None = typer.Option(None, "--fetch-timeout"),
    log_level: str | None = typer.Option(None, "--log-level"),
    json_logs: bool | None = typer.Option(None, "--json-logs/--console-logs"),
) -> None:
    """Start the poller (SIGHUP reloads, SIGINT/SIGTERM stop cleanly)."""
    from pydantic import ValidationError

    from cdc_spine.core.errors import ConfigCorruptError, ConfigError, ConfigNotFoundError
    from cdc_spine.core.logging import configure_logging
    from cdc_spine.core.store import ConfigStore
    from cdc_spine.scheduling.engine import PollEngine
    from cdc_spine.scheduling.supervisor import ConfigReloadSupervisor
    from cdc_spine.sinks import create_sink

    try:
        settings = load_settings(
            data_dir,
            sink=sink,
            tick_seconds=tick,
            fetch_timeout_seconds=fetch_timeout,
            log_level=log_level,
            log_json=json_logs,
        )
    except ValidationError as exc:
        err_console.print(f"[bold red]Invalid settings[/bold red]:\n{describe_validation_error(exc)}")
        raise typer.Exit(code=EXIT_STARTUP_ERROR) from exc
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    store = ConfigStore(settings.data_dir, settings.registry_file)
    try:
        capture_sink = create_sink(settings.sink, settings.capture_dir)
    except ConfigError as exc:
        err_console.print(f"[bold red]Error[/bold red]: {exc.message}")
        raise typer.Exit(code=1) from exc

    engine = PollEngine(store, capture_sink, settings=settings)
    try:
        engine.start()
    except (ConfigNotFoundError, ConfigCorruptError) as exc:
        err_console.print(f"[bold red]Error[/bold red]: {exc.message}")
        if isinstance(exc, ConfigNotFoundError):
            err_console.print("Run [bold]cdc-spine init[/bold] first.")
        raise typer.Exit(code=EXIT_STARTUP_ERROR) from exc

    try:
        if once:
            report = asyncio.run(engine.run_cycle())
            engine.request_stop()
            if report.error:
                err_console.print(f"[bold red]Error[/bold red]: {report.error}")
                raise typer.Exit(code=1)
            if report.results:
                print_table([r.to_dict() for r in report.results], title="Cycle")
            elif report.reloaded:
                console.print("[dim]Registry reloaded.[/dim]")
            else:
                console.print("[dim]No targets due.[/dim]")
        else:
            supervisor = ConfigReloadSupervisor(store, on_request=engine.wake)
            asyncio.run(_serve(engine, supervisor))
    finally:
        capture_sink.close()


# ── Sub-command registration ─────────────────────────────────────────────

from cdc_spine.cli.database import app as database_app  # noqa: E402
from cdc_spine.cli.target import app as target_app  # noqa: E402

app.add_typer(database_app, name="database", help="Source database registration.")
app.add_typer(target_app, name="target", help="Target discovery and configuration.")
