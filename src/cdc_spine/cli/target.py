"""
CLI: ``cdc-spine target`` -- discover and configure polled tables.
"""

from __future__ import annotations

import typer

from cdc_spine.cli.utils import make_context, output_result

app = typer.Typer(no_args_is_help=True)


@app.command("discover")
def discover(
    database: str = typer.Argument(..., help="Registered database name"),
    enable: bool = typer.Option(True, "--enable/--disable", help="State of new targets"),
    table: list[str] | None = typer.Option(None, "--table", "-t", help="Limit to these tables"),
    data_dir: str | None = typer.Option(None, "--data-dir", "-D"),
    dry_run: bool = typer.Option(False, "--dry-run"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List and describe the database's tables; register new ones as targets."""
    from cdc_spine.ops.requests import DiscoverTargetsRequest
    from cdc_spine.ops.targets import discover_targets

    ctx = make_context(data_dir, dry_run=dry_run)
    request = DiscoverTargetsRequest(database=database, enable=enable, tables=table or None)
    result = discover_targets(ctx, request)
    output_result(result, as_json=json_out, title=f"Discovery: {database}")


@app.command("enable")
def enable(
    database: str = typer.Argument(...),
    target: str = typer.Argument(...),
    data_dir: str | None = typer.Option(None, "--data-dir", "-D"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Resume polling a target."""
    from cdc_spine.ops.targets import set_target_enabled

    result = set_target_enabled(make_context(data_dir), database, target, True)
    output_result(result, as_json=json_out, title="Target Enabled")


@app.command("disable")
def disable(
    database: str = typer.Argument(...),
    target: str = typer.Argument(...),
    data_dir: str | None = typer.Option(None, "--data-dir", "-D"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Stop polling a target (its cursor is kept)."""
    from cdc_spine.ops.targets import set_target_enabled

    result = set_target_enabled(make_context(data_dir), database, target, False)
    output_result(result, as_json=json_out, title="Target Disabled")


@app.command("interval")
def interval(
    database: str = typer.Argument(...),
    target: str = typer.Argument(...),
    seconds: int | None = typer.Argument(None, help="Poll interval in seconds"),
    inherit: bool = typer.Option(False, "--inherit", help="Use the database default"),
    data_dir: str | None = typer.Option(None, "--data-dir", "-D"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Override a target's poll interval."""
    from cdc_spine.ops.requests import TargetIntervalRequest
    from cdc_spine.ops.targets import set_target_interval

    if seconds is None and not inherit:
        raise typer.BadParameter("Give SECONDS or --inherit")
    request = TargetIntervalRequest(
        database=database, target=target, seconds=None if inherit else seconds
    )
    result = set_target_interval(make_context(data_dir), request)
    output_result(result, as_json=json_out, title="Target Interval")
