"""
CLI: ``cdc-spine database`` -- register source databases.
"""

from __future__ import annotations

import typer

from cdc_spine.cli.utils import make_context, output_result

app = typer.Typer(no_args_is_help=True)


@app.command("add")
def add_database(
    name: str = typer.Argument(..., help="Registry name of the database"),
    engine: str = typer.Option("postgresql", "--engine", "-e", help="postgresql | sqlite"),
    host: str = typer.Option("localhost", "--host"),
    port: int = typer.Option(5432, "--port"),
    user: str = typer.Option("", "--user", "-u"),
    password: str = typer.Option("", "--password", envvar="CDC_SOURCE_PASSWORD"),
    dbname: str = typer.Option("", "--dbname", help="Database name (file path for SQLite)"),
    interval: int = typer.Option(60, "--interval", "-i", help="Default poll interval (s)"),
    data_dir: str | None = typer.Option(None, "--data-dir", "-D"),
    dry_run: bool = typer.Option(False, "--dry-run"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Register a database, or update its coordinates and interval."""
    from cdc_spine.ops.databases import add_database as _add
    from cdc_spine.ops.requests import AddDatabaseRequest

    ctx = make_context(data_dir, dry_run=dry_run)
    request = AddDatabaseRequest(
        name=name,
        engine=engine,
        host=host,
        port=port,
        user=user,
        password=password,
        database=dbname or name,
        poll_interval_seconds=interval,
    )
    result = _add(ctx, request)
    output_result(result, as_json=json_out, title=f"Database: {name}")
