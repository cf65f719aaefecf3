"""cdc-spine command-line interface (Typer + Rich)."""

from cdc_spine.cli.app import app

__all__ = ["app"]
