"""Allow ``python -m cdc_spine``."""

from cdc_spine.cli.app import app

app()
