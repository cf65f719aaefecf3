"""Source connectors (PostgreSQL, SQLite) and the connector factory."""

from cdc_spine.connectors.postgresql import PostgreSQLConnector
from cdc_spine.connectors.protocol import (
    DEFAULT_ID_COLUMN,
    ColumnInfo,
    FetchResult,
    SourceConnector,
)
from cdc_spine.connectors.registry import (
    ConnectorRegistry,
    connector_registry,
    create_connector,
)
from cdc_spine.connectors.sqlite import SQLiteConnector

__all__ = [
    "DEFAULT_ID_COLUMN",
    "ColumnInfo",
    "FetchResult",
    "SourceConnector",
    "PostgreSQLConnector",
    "SQLiteConnector",
    "ConnectorRegistry",
    "connector_registry",
    "create_connector",
]
