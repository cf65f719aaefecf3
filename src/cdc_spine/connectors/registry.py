"""Connector registry and factory.

Manifesto:
    The engine should never hard-code connector class names. The registry
    maps engine strings to connector classes and ``create_connector()``
    builds a configured instance from a database's ``ConnectionCoordinates``.

Features:
    - ``ConnectorRegistry`` with pre-registered defaults
    - ``register()`` for custom / third-party connectors
    - ``create_connector()`` factory: coordinates → unconnected connector

Tags:
    connector, registry, factory
"""

from __future__ import annotations

from typing import Any

from cdc_spine.core.errors import ConfigError
from cdc_spine.core.models import ConnectionCoordinates

from .postgresql import PostgreSQLConnector
from .protocol import SourceConnector
from .sqlite import SQLiteConnector


def _build_postgresql(coordinates: ConnectionCoordinates, **options: Any) -> SourceConnector:
    return PostgreSQLConnector(
        host=coordinates.host,
        port=coordinates.port,
        database=coordinates.database,
        user=coordinates.user or None,
        password=coordinates.password or None,
        **options,
    )


def _build_sqlite(coordinates: ConnectionCoordinates, **options: Any) -> SourceConnector:
    options.pop("connect_timeout", None)
    return SQLiteConnector(coordinates.database, **options)


class ConnectorRegistry:
    """
    Registry of connector factories keyed by engine name.

    Pre-registered connectors:
    - ``postgresql`` / ``postgres``: :class:`PostgreSQLConnector`
    - ``sqlite``: :class:`SQLiteConnector`
    """

    def __init__(self):
        self._factories: dict[str, Any] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self._factories["postgresql"] = _build_postgresql
        self._factories["postgres"] = _build_postgresql  # Alias
        self._factories["sqlite"] = _build_sqlite

    def register(self, name: str, factory: Any) -> None:
        """Register ``factory(coordinates, **options) -> SourceConnector``."""
        self._factories[name.lower()] = factory

    def create(
        self, name: str, coordinates: ConnectionCoordinates, **options: Any
    ) -> SourceConnector:
        name = name.lower()
        if name not in self._factories:
            raise ConfigError(f"Unknown connector engine: {name}")
        return self._factories[name](coordinates, **options)

    def list_engines(self) -> list[str]:
        return sorted(self._factories.keys())


# Global registry
connector_registry = ConnectorRegistry()


def create_connector(coordinates: ConnectionCoordinates, **options: Any) -> SourceConnector:
    """
    Build an (unconnected) connector for a database's coordinates.

    Usage:
        connector = create_connector(entry.coordinates, batch_size=500)
    """
    return connector_registry.create(coordinates.engine.value, coordinates, **options)


__all__ = [
    "ConnectorRegistry",
    "connector_registry",
    "create_connector",
]
