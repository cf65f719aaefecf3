"""Shared fixtures for cdc_spine.ops tests."""

import pytest

from cdc_spine.ops.context import OperationContext
from tests._support.fakes import FakeConnector


@pytest.fixture()
def sources() -> dict[str, FakeConnector]:
    """Fake connectors keyed by ``coordinates.database``."""
    return {
        "sales": FakeConnector(
            {
                "orders": [{"id": 1, "customer": "ada", "total": 10.5}],
                "refunds": [],
                "audit_log": [{"event_id": 7, "kind": "login"}],
            }
        )
    }


@pytest.fixture()
def ctx(store, sources) -> OperationContext:
    """Default OperationContext wired to the fake connectors."""
    return OperationContext(
        store=store,
        connector_factory=lambda coordinates: sources[coordinates.database],
        caller="test",
    )


@pytest.fixture()
def dry_ctx(store, sources) -> OperationContext:
    """OperationContext with dry_run=True."""
    return OperationContext(
        store=store,
        connector_factory=lambda coordinates: sources[coordinates.database],
        caller="test",
        dry_run=True,
    )
