"""
Operations layer -- registry management for the CLI and embedding code.

- All functions accept ``OperationContext`` as first argument
- All functions return ``OperationResult[T]`` (never raise on ``CdcError``)
- All functions are transport-agnostic (no Typer knowledge)

Usage::

    from cdc_spine.core.store import ConfigStore
    from cdc_spine.ops import OperationContext
    from cdc_spine.ops.registry import initialize_registry

    ctx = OperationContext(store=ConfigStore("/var/lib/cdc-spine"))
    result = initialize_registry(ctx)
    assert result.success
"""

from cdc_spine.ops.context import OperationContext
from cdc_spine.ops.result import OperationError, OperationResult

__all__ = [
    "OperationContext",
    "OperationError",
    "OperationResult",
]
