"""Configuration reload trigger.

``ConfigReloadSupervisor`` is the only thing configuration tooling needs to
tell a running poller "the registry changed". It sets the durable
``pending_reload`` flag; the engine consumes it at the start of its next
cycle and swaps its working copy. Because the flag lives in the registry
file, a reload requested from another process (``cdc-spine reload``) or
before the poller starts is never lost.
"""

from __future__ import annotations

from collections.abc import Callable

from cdc_spine.core.logging import get_logger
from cdc_spine.core.store import ConfigStore

logger = get_logger(__name__)


class ConfigReloadSupervisor:
    """Requests a clean reload of the poll engine's working registry."""

    def __init__(self, store: ConfigStore, on_request: Callable[[], None] | None = None):
        """
        Args:
            store: Registry holding the durable reload flag
            on_request: Called after the flag is set (e.g. ``engine.wake``)
        """
        self.store = store
        self._on_request = on_request

    def request_reload(self) -> None:
        """Mark a reload as pending; persisted before this returns."""
        self.store.mark_reload_pending()
        if self._on_request is not None:
            self._on_request()

    def is_pending(self) -> bool:
        return self.store.load().pending_reload


__all__ = ["ConfigReloadSupervisor"]
