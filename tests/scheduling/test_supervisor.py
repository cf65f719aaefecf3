"""Tests for ConfigReloadSupervisor."""

from cdc_spine.core.store import ConfigStore
from cdc_spine.scheduling import ConfigReloadSupervisor


class TestConfigReloadSupervisor:
    def test_request_reload_sets_durable_flag(self, store):
        supervisor = ConfigReloadSupervisor(store)
        assert supervisor.is_pending() is False

        supervisor.request_reload()

        assert supervisor.is_pending() is True
        assert ConfigStore(store.base_path).load().pending_reload is True

    def test_flag_is_consumed_once(self, store):
        ConfigReloadSupervisor(store).request_reload()
        assert store.consume_reload_flag() is True
        assert store.consume_reload_flag() is False

    def test_repeated_requests_collapse(self, store):
        supervisor = ConfigReloadSupervisor(store)
        supervisor.request_reload()
        supervisor.request_reload()
        assert store.consume_reload_flag() is True
        assert supervisor.is_pending() is False

    def test_on_request_called_after_flag_persisted(self, store):
        seen: list[bool] = []
        supervisor = ConfigReloadSupervisor(
            store, on_request=lambda: seen.append(store.load().pending_reload)
        )
        supervisor.request_reload()
        assert seen == [True]
