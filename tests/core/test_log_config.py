"""Tests for structlog configuration and scoped log context."""

import logging

import pytest
import structlog

from cdc_spine.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


@pytest.fixture
def restore_logging():
    yield
    structlog.reset_defaults()
    clear_context()
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.root.setLevel(logging.WARNING)


class TestConfigureLogging:
    def test_json_lines_on_stderr(self, restore_logging, capsys):
        configure_logging(level="INFO", json_format=True, service="cdc-test")

        get_logger("cdc.test.json").info("target_polled", database="sales", rows=2)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        assert '"event": "target_polled"' in line
        assert '"service.name": "cdc-test"' in line
        assert '"log.level": "info"' in line
        assert '"database": "sales"' in line

    def test_level_filters_lower_events(self, restore_logging, capsys):
        configure_logging(level="WARNING", json_format=True)

        get_logger("cdc.test.level").info("quiet")

        assert "quiet" not in capsys.readouterr().err
        assert logging.getLogger().level == logging.WARNING

    def test_context_is_merged(self, restore_logging, capsys):
        configure_logging(level="INFO", json_format=True)

        with LogContext(database="hr"):
            get_logger("cdc.test.ctx").warning("database_backoff")

        assert '"database": "hr"' in capsys.readouterr().err


class TestLogContext:
    def test_binds_and_unbinds(self):
        clear_context()
        with LogContext(database="sales", target="orders"):
            assert structlog.contextvars.get_contextvars() == {
                "database": "sales",
                "target": "orders",
            }
        assert "database" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_async_form(self):
        async with LogContext(target="orders"):
            assert structlog.contextvars.get_contextvars()["target"] == "orders"
        assert "target" not in structlog.contextvars.get_contextvars()

    def test_clear_context(self):
        bind_context(cycle=3)
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
