"""Tests for Hookshot structured logging."""

import json
import logging
from datetime import datetime

import structlog

from hookshot.logging import (
    bind_context,
    clear_context,
    configure_from_settings,
    configure_logging,
    get_logger,
    unbind_context,
)
from hookshot.models import MaintenanceResult
from hookshot.workers import MaintenanceScheduler, MaintenanceTask


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_configure_with_defaults(self):
        """Should configure with INFO level and JSON format by default."""
        configure_logging()
        logger = get_logger("test")
        logger.info("test message")
        assert logging.getLogger().level == logging.INFO

    def test_configure_with_debug_level(self):
        configure_logging(level="DEBUG")
        logger = get_logger("test")
        logger.debug("debug message")
        assert logging.getLogger().level == logging.DEBUG

    def test_configure_with_text_format(self):
        """Should accept text format for development."""
        configure_logging(level="INFO", format="text")
        logger = get_logger("test")
        logger.info("text format message")

    def test_unknown_level_falls_back_to_info(self):
        configure_logging(level="LOUD")
        assert logging.getLogger().level == logging.INFO

    def test_http_client_loggers_quieted(self):
        """httpx logs every request at INFO; it should be raised to WARNING."""
        configure_logging(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_single_root_handler(self):
        """Should not stack handlers across repeated configuration."""
        configure_logging(level="INFO")
        configure_logging(level="DEBUG")
        assert len(logging.getLogger().handlers) == 1

    def test_configure_from_settings(self):
        configure_from_settings()
        get_logger("test").info("configured from settings")


class TestGetLogger:
    """Tests for logger creation."""

    def test_get_logger_with_name(self):
        logger = get_logger("my_module")
        assert logger is not None

    def test_loggers_are_callable(self):
        """Should return callable logger instances."""
        logger = get_logger("test")
        assert callable(getattr(logger, "info", None))
        assert callable(getattr(logger, "exception", None))


class TestContextBinding:
    """Tests for context variable binding."""

    def setup_method(self):
        """Clear context before each test."""
        clear_context()

    def teardown_method(self):
        """Clear context after each test."""
        clear_context()

    def test_bind_context(self):
        bind_context(tenant_id="ws_123", event_id="evt_abc")
        assert structlog.contextvars.get_contextvars() == {
            "tenant_id": "ws_123",
            "event_id": "evt_abc",
        }

    def test_clear_context(self):
        bind_context(tenant_id="ws_123")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_unbind_specific_context(self):
        """Should unbind specific context keys."""
        bind_context(tenant_id="ws_123", temp="value")
        unbind_context("temp")
        assert structlog.contextvars.get_contextvars() == {"tenant_id": "ws_123"}


class TestLoggerUsage:
    """Tests for logger usage patterns."""

    def test_log_with_kwargs(self):
        configure_logging()
        logger = get_logger("test")
        logger.info("delivery finished", subscription_id="whk_1", attempts=2, success=True)

    def test_stdlib_positional_args(self):
        """Library modules log through stdlib logging with %-style args."""
        configure_logging()
        logging.getLogger("hookshot.test").info("Delivered %s in %dms", "dlv_1", 42)

    async def test_library_records_rendered_as_json(self, capsys):
        """Records from library modules carry their logger name and bound context."""

        async def purge(now: datetime) -> MaintenanceResult:
            return MaintenanceResult(task="purge", started_at=now, entries_removed=3)

        scheduler = MaintenanceScheduler(
            tasks=[MaintenanceTask(name="purge", interval_seconds=60, fn=purge)]
        )
        configure_logging(level="INFO", format="json")
        bind_context(tenant_id="ws_1")
        try:
            await scheduler._run(scheduler.tasks[0])
        finally:
            clear_context()

        lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
        record = json.loads(lines[-1])
        assert record["logger"] == "hookshot.workers.scheduler"
        assert record["level"] == "info"
        assert record["tenant_id"] == "ws_1"
        assert record["event"].startswith("Maintenance task purge completed")
        assert "3 entries removed" in record["event"]

    def test_log_with_exception(self):
        configure_logging()
        logger = get_logger("test")

        try:
            raise ValueError("test error")
        except ValueError:
            logger.exception("caught an error")


class TestModuleLevelLogger:
    def test_import_logger(self):
        """Should be able to import pre-configured logger."""
        from hookshot.logging import logger

        assert logger is not None
        logger.info("using module logger")
