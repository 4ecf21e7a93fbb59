"""
Unit tests for logging utilities.
"""

import logging

from vectorcache.utils.logging import (
    ROOT_LOGGER,
    LogContext,
    get_logger,
    set_level,
    setup_logger,
)


class TestLogging:
    """Tests for the package logger helpers."""

    def test_package_loggers_share_root(self):
        logger = get_logger("vectorcache.core.cache")

        assert logger.name == "vectorcache.core.cache"
        assert logger.handlers == []
        assert logging.getLogger(ROOT_LOGGER).handlers

    def test_setup_logger_replaces_handlers(self, tmp_path):
        log_file = tmp_path / "cache.log"
        logger = setup_logger("vectorcache-test", level="DEBUG", log_file=str(log_file))
        setup_logger("vectorcache-test", level="DEBUG", log_file=str(log_file))

        assert len(logger.handlers) == 2
        assert logger.level == logging.DEBUG

        logger.debug("written to file")
        for handler in logger.handlers:
            handler.flush()
        assert "written to file" in log_file.read_text()

        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()

    def test_set_level(self):
        root = get_logger()
        before = root.level
        try:
            set_level("warning")
            assert root.level == logging.WARNING
        finally:
            root.setLevel(before)

    def test_log_context_restores_level(self):
        logger = get_logger()
        before = logger.level

        with LogContext(logger, "ERROR") as scoped:
            assert scoped.level == logging.ERROR
        assert logger.level == before

    def test_rebuild_logs_at_info(self, populated_cache, caplog):
        with caplog.at_level(logging.INFO, logger=ROOT_LOGGER):
            populated_cache.rebuild()

        assert any("Rebuild of 'default_cache' finished" in r.message for r in caplog.records)
