"""Tests for trackerkit.utils.logging module."""

import logging

import pytest

import trackerkit.utils.logging as logging_module


@pytest.fixture(autouse=True)
def reset_logger(monkeypatch):
    monkeypatch.delenv("TRACKERKIT_LOG", raising=False)
    monkeypatch.delenv("TRACKERKIT_LOG_FILE", raising=False)
    monkeypatch.delenv("TRACKERKIT_LOG_LEVEL", raising=False)
    logging_module._logger = None
    yield
    package_logger = logging.getLogger(logging_module.LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
    logging_module._logger = None


class TestSetupLogging:
    def test_disabled_by_default(self):
        logger = logging_module.setup_logging()

        assert logger.name == "trackerkit"
        assert all(isinstance(h, logging.NullHandler) for h in logger.handlers)

    def test_enabled_writes_to_file(self, tmp_path, monkeypatch):
        log_file = tmp_path / "logs" / "trackerkit.log"
        monkeypatch.setenv("TRACKERKIT_LOG", "true")
        monkeypatch.setenv("TRACKERKIT_LOG_FILE", str(log_file))
        monkeypatch.setenv("TRACKERKIT_LOG_LEVEL", "debug")

        logging_module.setup_logging()
        logging.getLogger("trackerkit.integrations.client").debug("hello from client")
        for handler in logging.getLogger("trackerkit").handlers:
            handler.flush()

        content = log_file.read_text()
        assert "DEBUG trackerkit.integrations.client: hello from client" in content

    def test_setup_is_idempotent_unless_forced(self, tmp_path, monkeypatch):
        first = logging_module.setup_logging()
        monkeypatch.setenv("TRACKERKIT_LOG", "true")
        monkeypatch.setenv("TRACKERKIT_LOG_FILE", str(tmp_path / "x.log"))

        assert logging_module.setup_logging() is first
        assert all(isinstance(h, logging.NullHandler) for h in first.handlers)

        logging_module.setup_logging(force=True)
        assert any(isinstance(h, logging.FileHandler) for h in first.handlers)

    def test_default_log_file(self):
        assert logging_module.DEFAULT_LOG_FILE.name == ".trackerkit.log"

    def test_get_logger_creates_logger(self):
        assert logging_module.get_logger() is logging_module.setup_logging()
