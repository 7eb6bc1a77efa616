"""Tests for logging configuration."""

import pytest

from fleet_console.logging.config import LogFormat, LoggingConfig, LogLevel, get_logging_config


class TestLoggingConfig:
    def test_defaults(self):
        config = LoggingConfig()
        assert config.log_level == LogLevel.INFO
        assert config.log_format == LogFormat.HUMAN
        assert config.service_name == "fleet-console"
        assert config.include_location is False
        assert config.transport_log_level == LogLevel.WARNING

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("FLEET_CONSOLE_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("FLEET_CONSOLE_LOG_FORMAT", "json")
        config = LoggingConfig()
        assert config.log_level == LogLevel.DEBUG
        assert config.log_format == LogFormat.JSON

    def test_invalid_format(self, monkeypatch):
        monkeypatch.setenv("FLEET_CONSOLE_LOG_FORMAT", "xml")
        with pytest.raises(ValueError):
            LoggingConfig()

    def test_cached(self):
        assert get_logging_config() is get_logging_config()
