"""Shared test fixtures."""

import pytest

from fleet_console.config import get_settings
from fleet_console.logging.config import get_logging_config
from fleet_console.logging.context import clear_context


@pytest.fixture(autouse=True)
def _clear_environment(monkeypatch):
    """Clear environment variables that affect settings."""
    env_vars_to_clear = [
        "FLEET_CONSOLE_SERVICE_NAME",
        "FLEET_CONSOLE_ENVIRONMENT",
        "FLEET_CONSOLE_API_BASE_URL",
        "FLEET_CONSOLE_SOCKET_URL",
        "FLEET_CONSOLE_TOKEN_PATH",
        "FLEET_CONSOLE_REQUEST_TIMEOUT_SECONDS",
        "FLEET_CONSOLE_READ_RETRY_TOTAL",
        "FLEET_CONSOLE_RECONNECTION_ATTEMPTS",
        "FLEET_CONSOLE_RECONNECTION_DELAY_SECONDS",
        "FLEET_CONSOLE_HISTORY_LIMIT",
        "FLEET_CONSOLE_LOG_LEVEL",
        "FLEET_CONSOLE_LOG_FORMAT",
        "FLEET_CONSOLE_USE_COLORS",
        "FLEET_CONSOLE_INCLUDE_LOCATION",
        "FLEET_CONSOLE_TRANSPORT_LOG_LEVEL",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    get_logging_config.cache_clear()
    yield
    get_settings.cache_clear()
    get_logging_config.cache_clear()
    clear_context()
