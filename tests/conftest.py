import os
from datetime import datetime, timezone

import pytest


# List of environment variables that may be modified by tests
_ENV_VARS_TO_ISOLATE = [
    "FLAG_STORE_BACKEND",
    "FLAG_STORE_PATH",
    "FLAG_REFRESH_INTERVAL_SECONDS",
    "LOG_LEVEL",
    "LOG_JSON",
    "SERVICE_NAME",
    "ENVIRONMENT",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture(autouse=True)
def singleton_isolation():
    """Drop cached settings and the process-wide flag manager after each test."""
    from flagengine.core.config import reset_settings
    from flagengine.core.flags.manager import reset_flag_manager

    try:
        yield
    finally:
        reset_settings()
        reset_flag_manager()


@pytest.fixture()
def fixed_now() -> datetime:
    return datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def flag_definition():
    """Factory for valid raw flag definitions in the persisted camelCase form."""

    def _make(**overrides):
        data = {
            "key": "dark-mode",
            "name": "Dark Mode",
            "description": "Dark theme for the dashboard",
            "type": "boolean",
            "value": True,
            "defaultValue": False,
            "isActive": True,
            "rolloutPercentage": 100,
            "conditions": [],
        }
        data.update(overrides)
        return data

    return _make
