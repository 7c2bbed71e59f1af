"""
Root-level conftest for all tests.

Settings are read lazily, but the JSON log formatter is chosen at import
time, so plain text logs are forced here before any clubhouse module loads.
"""
import os

if not os.getenv("JSON_LOGS"):
    os.environ["JSON_LOGS"] = "false"

import pytest

from clubhouse.main.config import reset_settings


@pytest.fixture(autouse=True)
def reset_settings_after_test():
    """Reset settings after each test to prevent state leakage."""
    yield
    reset_settings()
