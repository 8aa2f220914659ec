"""
Pytest configuration and shared fixtures.

Environment variables may be provided by .env.test; anything missing falls
back to the test defaults below. Settings are reloaded before app imports.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_chatrelay.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("SECRET_JWT_KEY", "test-secret-key-for-chatrelay")

import pytest  # noqa: E402

# Clear settings cache before any app imports to ensure test env vars are used
from chatrelay.config import get_settings  # noqa: E402
get_settings.cache_clear()
