"""
Test configuration and fixtures.

This module sets up test environment and provides shared fixtures for all tests.
"""

import os

import pytest

# Tests run against an in-memory SQLite database instead of the PostgreSQL container
# Must be set BEFORE any imports of database.connection or shared.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["TIMEZONE"] = "Asia/Singapore"
os.environ["MODIFICATION_CUTOFF_HOURS"] = "24"


@pytest.fixture(autouse=True)
def clear_event_subscribers():
    """Drop booking event subscribers registered by a test."""
    yield
    from scheduling.events import clear_subscribers

    clear_subscribers()
