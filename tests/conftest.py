"""Shared pytest fixtures for the test suite."""

import logging
import sqlite3
from datetime import UTC, datetime

import pytest

from soilmon.lib.alerts import AlertDebouncer, AlertEvent
from soilmon.lib.config.testing import set_settings, use_settings
from soilmon.lib.db.connection import IDX_MOISTURE_SENSOR, INIT_MOISTURE_TABLE


@pytest.fixture(autouse=True)
def configure_caplog(caplog):
    """Ensure caplog captures logs from the soilmon namespace."""
    caplog.set_level(logging.INFO, logger="soilmon")


@pytest.fixture(autouse=True)
def reset_settings():
    """Reset global settings after each test to avoid cross-test pollution."""
    yield
    set_settings(None)


@pytest.fixture
def db_file(tmp_path):
    return tmp_path / "test.sqlite3"


@pytest.fixture
def archive_dir(tmp_path):
    return tmp_path / "archive"


@pytest.fixture(autouse=True)
def test_db(db_file, archive_dir):
    """Use a temporary SQLite database and local archive for tests.

    This creates a fresh database with the full schema for each test,
    providing isolation while allowing real database operations.
    """
    use_settings(
        db_path=str(db_file),
        archive_local_path=str(archive_dir),
        archive_initial_backoff_sec=0,
    )

    # Initialize the schema using sync sqlite3 (simpler for setup)
    conn = sqlite3.connect(str(db_file))
    conn.execute(INIT_MOISTURE_TABLE)
    conn.execute(IDX_MOISTURE_SENSOR)
    conn.commit()
    conn.close()

    yield


@pytest.fixture
def frozen_time():
    """Return a fixed datetime for deterministic tests."""
    return datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def debouncer():
    """A sustained-low debouncer with the default threshold and delay."""
    return AlertDebouncer()


@pytest.fixture
def alert_events(debouncer):
    """Capture alert events fired by the debouncer fixture.

    Returns:
        A list that will be populated with AlertEvent objects as they fire.
    """
    events: list[AlertEvent] = []
    debouncer.register_callback(events.append)
    return events
