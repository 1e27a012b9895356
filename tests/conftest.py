"""
Pytest configuration for formcapture.

Provides fixtures for:
- Settings pointing at a per-test temporary data directory
- Record store lifecycle management
- Small seeded datasets with deterministic timestamps
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from formcapture.config import Settings, get_settings
from formcapture.store.record_store import RecordStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

SEED_ROWS = [
    {"username": "alice", "email": "alice@example.com", "provider": "google", "action": "login"},
    {"username": "bob", "name": "Bob Builder", "phone": "555-0101", "action": "register"},
    {"username": "alice", "password": "Secr3t!", "provider": "facebook", "action": "social_login"},
    {"email": "carol@Example.org", "userAgent": "Mozilla/5.0 (X11)", "action": "login"},
]


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Generator[None, None, None]:
    """Ensure every test sees a fresh `get_settings()` reading."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def test_settings(data_dir: Path) -> Settings:
    """
    Settings fixture with test-specific overrides.
    """
    return Settings(
        data_dir=data_dir,
        db_filename="test_records.db",
        db_pool_size=4,
        db_busy_timeout_ms=10_000,
        db_init_attempts=1,
        log_level="DEBUG",
    )


@pytest.fixture
def store(test_settings: Settings) -> Generator[RecordStore, None, None]:
    """
    Provide an initialized record store backed by a temporary file.
    """
    record_store = RecordStore.from_settings(test_settings)
    record_store.initialize()
    try:
        yield record_store
    finally:
        record_store.close()


@pytest.fixture
def seeded_store(store: RecordStore) -> RecordStore:
    """
    Seed SEED_ROWS one minute apart, oldest first.

    Resulting ids are 1..4; id 4 (carol) is the most recent.
    """
    for offset, row in enumerate(SEED_ROWS):
        store.insert({**row, "timestamp": BASE_TIME + timedelta(minutes=offset)})
    return store

