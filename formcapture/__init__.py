"""
formcapture - persistence and query service for captured form submissions.

This package stores submissions posted by an external capture front end in a
single-file SQLite database and exposes them through:

- A record store with insert, list, search, filter, stats, and delete operations
- A FastAPI ingestion/query API
- A typer CLI with rich table output and CSV/JSON export
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from formcapture.config import Settings, get_settings
from formcapture.domain.errors import FormCaptureError, InvalidInput, StorageUnavailable
from formcapture.domain.models import DeleteKey, Record, RecordFields, StoreStats
from formcapture.store.record_store import RecordStore
from formcapture.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Record store
    "RecordStore",
    "Record",
    "RecordFields",
    "DeleteKey",
    "StoreStats",
    # Errors
    "FormCaptureError",
    "InvalidInput",
    "StorageUnavailable",
    # Logging
    "configure_logging",
    "get_logger",
]
