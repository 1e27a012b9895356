"""
Domain package for formcapture.

Exports the record schema, the insert and delete payloads, aggregate results,
and the error taxonomy shared by the store, the API, and the CLI.
"""

from formcapture.domain.errors import FormCaptureError, InvalidInput, StorageUnavailable
from formcapture.domain.models import DeleteKey, Record, RecordFields, StoreStats

__all__ = [
    "DeleteKey",
    "Record",
    "RecordFields",
    "StoreStats",
    "FormCaptureError",
    "InvalidInput",
    "StorageUnavailable",
]
