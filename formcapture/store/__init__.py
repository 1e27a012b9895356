"""
Record store package for formcapture.

Exports the SQLite-backed store that owns every persisted submission.
"""

from formcapture.store.record_store import RecordStore

__all__ = ["RecordStore"]
