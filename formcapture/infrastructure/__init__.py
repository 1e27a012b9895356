"""
Infrastructure package for formcapture.

Centralizes database connectivity concerns (connection setup, pooling).
Keep this layer focused on I/O and resource management, decoupled from
the record-store query logic.
"""

from formcapture.infrastructure.db_factory import ConnectionPool, connect

__all__ = [
    "ConnectionPool",
    "connect",
]
