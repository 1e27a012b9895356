"""
Database connection factory utilities for formcapture.

Provides a bounded, thread-safe pool of SQLite connections to the single
backing database file, built on SQLAlchemy's `QueuePool`. Queries still run on
the raw `sqlite3` connections; the pool only handles checkout, checkin, and
rollback-on-return.

Writers are serialized by SQLite's own file locking (`busy_timeout`); the pool
only bounds how many handles are open at once.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy.pool import QueuePool

from formcapture.utils.logging import get_logger

log = get_logger(__name__)


def _casefold(value: Optional[str]) -> Optional[str]:
    """SQL function `casefold(x)`: Unicode-aware lowercasing for search."""
    if value is None:
        return None
    return str(value).casefold()


def connect(db_path: Path | str, busy_timeout_ms: int = 5_000) -> sqlite3.Connection:
    """
    Open one configured SQLite connection.

    Parameters
    ----------
    db_path : Path | str
        Database file; created by SQLite if it does not exist.
    busy_timeout_ms : int
        How long a statement waits on another writer's lock before failing.

    Returns
    -------
    sqlite3.Connection
        Connection in autocommit mode (transactions are opened explicitly),
        returning `sqlite3.Row` rows, with the `casefold` SQL function registered.
    """
    conn = sqlite3.connect(
        str(db_path),
        timeout=busy_timeout_ms / 1000,
        isolation_level=None,
        check_same_thread=False,
    )
    try:
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
        conn.create_function("casefold", 1, _casefold, deterministic=True)
    except BaseException:
        conn.close()
        raise
    return conn


class ConnectionPool:
    """
    Bounded pool of SQLite connections to one database file.

    Connections are opened lazily up to `max_size`; callers beyond that block
    for up to `timeout` seconds until a connection is returned, after which
    `sqlalchemy.exc.TimeoutError` is raised.
    """

    def __init__(
        self,
        db_path: Path | str,
        max_size: int = 4,
        busy_timeout_ms: int = 5_000,
        timeout: float = 30.0,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.db_path = Path(db_path)
        self.max_size = max_size
        self.busy_timeout_ms = busy_timeout_ms
        self._closed = False
        self._pool = QueuePool(
            lambda: connect(self.db_path, self.busy_timeout_ms),
            pool_size=max_size,
            max_overflow=0,
            timeout=timeout,
            reset_on_return="rollback",
        )

    @property
    def size(self) -> int:
        """Number of connections currently open (idle or in use)."""
        return self._pool.checkedin() + self._pool.checkedout()

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for obtaining a connection from the pool.

        The connection goes back to the pool on every exit path; any
        transaction the caller left open is rolled back on return.

        Example
        -------
            pool = ConnectionPool("data/user_data.db")
            with pool.connection() as conn:
                conn.execute("SELECT 1")
        """
        if self._closed:
            raise sqlite3.ProgrammingError("connection pool is closed")
        proxied = self._pool.connect()
        try:
            yield proxied.dbapi_connection
        finally:
            proxied.close()
            if self._closed:
                # Returned after close(): drop it instead of keeping it idle.
                self._pool.dispose()

    def close(self) -> None:
        """
        Close idle connections and refuse new acquisitions.

        Connections still in use are closed when their holders return them.
        """
        self._closed = True
        self._pool.dispose()
        log.debug("Connection pool closed", extra={"db_file": self.db_path.name})


__all__ = [
    "ConnectionPool",
    "connect",
]
