"""
SQLite-backed record store for captured form submissions.

The store owns the `records` table and every read, write, search, and
aggregate against it. All access goes through a bounded connection pool;
writes run inside `BEGIN IMMEDIATE` transactions so SQLite's own lock
serializes concurrent writers, and every read is a single statement so it
observes one consistent snapshot.

Usage:
    from formcapture.store import RecordStore

    with RecordStore("data/user_data.db") as store:
        record_id = store.insert({"username": "ada", "action": "login"})
        print(store.stats())
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from formcapture.config import Settings, get_settings
from formcapture.domain.errors import InvalidInput, StorageUnavailable
from formcapture.domain.models import (
    SEARCHABLE_FIELDS,
    TEXT_FIELDS,
    DeleteKey,
    Record,
    RecordFields,
    StoreStats,
    format_timestamp,
    utc_now,
)
from formcapture.infrastructure.db_factory import ConnectionPool
from formcapture.utils.logging import get_logger

log = get_logger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT,
        email TEXT,
        name TEXT,
        phone TEXT,
        password TEXT,
        provider TEXT,
        user_agent TEXT,
        action_type TEXT,
        timestamp TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_records_timestamp ON records (timestamp DESC, id DESC)",
    "CREATE INDEX IF NOT EXISTS idx_records_action_type ON records (action_type)",
)

_COLUMNS = ", ".join(("id", *TEXT_FIELDS, "timestamp"))
_ORDER_BY = "ORDER BY timestamp DESC, id DESC"
_INSERT_SQL = (
    f"INSERT INTO records ({', '.join((*TEXT_FIELDS, 'timestamp'))}) "
    f"VALUES ({', '.join('?' * (len(TEXT_FIELDS) + 1))})"
)
_SEARCH_WHERE = " OR ".join(f"instr(casefold({field}), ?) > 0" for field in SEARCHABLE_FIELDS)

FieldsInput = Union[RecordFields, Mapping[str, Any], None]
DeleteKeyInput = Union[DeleteKey, Mapping[str, Any], int]


class RecordStore:
    """
    Durable, queryable holder of captured submission records.

    The store initializes itself lazily on first use; calling `initialize()`
    explicitly at process start surfaces storage problems early.

    Parameters
    ----------
    db_path : Path | str
        Backing database file. Its parent directory is created on initialize.
    pool_size : int
        Maximum number of simultaneously open connections.
    busy_timeout_ms : int
        How long a statement waits for another writer's lock.
    pool_timeout_s : float
        How long a caller waits for a free pooled connection.
    """

    def __init__(
        self,
        db_path: Path | str,
        pool_size: int = 4,
        busy_timeout_ms: int = 5_000,
        pool_timeout_s: float = 30.0,
    ) -> None:
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self.busy_timeout_ms = busy_timeout_ms
        self.pool_timeout_s = pool_timeout_s
        self._pool: Optional[ConnectionPool] = None
        self._init_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RecordStore":
        settings = settings or get_settings()
        return cls(
            settings.db_path,
            pool_size=settings.db_pool_size,
            busy_timeout_ms=settings.db_busy_timeout_ms,
            pool_timeout_s=settings.db_pool_timeout_s,
        )

    # -- lifecycle -------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    def initialize(self) -> None:
        """
        Ensure the data directory, database file, and schema exist.

        Idempotent and safe to call on every process start.

        Raises
        ------
        StorageUnavailable
            If the directory or database cannot be created or opened.
        """
        with self._init_lock:
            if self._pool is not None:
                return

            pool = ConnectionPool(
                self.db_path,
                max_size=self.pool_size,
                busy_timeout_ms=self.busy_timeout_ms,
                timeout=self.pool_timeout_s,
            )
            try:
                with _storage_errors("initialize"):
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                    with pool.connection() as conn:
                        conn.execute("PRAGMA journal_mode = WAL")
                        with _transaction(conn):
                            for statement in _SCHEMA:
                                conn.execute(statement)
            except StorageUnavailable:
                pool.close()
                raise

            self._pool = pool
            log.info("Record store ready", extra={"pool_size": self.pool_size})

    def close(self) -> None:
        """Release all pooled connections. The store reopens lazily if used again."""
        with self._init_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.close()
            log.debug("Record store closed")

    def __enter__(self) -> "RecordStore":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _connection(self, operation: str) -> Generator[sqlite3.Connection, None, None]:
        if self._pool is None:
            self.initialize()
        pool = self._pool
        if pool is None:
            raise StorageUnavailable(operation)
        with _storage_errors(operation):
            with pool.connection() as conn:
                yield conn

    # -- writes ----------------------------------------------------------

    def insert(self, fields: FieldsInput = None) -> int:
        """
        Append one record and return its newly assigned id.

        Every attribute is optional; absent or non-text values are stored as
        NULL. The timestamp defaults to the current UTC time.

        Raises
        ------
        StorageUnavailable
            If the record could not be committed. Nothing is written then.
        """
        fields = _coerce_fields(fields)
        timestamp = fields.timestamp or utc_now()
        params = [getattr(fields, name) for name in TEXT_FIELDS]
        params.append(format_timestamp(timestamp))

        with self._connection("insert") as conn, _transaction(conn):
            cursor = conn.execute(_INSERT_SQL, params)
            record_id = int(cursor.lastrowid)

        log.info(
            f"Record inserted with id {record_id}",
            extra={"record_id": record_id, "action_type": fields.action_type},
        )
        return record_id

    def delete_one(self, key: DeleteKeyInput) -> bool:
        """
        Delete at most one record matching `key`.

        An `id` identifies exactly one record. A `timestamp` + `action_type`
        pair may match several; only the oldest of them (lowest id) is removed.

        Returns
        -------
        bool
            True if a record was deleted, False if nothing matched.

        Raises
        ------
        InvalidInput
            If the key carries neither an id nor a timestamp.
        """
        key = _coerce_delete_key(key)
        if key.id is not None:
            sql = "DELETE FROM records WHERE id = ?"
            params: Sequence[Any] = (key.id,)
        elif key.timestamp is not None:
            sql = (
                "DELETE FROM records WHERE id = ("
                "SELECT id FROM records WHERE timestamp = ? AND action_type IS ? "
                "ORDER BY id LIMIT 1)"
            )
            params = (format_timestamp(key.timestamp), key.action_type)
        else:
            raise InvalidInput("delete key needs an id or a timestamp")

        with self._connection("delete_one") as conn, _transaction(conn):
            deleted = conn.execute(sql, params).rowcount > 0

        log.info("Delete request processed", extra={"deleted": deleted, "record_id": key.id})
        return deleted

    def clear_all(self) -> int:
        """
        Delete every record in one transaction and return how many there were.

        Ids are not reset; new records continue the sequence.
        """
        with self._connection("clear_all") as conn, _transaction(conn):
            count = conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]
            conn.execute("DELETE FROM records")

        log.info(f"Cleared {count} records", extra={"deleted": count})
        return int(count)

    # -- reads -----------------------------------------------------------

    def _select(self, operation: str, where: str = "", params: Sequence[Any] = ()) -> List[Record]:
        sql = f"SELECT {_COLUMNS} FROM records {where} {_ORDER_BY}"
        with self._connection(operation) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [Record.from_row(row) for row in rows]

    def get(self, record_id: int) -> Optional[Record]:
        """Return the record with `record_id`, or None."""
        with self._connection("get") as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM records WHERE id = ?", (record_id,)
            ).fetchone()
        return Record.from_row(row) if row is not None else None

    def list_all(self) -> List[Record]:
        """Every record, most recent first (ties broken by descending id)."""
        return self._select("list_all")

    def search(self, term: Optional[str] = None) -> List[Record]:
        """
        Records where any searchable field contains `term`, ignoring case.

        An empty or missing term returns every record.
        """
        if not term:
            return self.list_all()
        folded = term.casefold()
        return self._select(
            "search", f"WHERE {_SEARCH_WHERE}", [folded] * len(SEARCHABLE_FIELDS)
        )

    def filter_by_action(self, action_type: str) -> List[Record]:
        """Records whose action type equals `action_type` exactly."""
        return self._select("filter_by_action", "WHERE action_type = ?", (action_type,))

    def query(self, search: Optional[str] = None, action: Optional[str] = None) -> List[Record]:
        """
        Resolve optional search and action filters to one read.

        When both are given, search results are narrowed to the action type.
        """
        if search:
            records = self.search(search)
            if action:
                records = [r for r in records if r.action_type == action]
            return records
        if action:
            return self.filter_by_action(action)
        return self.list_all()

    def stats(self) -> StoreStats:
        """Total and distinct counts, computed by one statement over one snapshot."""
        with self._connection("stats") as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    COUNT(DISTINCT username) AS unique_users,
                    COUNT(DISTINCT provider) AS unique_providers,
                    COUNT(DISTINCT action_type) AS unique_actions
                FROM records
                """
            ).fetchone()
        return StoreStats(**dict(row))

    def action_breakdown(self) -> Dict[str, int]:
        """Record count per non-null action type, largest first."""
        with self._connection("action_breakdown") as conn:
            rows = conn.execute(
                """
                SELECT action_type, COUNT(*) AS total
                FROM records
                WHERE action_type IS NOT NULL
                GROUP BY action_type
                ORDER BY total DESC, action_type
                """
            ).fetchall()
        return {row["action_type"]: row["total"] for row in rows}


@contextmanager
def _storage_errors(operation: str) -> Generator[None, None, None]:
    """Map errors from the storage medium or the pool to StorageUnavailable."""
    try:
        yield
    except (sqlite3.Error, PoolTimeoutError, OSError) as exc:
        log.error(
            f"Storage failure during {operation}",
            extra={"operation": operation, "error": f"{type(exc).__name__}: {exc}"},
        )
        raise StorageUnavailable(operation) from exc


@contextmanager
def _transaction(conn: sqlite3.Connection) -> Generator[None, None, None]:
    """Run the block in a write transaction; roll back on any failure."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield
    except BaseException:
        try:
            conn.rollback()
        except sqlite3.Error:
            log.warning("Rollback failed; re-raising the original error", exc_info=True)
        raise
    conn.execute("COMMIT")


def _coerce_fields(fields: FieldsInput) -> RecordFields:
    if isinstance(fields, RecordFields):
        return fields
    return RecordFields.model_validate(dict(fields or {}))


def _coerce_delete_key(key: DeleteKeyInput) -> DeleteKey:
    if isinstance(key, DeleteKey):
        return key
    if isinstance(key, int) and not isinstance(key, bool):
        return DeleteKey(id=key)
    try:
        return DeleteKey.model_validate(dict(key))
    except (TypeError, ValueError, ValidationError) as exc:
        raise InvalidInput(f"unusable delete key: {exc}") from exc


__all__ = ["RecordStore"]
