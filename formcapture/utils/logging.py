"""
Structured logging utilities for formcapture.

The record store, the API, and the CLI log through the standard library with
per-module loggers. Context such as the operation name or the record id is
passed with `extra=`; both formatters below surface it, the console formatter
as a trailing `key=value` list and the JSON formatter as top-level keys.

Usage:
    from formcapture.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=False)
    log = get_logger(__name__)
    log.info("Record inserted", extra={"record_id": 42, "action_type": "login"})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}

# Context keys the record store attaches, in the order the console shows them.
STORE_CONTEXT_FIELDS = (
    "operation",
    "record_id",
    "action_type",
    "deleted",
    "pool_size",
    "db_file",
    "error",
)

# SQLAlchemy's pool logs every checkout at DEBUG; keep it out of store debugging.
_QUIET_LOGGERS = ("sqlalchemy.pool",)


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields attached to `record` via `extra=`."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


def _json_formatter(record: logging.LogRecord) -> str:
    """Render a log record as JSON string."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    payload.update(_context(record))
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable formatter that appends record-store context.

    `log.info("Record inserted", extra={"record_id": 7})` renders as
    `... | Record inserted | record_id=7`. Keys outside STORE_CONTEXT_FIELDS
    are left to the JSON formatter.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = [
            f"{key}={getattr(record, key)}"
            for key in STORE_CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        ]
        if not context:
            return line
        head, sep, tail = line.partition("\n")
        return f"{head} | {' '.join(context)}{sep}{tail}"


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
) -> None:
    """
    Configure root logging.

    Parameters
    ----------
    level : str
        Logging level name (e.g., "DEBUG", "INFO", "WARNING").
    json_logs : bool
        Emit JSON lines instead of the console format.
    """
    formatter_name = "json" if json_logs else "console"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "()": ConsoleFormatter,
                    "fmt": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter_name,
                    "level": level,
                }
            },
            "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = [
    "STORE_CONTEXT_FIELDS",
    "ConsoleFormatter",
    "JsonFormatter",
    "configure_logging",
    "get_logger",
]
