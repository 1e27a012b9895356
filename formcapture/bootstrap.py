"""
Process-start wiring for the record store.

The store itself never retries. Callers that start a long-lived process (the
API server, the CLI `init` command) open the store here, which retries
`initialize()` with exponential backoff using tenacity.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from formcapture.config import Settings, get_settings
from formcapture.domain.errors import StorageUnavailable
from formcapture.store.record_store import RecordStore
from formcapture.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_INIT_WAIT = wait_exponential(multiplier=1, min=1, max=10)


def open_record_store(
    settings: Optional[Settings] = None,
    wait: Any = DEFAULT_INIT_WAIT,
) -> RecordStore:
    """
    Build a RecordStore from settings and initialize it, retrying on failure.

    Parameters
    ----------
    settings : Settings | None
        Effective settings; defaults to the cached environment settings.
    wait : tenacity wait strategy
        Backoff between attempts. The attempt count is `settings.db_init_attempts`.

    Returns
    -------
    RecordStore
        An initialized store owned by the caller.

    Raises
    ------
    StorageUnavailable
        If every attempt failed.
    """
    settings = settings or get_settings()
    store = RecordStore.from_settings(settings)

    retrying = Retrying(
        stop=stop_after_attempt(settings.db_init_attempts),
        wait=wait,
        retry=retry_if_exception_type(StorageUnavailable),
        before_sleep=before_sleep_log(log, logging.WARNING),
        reraise=True,
    )
    for attempt in retrying:
        with attempt:
            store.initialize()

    log.info(
        "Record store opened",
        extra={"db_file": settings.db_filename, "pool_size": settings.db_pool_size},
    )
    return store


__all__ = ["open_record_store", "DEFAULT_INIT_WAIT"]
