"""FastAPI ingestion and query API for formcapture.

Translates HTTP requests into record-store calls and serializes the results.
HTML rendering, CORS, and static files are served elsewhere.

Usage:
    from formcapture.api import create_app

    app = create_app()
    # Run with: uvicorn formcapture.api:create_app --factory --port 3000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, List, Literal, Optional

from fastapi import Body, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from formcapture import __version__
from formcapture.bootstrap import open_record_store
from formcapture.config import Settings, get_settings
from formcapture.domain.errors import InvalidInput, StorageUnavailable
from formcapture.domain.models import (
    DeleteKey,
    Record,
    RecordFields,
    StoreStats,
    format_timestamp,
    utc_now,
)
from formcapture.exporter import MEDIA_TYPES, export_filename, export_records
from formcapture.store.record_store import RecordStore
from formcapture.utils.logging import get_logger

log = get_logger(__name__)


class SubmissionResponse(BaseModel):
    """Acknowledgement of an ingested submission."""

    success: bool = True
    message: str = "Data received successfully"
    id: int
    timestamp: str


class DeleteResponse(BaseModel):
    """Result of a delete or clear request."""

    success: bool = True
    deleted: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str = __version__


def create_app(
    store: RecordStore | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create FastAPI application with the formcapture endpoints.

    Args:
        store: Optional RecordStore instance. When omitted, one is opened from
            settings at startup (with retries) and closed at shutdown.
        settings: Optional settings used when opening the store.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = store is None
        app.state.store = store if store is not None else open_record_store(
            settings or get_settings()
        )
        try:
            yield
        finally:
            if owned:
                app.state.store.close()

    app = FastAPI(
        title="formcapture API",
        description="Ingestion, query, export, and delete operations over captured submissions",
        version=__version__,
        lifespan=lifespan,
    )
    if store is not None:
        app.state.store = store

    def _store(request: Request) -> RecordStore:
        return request.app.state.store

    @app.exception_handler(StorageUnavailable)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
        log.error(
            "Request failed: storage unavailable",
            extra={"path": request.url.path, "operation": exc.operation},
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"success": False, "message": "Storage is temporarily unavailable"},
        )

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        return JSONResponse(
            status_code=422,
            content={"success": False, "message": str(exc)},
        )

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    def health_check():
        """Check API health status."""
        return HealthResponse(status="healthy")

    @app.post("/admin", response_model=SubmissionResponse, tags=["Ingestion"])
    @app.post("/api/submissions", response_model=SubmissionResponse, tags=["Ingestion"])
    def ingest(request: Request, fields: Optional[RecordFields] = Body(None)):
        """Persist one submission and acknowledge it with its id and timestamp."""
        if fields is None:
            fields = RecordFields(timestamp=utc_now())
        elif fields.timestamp is None:
            fields = fields.model_copy(update={"timestamp": utc_now()})
        record_id = _store(request).insert(fields)
        return SubmissionResponse(id=record_id, timestamp=format_timestamp(fields.timestamp))

    @app.get("/api/data", response_model=List[Record], tags=["Query"])
    def list_records(
        request: Request,
        search: Optional[str] = Query(None, description="Case-insensitive substring"),
        action: Optional[str] = Query(None, description="Exact action type"),
    ):
        """List records, optionally searched and/or filtered by action type."""
        return _store(request).query(search=search, action=action)

    @app.get("/api/data/{record_id}", response_model=Record, tags=["Query"])
    def get_record(request: Request, record_id: int):
        """Fetch one record by id."""
        record = _store(request).get(record_id)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
        return record

    @app.get("/api/stats", response_model=StoreStats, tags=["Query"])
    def get_stats(request: Request):
        """Total and distinct counts over one snapshot."""
        return _store(request).stats()

    @app.get("/api/stats/actions", response_model=Dict[str, int], tags=["Query"])
    def get_action_breakdown(request: Request):
        """Record count per action type."""
        return _store(request).action_breakdown()

    @app.get("/api/export", tags=["Query"])
    def export(
        request: Request,
        format: Literal["json", "csv"] = Query("json"),
        search: Optional[str] = Query(None),
        action: Optional[str] = Query(None),
    ):
        """Download the (optionally filtered) records as JSON or CSV."""
        records = _store(request).query(search=search, action=action)
        return Response(
            content=export_records(records, format),
            media_type=MEDIA_TYPES[format],
            headers={"Content-Disposition": f'attachment; filename="{export_filename(format)}"'},
        )

    @app.delete("/api/data/{record_id}", response_model=DeleteResponse, tags=["Delete"])
    def delete_record(request: Request, record_id: int):
        """Delete one record by id."""
        deleted = _store(request).delete_one(record_id)
        return DeleteResponse(deleted=int(deleted))

    @app.delete("/api/data", response_model=DeleteResponse, tags=["Delete"])
    def delete_records(request: Request, key: Optional[DeleteKey] = Body(None)):
        """Delete the record matching the body key, or every record when there is no body."""
        store = _store(request)
        if key is None:
            return DeleteResponse(deleted=store.clear_all())
        return DeleteResponse(deleted=int(store.delete_one(key)))

    return app


__all__ = ["create_app", "SubmissionResponse", "DeleteResponse"]
