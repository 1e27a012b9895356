from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

import typer

from formcapture.bootstrap import open_record_store
from formcapture.config import get_settings
from formcapture.domain.errors import FormCaptureError
from formcapture.exporter import EXPORT_FORMATS, export_records
from formcapture.reporter import print_records, print_stats
from formcapture.store.record_store import RecordStore
from formcapture.utils.logging import configure_logging

app = typer.Typer(help="formcapture record store CLI.")


@contextmanager
def _open_store() -> Generator[RecordStore, None, None]:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    store = RecordStore.from_settings(settings)
    try:
        yield store
    except FormCaptureError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        store.close()


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_path} | pool={settings.db_pool_size} "
        f"busy_timeout_ms={settings.db_busy_timeout_ms} | "
        f"API={settings.api_host}:{settings.api_port} env={settings.app_env}"
    )


@app.command()
def init() -> None:
    """
    Create the data directory and schema, retrying on transient failures.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    try:
        store = open_record_store(settings)
    except FormCaptureError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    store.close()
    typer.echo(f"Record store ready at {settings.db_path}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from settings)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default from settings)."),
) -> None:
    """
    Run the HTTP API with uvicorn.
    """
    import uvicorn

    from formcapture.api import create_app

    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    uvicorn.run(
        create_app(settings=settings),
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_config=None,
    )


@app.command("list")
def list_records(
    search: Optional[str] = typer.Option(
        None, "--search", "-q", help="Case-insensitive substring across the searchable fields."
    ),
    action: Optional[str] = typer.Option(None, "--action", "-a", help="Exact action type."),
) -> None:
    """
    Show records, most recent first.
    """
    with _open_store() as store:
        records = store.query(search=search, action=action)
    print_records(records)


@app.command()
def stats(
    breakdown: bool = typer.Option(False, "--breakdown", "-b", help="Include per-action counts."),
) -> None:
    """
    Show total and distinct counts.
    """
    with _open_store() as store:
        summary = store.stats()
        per_action = store.action_breakdown() if breakdown else None
    print_stats(summary, per_action)


@app.command()
def export(
    fmt: str = typer.Option("json", "--format", "-f", help="Export format: json or csv."),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write to this file instead of stdout."
    ),
    search: Optional[str] = typer.Option(None, "--search", "-q"),
    action: Optional[str] = typer.Option(None, "--action", "-a"),
) -> None:
    """
    Export records as JSON or CSV.
    """
    if fmt.lower() not in EXPORT_FORMATS:
        raise typer.BadParameter(f"format must be one of: {', '.join(EXPORT_FORMATS)}")

    with _open_store() as store:
        records = store.query(search=search, action=action)
    document = export_records(records, fmt)

    if output is None:
        typer.echo(document, nl=False)
        return
    output.write_text(document, encoding="utf-8")
    typer.echo(f"Exported {len(records)} record(s) to {output}")


@app.command()
def delete(
    record_id: Optional[int] = typer.Option(None, "--id", help="Record id (preferred)."),
    timestamp: Optional[str] = typer.Option(
        None, "--timestamp", help="Record timestamp as shown by `list`, used with --action."
    ),
    action: Optional[str] = typer.Option(None, "--action", "-a", help="Action type of the record."),
) -> None:
    """
    Delete a single record.
    """
    key = {"id": record_id, "timestamp": timestamp, "action_type": action}
    with _open_store() as store:
        deleted = store.delete_one(key)
    typer.echo("Deleted 1 record." if deleted else "No matching record.")
    if not deleted:
        raise typer.Exit(code=1)


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """
    Delete every record.
    """
    if not yes:
        typer.confirm("Delete all records? This cannot be undone.", abort=True)
    with _open_store() as store:
        count = store.clear_all()
    typer.echo(f"Cleared {count} record(s).")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
