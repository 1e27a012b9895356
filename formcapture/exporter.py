"""
Export helpers: serialize record sequences as CSV or JSON documents.

Both formats keep the caller's ordering and render absent values as empty
CSV cells or JSON nulls.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Iterable, List

from formcapture.domain.models import TEXT_FIELDS, Record

EXPORT_FORMATS = ("json", "csv")
CSV_COLUMNS = ["id", "timestamp", *TEXT_FIELDS]

MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
}


def records_to_json(records: Iterable[Record]) -> str:
    """Render records as a pretty-printed JSON array."""
    payload = [record.model_dump(mode="json") for record in records]
    return json.dumps(payload, indent=2, ensure_ascii=False)


def records_to_csv(records: Iterable[Record]) -> str:
    """Render records as CSV with a header row."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for record in records:
        writer.writerow(record.model_dump(mode="json"))
    return buffer.getvalue()


def export_records(records: Iterable[Record], fmt: str = "json") -> str:
    """
    Serialize records in the requested format.

    Raises
    ------
    ValueError
        If `fmt` is not one of EXPORT_FORMATS.
    """
    fmt = fmt.lower()
    if fmt == "json":
        return records_to_json(records)
    if fmt == "csv":
        return records_to_csv(records)
    raise ValueError(f"Unknown export format '{fmt}'. Available: {', '.join(EXPORT_FORMATS)}")


def export_filename(fmt: str) -> str:
    return f"formcapture_data.{fmt.lower()}"


__all__: List[str] = [
    "CSV_COLUMNS",
    "EXPORT_FORMATS",
    "MEDIA_TYPES",
    "export_filename",
    "export_records",
    "records_to_csv",
    "records_to_json",
]
