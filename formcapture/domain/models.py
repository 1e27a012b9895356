"""
Domain models for formcapture.

Defines the captured-submission schema aligned with the `records` table, the
insert payload accepted from the capture front end, and the small value
objects returned by aggregate and delete operations.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)

TEXT_FIELDS = (
    "username",
    "email",
    "name",
    "phone",
    "password",
    "provider",
    "user_agent",
    "action_type",
)

# user_agent is stored but never matched by free-text search.
SEARCHABLE_FIELDS = tuple(f for f in TEXT_FIELDS if f != "user_agent")

# Fixed width (the year is always four digits), so lexical order of the stored
# text equals chronological order.
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime in the persisted timestamp format."""
    value = to_utc(value)
    # strftime("%Y") does not zero-pad years below 1000 on every platform.
    return f"{value.year:04d}-{value:%m-%dT%H:%M:%S.%f}Z"


def parse_timestamp(text: str) -> datetime:
    """Parse a persisted timestamp back into an aware UTC datetime."""
    return datetime.strptime(text, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecordFields(BaseModel):
    """
    Insert payload for one submission.

    Every attribute is optional. Values that are not non-empty strings are
    treated as "no value" and stored as NULL. Field aliases match what the
    capture pages post (`userAgent`, `action`, `type`).
    """

    username: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None
    provider: Optional[str] = None
    user_agent: Optional[str] = Field(
        None, validation_alias=AliasChoices("user_agent", "userAgent")
    )
    action_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("action_type", "action", "type")
    )
    timestamp: Optional[datetime] = None

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @field_validator(*TEXT_FIELDS, mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value:
            return value
        return None

    @field_validator("timestamp", mode="wrap")
    @classmethod
    def _lenient_timestamp(cls, value: Any, handler: Any) -> Optional[datetime]:
        # An unusable timestamp falls back to the store-assigned one.
        if value is None or value == "":
            return None
        try:
            return to_utc(handler(value))
        except (ValueError, OverflowError):
            # ValidationError is a ValueError; OverflowError comes from
            # shifting a value near datetime.min or max into UTC.
            return None


class Record(BaseModel):
    """
    Representation of a single row in the `records` table.
    """

    id: int = Field(..., description="Store-assigned, never reused identifier.")
    username: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None
    provider: Optional[str] = None
    user_agent: Optional[str] = None
    action_type: Optional[str] = None
    timestamp: datetime = Field(..., description="Creation instant (UTC).")

    model_config = ConfigDict(frozen=True)

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)

    @classmethod
    def from_row(cls, row: Any) -> "Record":
        """Build a Record from a `sqlite3.Row` (or any mapping with the same keys)."""
        data = {key: row[key] for key in ("id", *TEXT_FIELDS)}
        data["timestamp"] = parse_timestamp(row["timestamp"])
        return cls(**data)


class StoreStats(BaseModel):
    """Aggregate counts computed from one consistent snapshot."""

    total: int
    unique_users: int
    unique_providers: int
    unique_actions: int

    model_config = ConfigDict(frozen=True)


class DeleteKey(BaseModel):
    """
    Identity of the record to delete.

    `id` is unambiguous and preferred. The `timestamp` + `action_type` pair is
    what the capture pages historically sent; it can match several records.
    """

    id: Optional[int] = None
    timestamp: Optional[datetime] = None
    action_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("action_type", "action", "type")
    )

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        try:
            return to_utc(value)
        except OverflowError as exc:
            raise ValueError("timestamp is out of range") from exc


__all__ = [
    "TEXT_FIELDS",
    "SEARCHABLE_FIELDS",
    "TIMESTAMP_FORMAT",
    "to_utc",
    "format_timestamp",
    "parse_timestamp",
    "utc_now",
    "RecordFields",
    "Record",
    "StoreStats",
    "DeleteKey",
]
