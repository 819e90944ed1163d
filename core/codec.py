"""
core/codec.py -- Boundary conversions between domain values and stored columns.

Timestamps:
  Stored as INTEGER Unix microseconds. Exposed as timezone-aware UTC datetimes.
  The stored value 0 is the "never" sentinel and maps to None in both
  directions. Conversion uses integer timedelta arithmetic, so a value read
  back from the database compares equal to the one written.

Payloads:
  Session and access-token data are opaque JSON bytes on the entities.
  encode_payload / decode_payload are the only places that touch json.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MICRO = timedelta(microseconds=1)

TIMESTAMP_LAYOUT = "%Y-%m-%dT%H:%M:%S.%fZ"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_micros(value: datetime | None) -> int:
    """Return Unix microseconds for value, or 0 for None."""
    if value is None:
        return 0
    if value.tzinfo is None:
        # Naive datetime -- assume UTC
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _ONE_MICRO


def from_micros(value: int | None) -> datetime | None:
    """Return a UTC datetime for stored microseconds, or None for 0/NULL."""
    if not value:
        return None
    return _EPOCH + timedelta(microseconds=value)


def format_timestamp(value: datetime | None) -> str:
    """Serialize a timestamp as a UTC string. None serializes to ""."""
    if value is None:
        return ""
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_LAYOUT)


def encode_payload(value: Any) -> bytes | None:
    """Marshal a JSON-compatible value to bytes. None stays None."""
    if value is None:
        return None
    return json.dumps(value, separators=(",", ":"), sort_keys=True).encode("utf-8")


def decode_payload(raw: bytes | None) -> Any:
    """Unmarshal bytes produced by encode_payload. Empty or None gives None."""
    if not raw:
        return None
    return json.loads(raw)
