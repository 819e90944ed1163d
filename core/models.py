"""
core/models.py -- Kernel dataclasses shared by every persisted entity.

Record is composed into each entity (user, session, access token, stored
document) instead of being inherited: callers always work with concrete types
and read entity.record.created / entity.record.modified.

Timestamps are timezone-aware UTC datetimes; None is the "never / unset"
sentinel and is stored as 0 (see core/codec.py).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from core.codec import now_utc


@dataclass
class Record:
    created: datetime | None = None
    modified: datetime | None = None

    @classmethod
    def new(cls) -> "Record":
        """Return a Record stamped with the current time (created == modified)."""
        now = now_utc()
        return cls(created=now, modified=now)


@dataclass
class Document:
    """A JSON document stored under a key in the datastore table.

    Several documents may share a key; select_latest() returns the most
    recently modified one. data holds the JSON bytes as written.
    """

    key: str
    data: bytes
    id: int | None = None
    record: Record = field(default_factory=Record)
