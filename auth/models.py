"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and managers do
the work; these dataclasses own the domain shape.

Every entity composes a core.models.Record (created / modified) rather than
inheriting shared fields. Timestamps are UTC datetimes with None meaning
"never" (stored as 0).

Layer rule: auth/ imports core/ and third-party libraries only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from core.models import Record

ADMIN_ROLE = 3


@dataclass
class User:
    """A persisted identity with a local password.

    id is allocated by the store's identifier generator on insert; it is None
    before that. external_id is an opaque 20-char string handed to clients
    instead of the numeric id -- it is assigned once and must never change.

    role is a numeric tier; role >= ADMIN_ROLE denotes an administrator.
    expires is informational (account expiry policy is the caller's concern).
    """

    name: str
    email: str
    role: int = 0
    active: bool = True
    verified: bool = False
    id: int | None = None
    external_id: str = ""
    password_hash: str = ""
    expires: datetime | None = None
    record: Record = field(default_factory=Record)


@dataclass
class Session:
    """A login session bound to one user.

    secret is the bearer value the client presents (cookie). data is opaque
    JSON bytes -- use core.codec.decode_payload() to read it. ip and agent are
    informational only and never used for validation.

    expires is None for eternal sessions, which are never reaped by expiry
    checks and must be deleted explicitly.
    """

    user_id: int
    secret: str = ""
    id: int | None = None
    data: bytes | None = None
    ip: str = ""
    agent: str = ""
    expires: datetime | None = None
    record: Record = field(default_factory=Record)


@dataclass
class AccessToken:
    """A single-purpose, finite-use capability independent of any login.

    Valid for exactly one path. uses is the number of successful lookups still
    allowed; each successful lookup decrements it. A token found with uses == 0
    is deleted and reported as reused.

    creator_id is the user who minted the token (foreign key to users).
    """

    path: str
    creator_id: int | None = None
    uses: int = 1
    secret: str = ""
    id: int | None = None
    data: bytes | None = None
    expires: datetime | None = None
    record: Record = field(default_factory=Record)
