"""
auth/access_tokens.py -- Single-purpose, finite-use capability tokens.

An access token is a bearer secret valid for exactly one path and a finite
number of successful lookups. It is independent of any login session.

Token lifecycle (select_by_access_token):
  not found        -> NotFoundError
  expiry passed    -> delete, ExpiredError
  path mismatch    -> delete, InvalidPathError
  uses already 0   -> delete, ReusedError
  otherwise        -> uses -= 1, persist, return

The order is part of the contract: each failure deletes the row and short
circuits the remaining checks. A token whose last use was just consumed stays
in the table with uses == 0 and is reported as reused (and deleted) on the
next lookup.

Concurrency: the decrement is a conditional UPDATE (uses > 0) executed on the
serialized write connection, so two racing lookups cannot both spend the last
use. The loser gets ReusedError.

Security design decisions:
  Token secret: SHA-256 over 256 CSPRNG bytes plus a varint timestamp,
       URL-safe base64 without padding (43 chars). See core/security.py.

  insert_unsafe() is the only entry point that accepts caller-chosen secrets.
       It exists for operator tooling (e.g. pre-provisioned download links)
       and is named to make that visible at every call site.

Layer rule: no imports outside auth/ and core/.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import Column, ForeignKey, Integer, LargeBinary, MetaData, String, Table, Text
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import (
    AuthError,
    ExpiredError,
    InvalidPathError,
    NotFoundError,
    PathInvalidError,
    ReusedError,
    UserInvalidError,
)
from auth.models import AccessToken
from core.codec import encode_payload, from_micros, now_utc, to_micros
from core.config import get_settings
from core.database import Database
from core.models import Record
from core.security import create_random_sha256_token

logger = logging.getLogger("gatehouse.auth")


class AccessTokenManager:
    """Repository and policy for AccessToken entities.

    Usage:
        tokens = AccessTokenManager(db)
        tok = tokens.insert(user.id, uses=2, path="/export/42", short=True)
        tok = tokens.select_by_access_token(request_token, request.path)
    """

    def __init__(
        self,
        db: Database,
        table_name: str | None = None,
        users_table: str | None = None,
        long_expiration_seconds: float | None = None,
        short_expiration_seconds: float | None = None,
        secret_retries: int | None = None,
    ) -> None:
        settings = get_settings()
        self.db = db
        self.table_name = table_name or settings.access_tokens_table
        users_table = users_table or settings.users_table
        if not self.table_name or not users_table:
            raise ValueError("access token table or user table name is empty")

        self._long = timedelta(
            seconds=long_expiration_seconds
            if long_expiration_seconds is not None
            else settings.long_token_expiration_seconds
        )
        self._short = timedelta(
            seconds=short_expiration_seconds
            if short_expiration_seconds is not None
            else settings.short_token_expiration_seconds
        )
        self._retries = secret_retries if secret_retries is not None else settings.secret_retries

        self._metadata = MetaData()
        # Stub for the foreign key target; never created from here.
        Table(users_table, self._metadata, Column("id", Integer, primary_key=True))
        self._table = Table(
            self.table_name,
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("secret", String(128), nullable=False),
            Column("data", LargeBinary),
            Column("path", Text, nullable=False),
            Column("uses", Integer, nullable=False, server_default="0"),
            Column("creator_id", Integer, ForeignKey(f"{users_table}.id"), nullable=False),
            Column("created", Integer, nullable=False, server_default="0"),
            Column("modified", Integer, nullable=False, server_default="0"),
            Column("expires", Integer, nullable=False, server_default="0"),
        )
        self.db.create_tables(self._metadata, tables=[self._table])
        self.db.create_index(self.table_name, "secret", unique=True)
        self.db.create_index(self.table_name, "creator_id")
        logger.info("AccessTokenManager ready on %r (%d existing tokens)", self.table_name, self.count())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _persist(self, token: AccessToken) -> AccessToken:
        with self.db.writer() as conn:
            result = conn.execute(self._table.insert().values(**_token_values(token)))
            token.id = result.inserted_primary_key[0]
        return token

    def insert(self, creator_id: int, uses: int, path: str, short: bool, data: Any = None) -> AccessToken:
        """Mint a token for path, valid for uses lookups, expiring after the short or long duration."""
        record = Record.new()
        token = AccessToken(
            creator_id=creator_id,
            uses=uses,
            path=path,
            data=encode_payload(data),
            secret=create_random_sha256_token(self._retries),
            record=record,
            expires=record.created + (self._short if short else self._long),
        )
        return self._persist(token)

    def insert_eternal(self, creator_id: int, path: str) -> AccessToken:
        """Mint a single-use token for path that never expires."""
        token = AccessToken(
            creator_id=creator_id,
            uses=1,
            path=path,
            secret=create_random_sha256_token(self._retries),
            record=Record.new(),
        )
        return self._persist(token)

    def insert_unsafe(self, token: AccessToken) -> None:
        """Persist an operator-supplied token verbatim, secret included.

        Bypasses secure secret generation. Raises UserInvalidError if the
        creator is unset and PathInvalidError if the path is blank. Missing
        timestamps are stamped with the current time; token.id is filled in.
        """
        if not token.creator_id:
            raise UserInvalidError("access token has no creator")
        if not token.path or not token.path.strip():
            raise PathInvalidError("access token path is blank")
        if token.record.created is None:
            token.record = Record.new()
        self._persist(token)
        logger.warning("Access token %d inserted with caller-supplied secret", token.id)

    def delete_by_access_token(self, secret: str) -> None:
        """Delete the token with this secret. Idempotent."""
        with self.db.writer() as conn:
            conn.execute(self._table.delete().where(self._table.c.secret == secret))

    def purge_expired(self) -> int:
        """Delete expired and exhausted tokens. Returns rows removed."""
        t = self._table
        expired = (t.c.expires != 0) & (t.c.expires < to_micros(now_utc()))
        with self.db.writer() as conn:
            result = conn.execute(t.delete().where(expired | (t.c.uses <= 0)))
        if result.rowcount:
            logger.info("Purged %d expired or exhausted access tokens", result.rowcount)
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _discard(self, token: AccessToken, error: AuthError) -> AuthError:
        """Best-effort delete of a token that failed validation; returns error for raising."""
        try:
            self.delete_by_access_token(token.secret)
        except SQLAlchemyError:
            logger.warning("Could not delete rejected access token %d", token.id, exc_info=True)
        return error

    def select_by_access_token(self, secret: str, path: str) -> AccessToken:
        """Validate secret for path and spend one use.

        Returns the token with uses already decremented. See the module
        docstring for the failure order.
        """
        t = self._table
        with self.db.reader() as conn:
            row = conn.execute(t.select().where(t.c.secret == secret).limit(1)).fetchone()
        if row is None:
            raise NotFoundError("access token not found")

        token = _row_to_token(row)
        now = now_utc()
        if token.expires is not None and token.expires < now:
            raise self._discard(token, ExpiredError("access token expired"))
        if token.path != path:
            raise self._discard(token, InvalidPathError("access token is not valid for this path"))
        if token.uses <= 0:
            raise self._discard(token, ReusedError("access token already used"))

        with self.db.writer() as conn:
            result = conn.execute(
                t.update().where((t.c.id == token.id) & (t.c.uses > 0)).values(uses=t.c.uses - 1, modified=to_micros(now))
            )
        if result.rowcount == 0:
            # A concurrent lookup spent the last use (or removed the row) first.
            raise self._discard(token, ReusedError("access token already used"))

        token.uses -= 1
        token.record.modified = now
        return token

    def count(self) -> int:
        return self.db.count_rows(self.table_name)


# ---------------------------------------------------------------------------
# Mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _token_values(token: AccessToken) -> dict:
    return {
        "secret": token.secret,
        "data": token.data,
        "path": token.path,
        "uses": token.uses,
        "creator_id": token.creator_id,
        "created": to_micros(token.record.created),
        "modified": to_micros(token.record.modified),
        "expires": to_micros(token.expires),
    }


def _row_to_token(row) -> AccessToken:
    return AccessToken(
        id=row.id,
        secret=row.secret,
        data=row.data,
        path=row.path,
        uses=row.uses,
        creator_id=row.creator_id,
        expires=from_micros(row.expires),
        record=Record(created=from_micros(row.created), modified=from_micros(row.modified)),
    )
