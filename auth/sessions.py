"""
auth/sessions.py -- Login sessions and CSRF binding.

Session lifecycle:
  Active   -- expires is None (eternal) or in the future.
  Expired  -- expiry passed. Detected lazily by select_by_session(), which
              deletes the row and raises ExpiredError.
  Deleted  -- terminal. Reached through delete_by_session() or expiry
              detection. There is no separate "revoked" state.

Expired rows that are never read again stay in the table until read or until
purge_expired() is run by an external job. Nothing here schedules it.

Security design decisions:
  Session secret: SHA-512 over 256 CSPRNG bytes plus a varint timestamp,
       URL-safe base64 without padding (86 chars). See core/security.py.

  CSRF key: 2048 random bytes generated once per manager instance and kept in
       memory only. Never persisted, never rotated while the process runs. A
       restart invalidates every CSRF token, which is acceptable because they
       are short-lived relative to process uptime.

IDs come from this manager's own LCG (persisted session seed, skipped by row
count at boot) and are allocated inside Database.writer().

Layer rule: no imports outside auth/ and core/.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import Column, ForeignKey, Integer, LargeBinary, MetaData, String, Table
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import ExpiredError, NotFoundError
from auth.models import Session
from auth.tokens import create_csrf_token, validate_csrf_token
from core.codec import encode_payload, from_micros, now_utc, to_micros
from core.config import get_settings
from core.database import Database, allocate_id
from core.lcg import LCG
from core.models import Record
from core.security import create_hmac_secret, create_random_sha512_token, gen_random_uint_not_prime

logger = logging.getLogger("gatehouse.auth")


class SessionManager:
    """Repository and policy for Session entities.

    Usage:
        sessions = SessionManager(db, seed=settings_record["session_seed"])
        sess = sessions.insert(user.id, short=True, agent=ua, ip=ip)
        csrf = sessions.create_csrf_token(sess)
        sess = sessions.select_by_session(cookie_value)
        assert sessions.validate_csrf_token(sess, form_value)
    """

    def __init__(
        self,
        db: Database,
        table_name: str | None = None,
        users_table: str | None = None,
        seed: int = 0,
        long_expiration_seconds: float | None = None,
        short_expiration_seconds: float | None = None,
        secret_retries: int | None = None,
    ) -> None:
        settings = get_settings()
        self.db = db
        self.table_name = table_name or settings.sessions_table
        users_table = users_table or settings.users_table
        if not self.table_name or not users_table:
            raise ValueError("session table or user table name is empty")

        self._long = timedelta(
            seconds=long_expiration_seconds
            if long_expiration_seconds is not None
            else settings.long_session_expiration_seconds
        )
        self._short = timedelta(
            seconds=short_expiration_seconds
            if short_expiration_seconds is not None
            else settings.short_session_expiration_seconds
        )
        self._retries = secret_retries if secret_retries is not None else settings.secret_retries

        # Raises RandomnessUnavailableError -- construction fails, no retry loop.
        self._hmac_key = create_hmac_secret(self._retries)

        if seed == 0:
            seed = gen_random_uint_not_prime()
            logger.warning("SessionManager started without a persisted seed; ids will not follow a stable sequence")
        self._lcg = LCG(seed)

        self._metadata = MetaData()
        # Stub of the users table so the foreign key resolves within this
        # MetaData. Only the sessions table is ever created from it.
        Table(users_table, self._metadata, Column("id", Integer, primary_key=True))
        self._table = Table(
            self.table_name,
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=False),
            Column("secret", String(128), nullable=False),
            Column("data", LargeBinary),
            Column("ip", String(64)),
            Column("agent", String(512)),
            Column("created", Integer, nullable=False, server_default="0"),
            Column("modified", Integer, nullable=False, server_default="0"),
            Column("expires", Integer, nullable=False, server_default="0"),
            Column("user_id", Integer, ForeignKey(f"{users_table}.id"), nullable=False),
        )
        self.db.create_tables(self._metadata, tables=[self._table])
        self.db.create_index(self.table_name, "secret", unique=True)
        self.db.create_index(self.table_name, "user_id")

        existing = self.count()
        if existing > 0:
            self._lcg.skip(existing)
        logger.info("SessionManager ready on %r (%d existing sessions)", self.table_name, existing)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _insert(self, session: Session) -> Session:
        session.secret = create_random_sha512_token(self._retries)
        with self.db.writer() as conn:
            session.id = allocate_id(conn, self._lcg, self._table.c.id)
            conn.execute(self._table.insert().values(id=session.id, **_session_values(session)))
        return session

    def insert(self, user_id: int, short: bool, agent: str = "", ip: str = "", data: Any = None) -> Session:
        """Create a session for user_id expiring after the short or long duration."""
        record = Record.new()
        session = Session(
            user_id=user_id,
            agent=agent,
            ip=ip,
            data=encode_payload(data),
            record=record,
            expires=record.created + (self._short if short else self._long),
        )
        return self._insert(session)

    def insert_eternal(self, user_id: int, agent: str = "", ip: str = "", data: Any = None) -> Session:
        """Create a session that never expires.

        Eternal sessions are never reaped by expiry checks or purge_expired();
        they live until delete_by_session() is called.
        """
        session = Session(user_id=user_id, agent=agent, ip=ip, data=encode_payload(data), record=Record.new())
        return self._insert(session)

    def delete_by_session(self, secret: str) -> None:
        """Delete the session with this secret. Idempotent."""
        with self.db.writer() as conn:
            conn.execute(self._table.delete().where(self._table.c.secret == secret))

    def purge_expired(self) -> int:
        """Delete every non-eternal session whose expiry has passed. Returns rows removed."""
        t = self._table
        with self.db.writer() as conn:
            result = conn.execute(t.delete().where((t.c.expires != 0) & (t.c.expires < to_micros(now_utc()))))
        if result.rowcount:
            logger.info("Purged %d expired sessions", result.rowcount)
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select_by_session(self, secret: str) -> Session:
        """Return the live session for secret.

        Raises NotFoundError if absent. If the session has expired, deletes it
        and raises ExpiredError instead of returning stale data.
        """
        with self.db.reader() as conn:
            row = conn.execute(self._table.select().where(self._table.c.secret == secret).limit(1)).fetchone()
        if row is None:
            raise NotFoundError("session not found")

        session = _row_to_session(row)
        if session.expires is not None and session.expires < now_utc():
            try:
                self.delete_by_session(session.secret)
            except SQLAlchemyError:
                logger.warning("Could not delete expired session %d", session.id, exc_info=True)
            raise ExpiredError("session expired")
        return session

    def count(self) -> int:
        return self.db.count_rows(self.table_name)

    # ------------------------------------------------------------------
    # CSRF
    # ------------------------------------------------------------------

    def create_csrf_token(self, session: Session) -> str:
        return create_csrf_token(self._hmac_key, session)

    def validate_csrf_token(self, session: Session, token: str) -> bool:
        """Return True iff token was created for this exact session by this process."""
        return validate_csrf_token(self._hmac_key, session, token)


# ---------------------------------------------------------------------------
# Mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _session_values(session: Session) -> dict:
    return {
        "secret": session.secret,
        "data": session.data,
        "ip": session.ip,
        "agent": session.agent,
        "created": to_micros(session.record.created),
        "modified": to_micros(session.record.modified),
        "expires": to_micros(session.expires),
        "user_id": session.user_id,
    }


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        secret=row.secret,
        data=row.data,
        ip=row.ip or "",
        agent=row.agent or "",
        user_id=row.user_id,
        expires=from_micros(row.expires),
        record=Record(created=from_micros(row.created), modified=from_micros(row.modified)),
    )
