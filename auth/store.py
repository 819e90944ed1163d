"""
auth/store.py -- SQLAlchemy Core persistence layer for users (credential store).

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _user_values are the mappers.
Callers never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Passwords are hashed with bcrypt (auth/tokens.py) before they reach the
  store; the plaintext never touches the database.

IDs:
  Numeric ids come from a per-store LCG seeded with the persisted user seed.
  At construction the generator is advanced by the current row count so a
  restarted process continues the same sequence. Allocation happens inside
  Database.writer(), which serializes it with the insert.

Email and external_id uniqueness are enforced by unique indexes. A duplicate
email surfaces as sqlalchemy.exc.IntegrityError, unwrapped.

Layer rule: no imports outside auth/ and core/.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, select

from auth.errors import ExternalIDChangedError, NotFoundError, WrongPasswordError
from auth.models import ADMIN_ROLE, User
from auth.tokens import generate_external_id, hash_password, verify_password
from core.codec import from_micros, now_utc, to_micros
from core.config import get_settings
from core.database import Database, allocate_id
from core.lcg import LCG
from core.models import Record
from core.security import gen_random_uint_not_prime

logger = logging.getLogger("gatehouse.auth")


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(db, seed=settings_record["user_seed"])
        user = store.insert(User(name="Ada", email="ada@example.com", role=3), "secret")
        user = store.check_get_user("ada@example.com", "secret")
    """

    def __init__(
        self,
        db: Database,
        table_name: str | None = None,
        seed: int = 0,
        expiration_seconds: int | None = None,
        bcrypt_rounds: int | None = None,
    ) -> None:
        settings = get_settings()
        self.db = db
        self.table_name = table_name or settings.users_table
        self._expiration = timedelta(
            seconds=expiration_seconds if expiration_seconds is not None else settings.user_expiration_seconds
        )
        self._rounds = bcrypt_rounds if bcrypt_rounds is not None else settings.bcrypt_rounds

        if seed == 0:
            # Seed 0 means "unset". A random seed works for this process but
            # is not reproducible after a restart unless the caller persists it.
            seed = gen_random_uint_not_prime()
            logger.warning("UserStore started without a persisted seed; ids will not follow a stable sequence")
        self._lcg = LCG(seed)

        self._metadata = MetaData()
        self._table = Table(
            self.table_name,
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=False),
            Column("external_id", String(32), nullable=False),
            Column("email", String(255), nullable=False),
            Column("name", String(255), nullable=False),
            Column("password_hash", Text, nullable=False),
            Column("role", Integer, nullable=False, server_default="0"),
            Column("active", Boolean, nullable=False, server_default="1"),
            Column("verified", Boolean, nullable=False, server_default="0"),
            Column("created", Integer, nullable=False, server_default="0"),
            Column("modified", Integer, nullable=False, server_default="0"),
            Column("expires", Integer, nullable=False, server_default="0"),
        )
        self._create_table()

        existing = self.count()
        if existing > 0:
            self._lcg.skip(existing)
        logger.info("UserStore ready on %r (%d existing users)", self.table_name, existing)

    @property
    def table(self) -> Table:
        return self._table

    def _create_table(self) -> None:
        self.db.create_tables(self._metadata)
        self.db.create_index(self.table_name, "email", unique=True)
        self.db.create_index(self.table_name, "external_id", unique=True)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, user: User, password: str) -> User:
        """Hash password, allocate ids, stamp timestamps and persist user.

        Returns a new User carrying the assigned id, external_id and hash; the
        argument is not modified.

        Raises PasswordTooLongError for passwords over 72 bytes and
        sqlalchemy.exc.IntegrityError if the email is already registered.
        """
        # Hash before taking the write lock.
        password_hash = hash_password(password, self._rounds)
        record = Record.new()
        new = replace(
            user,
            password_hash=password_hash,
            external_id=generate_external_id(),
            record=record,
            expires=record.created + self._expiration,
        )
        with self.db.writer() as conn:
            new.id = allocate_id(conn, self._lcg, self._table.c.id)
            conn.execute(self._table.insert().values(id=new.id, **_user_values(new)))
        logger.info("User %s created (role=%d)", new.external_id, new.role)
        return new

    def update(self, user: User) -> None:
        """Persist every field of user and re-stamp modified.

        Raises ExternalIDChangedError if external_id is blank -- guards against
        a caller accidentally erasing the immutable id. Raises NotFoundError if
        no row has user.id.
        """
        if not user.external_id:
            raise ExternalIDChangedError("external_id must not be blank")
        user.record.modified = now_utc()
        t = self._table
        with self.db.writer() as conn:
            result = conn.execute(t.update().where(t.c.id == user.id).values(**_user_values(user)))
        if result.rowcount == 0:
            raise NotFoundError(f"user {user.id} not found")

    def set_password(self, user: User, password: str) -> None:
        """Replace the password hash and persist the user."""
        user.password_hash = hash_password(password, self._rounds)
        self.update(user)

    def delete(self, user_id: int) -> None:
        """Hard-delete a user by id. Deleting a missing id is not an error."""
        with self.db.writer() as conn:
            conn.execute(self._table.delete().where(self._table.c.id == user_id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _select_one(self, clause, what: str) -> User:
        with self.db.reader() as conn:
            row = conn.execute(self._table.select().where(clause).limit(1)).fetchone()
        if row is None:
            raise NotFoundError(f"user not found ({what})")
        return _row_to_user(row)

    def select_by_id(self, user_id: int) -> User:
        return self._select_one(self._table.c.id == user_id, "id")

    def select_by_email(self, email: str) -> User:
        return self._select_one(self._table.c.email == email, "email")

    def select_by_external_id(self, external_id: str) -> User:
        return self._select_one(self._table.c.external_id == external_id, "external_id")

    def check_password(self, user: User, password: str) -> None:
        """Raise WrongPasswordError unless password matches the stored hash."""
        if not verify_password(password, user.password_hash):
            raise WrongPasswordError("wrong password")

    def check_get_user(self, email: str, password: str) -> User:
        """Look up a user by email and verify the password.

        Raises NotFoundError and WrongPasswordError distinctly so internal
        logging can tell them apart. Callers must not expose the difference to
        end users; response-time equalization is also the caller's job.
        """
        user = self.select_by_email(email)
        self.check_password(user, password)
        return user

    def has_admins(self) -> bool:
        """Return True if at least one user has role >= ADMIN_ROLE."""
        t = self._table
        with self.db.reader() as conn:
            row = conn.execute(select(t.c.id).where(t.c.role >= ADMIN_ROLE).limit(1)).fetchone()
        return row is not None

    def count(self) -> int:
        return self.db.count_rows(self.table_name)


# ---------------------------------------------------------------------------
# Mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _user_values(user: User) -> dict:
    return {
        "external_id": user.external_id,
        "email": user.email,
        "name": user.name,
        "password_hash": user.password_hash,
        "role": user.role,
        "active": user.active,
        "verified": user.verified,
        "created": to_micros(user.record.created),
        "modified": to_micros(user.record.modified),
        "expires": to_micros(user.expires),
    }


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        external_id=row.external_id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        role=row.role,
        active=bool(row.active),
        verified=bool(row.verified),
        expires=from_micros(row.expires),
        record=Record(created=from_micros(row.created), modified=from_micros(row.modified)),
    )
