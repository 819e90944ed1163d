"""
auth/manager.py -- One-shot construction of the credential subsystem.

Bootstrap order:
  1. Database   -- opens the pooled read engine and the serialized writer.
  2. DataStore  -- holds the install settings document (key "sets").
  3. Seeds      -- user_seed / session_seed are read from the install
                   settings. First boot generates and persists them; a zero
                   seed found later is treated as unset and replaced.
  4. UserStore, AccessTokenManager, SessionManager -- each creates its table
                   and indexes if absent and skips its generator by row count.

Restart safety depends on step 3: the same seed plus skip(row_count) puts each
generator back where the previous process left it. Changing table names or
seeds after first boot breaks that guarantee.

Usage:
    auth = AuthManager()
    auth.bootstrap()
    user = auth.users.check_get_user(email, password)
    session = auth.sessions.insert(user.id, short=True)
    auth.close()
"""

from __future__ import annotations

import logging

from auth.access_tokens import AccessTokenManager
from auth.sessions import SessionManager
from auth.store import UserStore
from core.codec import decode_payload
from core.config import Settings, get_settings
from core.database import Database
from core.datastore import DataStore
from core.errors import NotFoundError
from core.security import gen_random_uint_not_prime

logger = logging.getLogger("gatehouse.auth")

_SEED_FIELDS = ("user_seed", "session_seed")


def default_install_settings() -> dict:
    return {
        "name": "Gatehouse",
        "url": "http://localhost:8080",
        "user_seed": gen_random_uint_not_prime(),
        "session_seed": gen_random_uint_not_prime(),
    }


class AuthManager:
    """Owns the Database and the three credential managers for one process."""

    def __init__(self, settings: Settings | None = None, db_url: str | None = None) -> None:
        self.settings = settings or get_settings()
        self.db_url = db_url or self.settings.database_url
        self.db: Database | None = None
        self.datastore: DataStore | None = None
        self.install_settings: dict | None = None
        self.users: UserStore | None = None
        self.sessions: SessionManager | None = None
        self.tokens: AccessTokenManager | None = None

    def bootstrap(self) -> None:
        """Build every component. Safe to call again: previous state is closed first."""
        self.close()
        s = self.settings
        logger.info("Bootstrapping auth subsystem")

        self.db = Database(self.db_url, max_open_conns=s.db_max_open_conns, echo=s.debug)
        self.datastore = DataStore(self.db, s.datastore_table)
        self.install_settings = self._load_install_settings()

        self.users = UserStore(
            self.db,
            table_name=s.users_table,
            seed=self.install_settings["user_seed"],
            expiration_seconds=s.user_expiration_seconds,
            bcrypt_rounds=s.bcrypt_rounds,
        )
        self.tokens = AccessTokenManager(
            self.db,
            table_name=s.access_tokens_table,
            users_table=s.users_table,
            long_expiration_seconds=s.long_token_expiration_seconds,
            short_expiration_seconds=s.short_token_expiration_seconds,
            secret_retries=s.secret_retries,
        )
        self.sessions = SessionManager(
            self.db,
            table_name=s.sessions_table,
            users_table=s.users_table,
            seed=self.install_settings["session_seed"],
            long_expiration_seconds=s.long_session_expiration_seconds,
            short_expiration_seconds=s.short_session_expiration_seconds,
            secret_retries=s.secret_retries,
        )
        logger.info("Auth subsystem ready")

    def _load_install_settings(self) -> dict:
        key = self.settings.settings_key
        try:
            doc = self.datastore.select_latest(key)
        except NotFoundError:
            values = default_install_settings()
            self.datastore.insert(key, values)
            logger.info("First boot: generated and stored identifier seeds")
            return values

        values = decode_payload(doc.data) or {}
        missing = [name for name in _SEED_FIELDS if not values.get(name)]
        if missing:
            for name in missing:
                values[name] = gen_random_uint_not_prime()
            self.datastore.update(doc.id, key, values)
            logger.warning("Install settings had unset seeds %s; generated new ones", ", ".join(missing))
        return values

    def is_bootstrapped(self) -> bool:
        return None not in (self.db, self.datastore, self.users, self.sessions, self.tokens)

    def needs_setup(self) -> bool:
        """True until an administrator account exists (first-run state)."""
        if self.users is None:
            raise RuntimeError("auth subsystem is not bootstrapped")
        return not self.users.has_admins()

    def close(self) -> None:
        """Dispose the engines and drop every component reference."""
        self.users = None
        self.sessions = None
        self.tokens = None
        self.datastore = None
        self.install_settings = None
        if self.db is not None:
            self.db.close()
            self.db = None
